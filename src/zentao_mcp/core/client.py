import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .errors import ConfigurationError, TransportError
from .observability import log_event


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 2  # total extra attempts
    backoff_base_seconds: float = 0.3  # 0.3, 0.6, 1.2...
    retry_statuses: frozenset[int] = frozenset({502, 503, 504})


class ZentaoClient:
    """
    Raw HTTP transport for the legacy ZenTao JSON API.
    - Owns base URL, timeouts, transient-failure retries and call logging
    - Knows nothing about sessions; SessionManager attaches the token
    - Returns httpx responses; raises TransportError on network/HTTP failures
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 10.0,
        retry: Optional[RetryConfig] = None,
        logger: Optional[logging.Logger] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        base_url = (base_url or "").rstrip("/")
        if not base_url:
            raise ConfigurationError("base_url must be provided.")

        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.retry = retry if retry is not None else RetryConfig()
        self.log = logger or logging.getLogger("zentao_mcp.client")

        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=timeout_seconds,
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> "ZentaoClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def absolute_url(self, url: str) -> str:
        """
        Resolve a media/file URL found in entity HTML against the base URL.
        ZenTao embeds paths like '/zentao/file-read-3.png' even when the base
        URL already ends in '/zentao', so that prefix is dropped once.
        """
        if url.startswith("/zentao/"):
            return self.base_url + url.replace("/zentao/", "/", 1)
        if url.startswith("/"):
            return self.base_url + url
        return url

    async def send(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """
        Core request method.
        - Retries on transient failures (connect/read timeouts + 502/503/504)
        - Raises TransportError on non-2xx responses and on network errors
          after retries
        """
        method = method.upper()
        start = time.perf_counter()
        attempt = 0
        kwargs: Dict[str, Any] = {"params": params}
        if data is not None:
            kwargs["data"] = data
        if timeout is not None:
            kwargs["timeout"] = timeout

        while True:
            try:
                resp = await self.http.request(method, url, **kwargs)
            except (httpx.ConnectError, httpx.ReadTimeout, httpx.ConnectTimeout) as exc:
                if attempt < self.retry.max_retries:
                    await asyncio.sleep(self.retry.backoff_base_seconds * (2**attempt))
                    attempt += 1
                    continue
                self._log_call(method, url, "exception", start, attempt, exc)
                raise TransportError(
                    f"Network/timeout error: {exc}", method=method, url=url
                ) from exc
            except httpx.HTTPError as exc:
                self._log_call(method, url, "exception", start, attempt, exc)
                raise TransportError(
                    f"HTTPX error: {exc}", method=method, url=url
                ) from exc

            if resp.status_code in self.retry.retry_statuses:
                if attempt < self.retry.max_retries:
                    await asyncio.sleep(self.retry.backoff_base_seconds * (2**attempt))
                    attempt += 1
                    continue

            self._log_call(method, url, resp.status_code, start, attempt)

            if resp.status_code < 200 or resp.status_code >= 300:
                raise TransportError(
                    "request failed",
                    method=method,
                    url=url,
                    status_code=resp.status_code,
                    response_text=resp.text,
                )
            return resp

    def _log_call(
        self,
        method: str,
        url: str,
        status: Any,
        start: float,
        attempt: int,
        exc: Optional[BaseException] = None,
    ) -> None:
        # the token only ever travels in params, so the path is safe to log
        log_event(
            "zentao_call",
            self.log,
            level=logging.DEBUG,
            method=method,
            endpoint=url.split("?", 1)[0],
            status=status,
            duration_ms=int((time.perf_counter() - start) * 1000),
            attempt=attempt,
            error_type=type(exc).__name__ if exc else None,
        )


__all__ = ["ZentaoClient", "RetryConfig"]
