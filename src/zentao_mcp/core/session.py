"""
Session lifecycle for the legacy ZenTao API.

The backend never answers an expired session with a distinct HTTP status:
it replies 200 with the login page (or a redirect script) instead of the
JSON envelope. Every authenticated call is therefore classified by body
content and retried once after a forced re-login.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional

import anyio
import httpx

from .client import RetryConfig, ZentaoClient
from .config import ZentaoConfig
from .endpoints import format_endpoint
from .envelope import unwrap_envelope
from .errors import (
    ConfigurationError,
    SessionError,
    TransportError,
    UpstreamDataError,
)
from .observability import log_event

SESSION_PARAM = "zentaosid"
LOGIN_MARKERS = ("user-login", "self.location", "<script>")
BINARY_TIMEOUT_SECONDS = 30.0


class SessionState(str, Enum):
    ALIVE = "alive"
    EXPIRED = "expired"


def classify_response(body: Any) -> SessionState:
    """
    Map a raw response body to alive/expired.

    Only non-JSON text can be a login page; decoded objects and JSON
    documents are always alive, even if a record happens to contain
    '<script>' in its HTML.
    """
    if isinstance(body, (bytes, bytearray)):
        body = bytes(body).decode("utf-8", errors="replace")
    if not isinstance(body, str):
        return SessionState.ALIVE
    text = body.lstrip()
    if text.startswith("{") or text.startswith("["):
        return SessionState.ALIVE
    if any(marker in text for marker in LOGIN_MARKERS):
        return SessionState.EXPIRED
    return SessionState.ALIVE


def _decode_json(resp: httpx.Response, context: str) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise UpstreamDataError(
            f"{context}: expected JSON body", response_excerpt=resp.text
        ) from exc


class SessionManager:
    """
    Owns the single session token and performs authenticated requests.

    Login and renewal are single-flight: concurrent callers wait on one lock
    and reuse the token obtained by whoever got there first.
    """

    def __init__(
        self,
        client: ZentaoClient,
        *,
        account: str,
        password: str,
        logger: Optional[logging.Logger] = None,
    ):
        if not account:
            raise ConfigurationError("account must be provided.")
        if not password:
            raise ConfigurationError("password must be provided.")

        self.client = client
        self.account = account
        self._password = password
        self.log = logger or logging.getLogger("zentao_mcp.session")
        self._token: Optional[str] = None
        self._lock = anyio.Lock()
        self.renewals = 0

    @classmethod
    def from_config(
        cls,
        config: ZentaoConfig,
        *,
        retry: Optional[RetryConfig] = None,
        http: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "SessionManager":
        client = ZentaoClient(
            base_url=config.url,
            timeout_seconds=config.timeout_seconds,
            retry=retry,
            http=http,
        )
        return cls(
            client, account=config.username, password=config.password, logger=logger
        )

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def base_url(self) -> str:
        return self.client.base_url

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "SessionManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # --- Lifecycle ---------------------------------------------------------- #

    async def ensure_session(self) -> str:
        token = self._token
        if token:
            return token
        async with self._lock:
            if self._token is None:
                self._token = await self._login()
            return self._token

    async def force_renew(self, stale_token: Optional[str] = None) -> str:
        """
        Drop the current token and log in again.
        With `stale_token`, a renewal already completed by another caller
        (token differs from the stale one) is reused instead of repeated.
        """
        async with self._lock:
            if stale_token is not None and self._token and self._token != stale_token:
                return self._token
            self._token = None
            token = await self._login()
            if not token:
                raise SessionError("Re-login failed: no session id obtained.")
            self._token = token
            self.renewals += 1
        log_event("session_renewed", self.log, level=logging.WARNING)
        return token

    async def _login(self) -> str:
        try:
            resp = await self.client.send("GET", format_endpoint("session_id"))
            payload = unwrap_envelope(
                _decode_json(resp, "getSessionID"), context="getSessionID"
            )
        except (TransportError, UpstreamDataError) as exc:
            raise SessionError(f"Failed to obtain session id: {exc}") from exc

        sid = payload.get("sessionID") if isinstance(payload, dict) else None
        if not isinstance(sid, str) or not sid:
            raise SessionError("Failed to obtain session id: reply has no sessionID.")

        form = {
            "account": self.account,
            "password": self._password,
            "keepLogin[]": "on",
            "referer": f"{self.base_url}/my/",
        }
        try:
            resp = await self.client.send(
                "POST", format_endpoint("login"), params={SESSION_PARAM: sid}, data=form
            )
            if classify_response(resp.text) is SessionState.EXPIRED:
                raise UpstreamDataError(
                    "login page returned instead of a reply", response_excerpt=resp.text
                )
            unwrap_envelope(_decode_json(resp, "login"), context="login")
        except (TransportError, UpstreamDataError) as exc:
            raise SessionError(f"Login failed for account {self.account!r}: {exc}") from exc

        log_event("session_login", self.log)
        return sid

    # --- Requests ----------------------------------------------------------- #

    async def authenticated_request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        method: str = "GET",
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Execute `endpoint` with the session attached and return the
        unwrapped payload. An expired session is renewed once; a second
        expiry raises SessionError.
        """
        context = f"{method.upper()} {endpoint}"
        resp = await self._send(method, endpoint, params=params, data=data)
        return unwrap_envelope(_decode_json(resp, context), context=context)

    async def fetch_binary(
        self, url: str, *, timeout: float = BINARY_TIMEOUT_SECONDS
    ) -> bytes:
        """Authenticated download of a file/image URL found in entity HTML."""
        resp = await self._send(
            "GET", self.client.absolute_url(url), timeout=timeout, binary=True
        )
        return resp.content

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        binary: bool = False,
    ) -> httpx.Response:
        for attempt in range(2):
            token = await self.ensure_session()
            query = {**(params or {}), SESSION_PARAM: token}
            resp = await self.client.send(
                method, url, params=query, data=data, timeout=timeout
            )
            if not self._is_expired(resp, binary=binary):
                return resp
            if attempt == 0:
                log_event(
                    "session_expired",
                    self.log,
                    level=logging.WARNING,
                    endpoint=url.split("?", 1)[0],
                )
                await self.force_renew(token)
                continue
        raise SessionError(
            f"Session still expired after re-login ({method.upper()} {url.split('?', 1)[0]})"
        )

    @staticmethod
    def _is_expired(resp: httpx.Response, *, binary: bool) -> bool:
        if binary:
            ctype = resp.headers.get("content-type", "")
            if not ctype.startswith("text/"):
                return False
        return classify_response(resp.text) is SessionState.EXPIRED


__all__ = [
    "SessionManager",
    "SessionState",
    "classify_response",
    "LOGIN_MARKERS",
    "SESSION_PARAM",
]
