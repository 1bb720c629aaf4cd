from __future__ import annotations

import re
from typing import Any, List, Optional

_SID_RE = re.compile(r"(zentaosid=)[^&#\s]*", re.IGNORECASE)
EXCERPT_LIMIT = 500


def redact(text: Optional[str]) -> str:
    """Mask session ids in URLs and bodies before they reach a message or log."""
    if not text:
        return ""
    return _SID_RE.sub(r"\1***", text)


def excerpt(text: Optional[str], limit: int = EXCERPT_LIMIT) -> str:
    return redact((text or "")[:limit])


class ZentaoError(Exception):
    """Base error for all client failures."""


class ConfigurationError(ZentaoError, ValueError):
    """Missing or invalid credentials / endpoint."""


class SessionError(ZentaoError):
    """Login failed, or the session stayed expired after one renewal."""


class TransportError(ZentaoError):
    def __init__(
        self,
        message: str,
        *,
        method: Optional[str] = None,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
    ):
        url = redact(url) if url else None
        prefix = " ".join(str(p) for p in (status_code, method, url) if p)
        super().__init__(f"{prefix}: {message}" if prefix else message)
        self.method = method
        self.url = url
        self.status_code = status_code
        self.response_text = excerpt(response_text) if response_text else None


class UpstreamDataError(ZentaoError):
    def __init__(self, message: str, *, response_excerpt: Optional[str] = None):
        snippet = excerpt(response_excerpt) if response_excerpt else None
        super().__init__(f"{message} (body: {snippet!r})" if snippet else message)
        self.response_excerpt = snippet


class PartialBatchFailure(ZentaoError):
    """Raised on request when some items of a batch failed."""

    def __init__(self, results: List[Any]):
        failed = [r for r in results if not getattr(r, "success", False)]
        super().__init__(f"{len(failed)} of {len(results)} batch items failed")
        self.results = results
        self.failed = failed


__all__ = [
    "ZentaoError",
    "ConfigurationError",
    "SessionError",
    "TransportError",
    "UpstreamDataError",
    "PartialBatchFailure",
    "redact",
    "excerpt",
]
