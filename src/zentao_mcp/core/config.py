from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import urlsplit

from dotenv import load_dotenv

from .errors import ConfigurationError

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class ZentaoConfig:
    url: str
    username: str
    password: str
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def validate(self) -> "ZentaoConfig":
        if not self.url:
            raise ConfigurationError("ZENTAO_URL not set")
        parts = urlsplit(self.url)
        if parts.scheme not in {"http", "https"} or not parts.netloc:
            raise ConfigurationError(f"Invalid ZenTao URL: {self.url!r}")
        if not self.username:
            raise ConfigurationError("ZENTAO_USERNAME not set")
        if not self.password:
            raise ConfigurationError("ZENTAO_PASSWORD not set")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be > 0")
        return self

    def __repr__(self) -> str:
        return (
            f"ZentaoConfig(url={self.url!r}, username={self.username!r}, "
            f"password='***', timeout_seconds={self.timeout_seconds})"
        )


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def load_env_config(*, use_dotenv: bool = True) -> ZentaoConfig:
    """Load ZenTao URL and credentials from environment (optional .env)."""
    if use_dotenv:
        load_dotenv()
    return ZentaoConfig(
        url=os.getenv("ZENTAO_URL", "").strip().rstrip("/"),
        username=os.getenv("ZENTAO_USERNAME", "").strip(),
        password=os.getenv("ZENTAO_PASSWORD", ""),
        timeout_seconds=_float_env("ZENTAO_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
    )


def create_session_from_env(**kwargs):
    """Create a SessionManager from environment variables."""
    from .session import SessionManager

    config = load_env_config().validate()
    return SessionManager.from_config(config, **kwargs)


__all__ = ["ZentaoConfig", "load_env_config", "create_session_from_env"]
