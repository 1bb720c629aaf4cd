"""zentao_mcp package exports."""

from .core.client import RetryConfig, ZentaoClient
from .core.config import ZentaoConfig, create_session_from_env, load_env_config
from .core.errors import (
    ConfigurationError,
    PartialBatchFailure,
    SessionError,
    TransportError,
    UpstreamDataError,
    ZentaoError,
)
from .core.images import ImageFetchPipeline
from .core.pagination import PaginatedFetcher
from .core.search import SearchEngine
from .core.session import SessionManager

__all__ = [
    # Client
    "ZentaoClient",
    "RetryConfig",
    "SessionManager",
    # Components
    "PaginatedFetcher",
    "SearchEngine",
    "ImageFetchPipeline",
    # Config helpers
    "ZentaoConfig",
    "load_env_config",
    "create_session_from_env",
    # Exceptions
    "ZentaoError",
    "ConfigurationError",
    "SessionError",
    "TransportError",
    "UpstreamDataError",
    "PartialBatchFailure",
]
