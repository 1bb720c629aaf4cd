"""Core client surface for zentao-mcp (transport-agnostic)."""

from .client import RetryConfig, ZentaoClient
from .config import ZentaoConfig, create_session_from_env, load_env_config
from .endpoints import ENDPOINTS, format_endpoint
from .envelope import records_of, unwrap_envelope
from .errors import (
    ConfigurationError,
    PartialBatchFailure,
    SessionError,
    TransportError,
    UpstreamDataError,
    ZentaoError,
)
from .images import ImageFetchPipeline, extract_image_urls
from .pagination import BUGS, STORIES, TEST_CASES, FilterSelector, PaginatedFetcher
from .search import SearchEngine, tokenize
from .session import SessionManager, SessionState, classify_response

__all__ = [
    # Transport
    "ZentaoClient",
    "RetryConfig",
    # Session
    "SessionManager",
    "SessionState",
    "classify_response",
    # Protocol helpers
    "ENDPOINTS",
    "format_endpoint",
    "unwrap_envelope",
    "records_of",
    # Components
    "PaginatedFetcher",
    "FilterSelector",
    "STORIES",
    "BUGS",
    "TEST_CASES",
    "SearchEngine",
    "tokenize",
    "ImageFetchPipeline",
    "extract_image_urls",
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
