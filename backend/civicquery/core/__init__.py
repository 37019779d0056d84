"""Core infrastructure module.

Contains configuration, SQLite access, models, and exceptions.
"""

from .config import Settings, get_settings, get_cached_settings, clear_settings_cache
from .db import fetch_typed_rows, get_db_connection, storage_class
from .exceptions import (
    CivicQueryError,
    ConfigurationError,
    EmbeddingServiceError,
    EmptyResultError,
    ExecutionError,
    LLMError,
    MalformedResponseError,
    NoRowsError,
    QueryNotFoundError,
    RateLimitError,
    UnexpectedPayloadShapeError,
    UnsafeSQLError,
    UnsupportedTypeError,
)
from .models import (
    CHART_TYPES,
    AskRequest,
    AskResponse,
    ChartResponse,
    ChartSelection,
    DataPoint,
    SQLAnalysisResult,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "get_cached_settings",
    "clear_settings_cache",
    # Database
    "fetch_typed_rows",
    "get_db_connection",
    "storage_class",
    # Exceptions
    "CivicQueryError",
    "ConfigurationError",
    "EmbeddingServiceError",
    "EmptyResultError",
    "ExecutionError",
    "LLMError",
    "MalformedResponseError",
    "NoRowsError",
    "QueryNotFoundError",
    "RateLimitError",
    "UnexpectedPayloadShapeError",
    "UnsafeSQLError",
    "UnsupportedTypeError",
    # Models
    "CHART_TYPES",
    "AskRequest",
    "AskResponse",
    "ChartResponse",
    "ChartSelection",
    "DataPoint",
    "SQLAnalysisResult",
]
