"""Custom exceptions for the application."""

from __future__ import annotations

from typing import Any


class CivicQueryError(Exception):
    """Base class for every error raised by the query pipeline.

    ``question`` is filled in by the assistant for errors raised while
    answering a question.
    """

    question: str | None = None


class ConfigurationError(CivicQueryError):
    """Raised when catalog, templates, or index setup is invalid at startup."""

    pass


class EmbeddingServiceError(CivicQueryError):
    """Raised when the embedding service fails or returns an unusable vector."""

    pass


class RateLimitError(EmbeddingServiceError):
    """Raised when the embedding service rejects a call with HTTP 429."""

    pass


class LLMError(CivicQueryError):
    """Raised when the completion service fails at the transport level."""

    pass


class EmptyResultError(CivicQueryError):
    """Raised when no table lies within the distance bound of a question."""

    def __init__(self, message: str, question: str | None = None):
        super().__init__(message)
        self.question = question


class MalformedResponseError(CivicQueryError):
    """Raised when a structured model payload cannot be decoded."""

    def __init__(self, message: str, raw: Any = None):
        super().__init__(message)
        self.raw = raw


class UnexpectedPayloadShapeError(CivicQueryError):
    """Raised when the model answers with a different function than requested."""

    def __init__(self, expected: str, actual: str | None, raw: Any = None):
        super().__init__(f"expected function call {expected!r}, got {actual!r}")
        self.expected = expected
        self.actual = actual
        self.raw = raw


class ExecutionError(CivicQueryError):
    """Raised when the database rejects or aborts a generated query."""

    def __init__(self, message: str, sql: str | None = None):
        super().__init__(message)
        self.sql = sql


class NoRowsError(CivicQueryError):
    """Raised when a query runs successfully but returns nothing."""

    def __init__(self, sql: str):
        super().__init__("query returned no rows")
        self.sql = sql


class UnsafeSQLError(ExecutionError):
    """Raised when generated SQL is not a single read-only statement."""

    def __init__(self, reason: str, sql: str | None = None):
        super().__init__(f"unsafe SQL: {reason}", sql=sql)
        self.reason = reason


class UnsupportedTypeError(CivicQueryError):
    """Raised when a result cell has a type the formatter cannot render."""

    def __init__(self, value: Any):
        super().__init__(f"unsupported result value type: {type(value).__name__}")
        self.value = value


class QueryNotFoundError(CivicQueryError):
    """Raised when a follow-up chart action names an unknown query id."""

    def __init__(self, query_id: int):
        super().__init__(f"query {query_id} not found")
        self.query_id = query_id
