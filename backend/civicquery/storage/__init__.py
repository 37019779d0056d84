"""Query log persistence."""

from .query_log import QueryLog, QueryRecord

__all__ = ["QueryLog", "QueryRecord"]
