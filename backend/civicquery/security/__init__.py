"""Security and validation module.

Contains SQL guardrails and the apostrophe sanitizer.
"""

from .sql_guard import extract_sql, is_safe_sql, referenced_tables
from .sql_sanitizer import DEFAULT_PHRASES, PhraseSanitizer, SQLSanitizer

__all__ = [
    "extract_sql",
    "is_safe_sql",
    "referenced_tables",
    "DEFAULT_PHRASES",
    "PhraseSanitizer",
    "SQLSanitizer",
]
