"""Rewrites known unescaped apostrophes in generated SQL.

Models reliably write possessive proper nouns such as ``Children's Services``
inside single-quoted literals without doubling the apostrophe. The sanitizer
doubles the apostrophe for each known phrase. It is a denylist, not general
escaping: unknown phrases pass through untouched.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Protocol

from ..catalog.tables import TableCatalog

logger = logging.getLogger(__name__)

DEFAULT_PHRASES = (
    "Children's Services",
    "Mayor's Office",
)

# An apostrophe that is not already part of a doubled pair
_LONE_QUOTE = "(?<!')'(?!')"


class SQLSanitizer(Protocol):
    def sanitize(self, sql: str) -> str: ...


def _phrase_pattern(phrase: str) -> re.Pattern[str]:
    parts = [re.escape(part) for part in phrase.split("'")]
    return re.compile(_LONE_QUOTE.join(parts))


class PhraseSanitizer:
    """Doubles lone apostrophes inside each known phrase.

    Already-doubled apostrophes are left alone, so sanitizing twice gives the
    same result as sanitizing once.
    """

    def __init__(self, phrases: Iterable[str] = DEFAULT_PHRASES):
        unique = list(dict.fromkeys(p for p in phrases if "'" in p))
        self.phrases = tuple(unique)
        self._rules = [(_phrase_pattern(p), p.replace("'", "''")) for p in self.phrases]

    @classmethod
    def for_catalog(cls, catalog: TableCatalog, extra: Iterable[str] = DEFAULT_PHRASES) -> "PhraseSanitizer":
        """Known phrases plus every enum value in the catalog that has an apostrophe."""
        phrases = list(extra)
        for table in catalog:
            for values in table.enums.values():
                phrases.extend(v for v in values if isinstance(v, str))
        return cls(phrases)

    def sanitize(self, sql: str) -> str:
        result = sql
        for pattern, replacement in self._rules:
            result = pattern.sub(lambda _: replacement, result)
        if result != sql:
            logger.info("Escaped known apostrophe phrases in generated SQL")
        return result
