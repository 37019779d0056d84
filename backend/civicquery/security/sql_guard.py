"""Read-only guard for generated SQLite queries.

The dataset connection is already opened with ``mode=ro``; this guard
rejects anything that is not a single SELECT before it reaches SQLite, so
the user gets a clear reason instead of a driver error.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional, Tuple

import sqlparse
from sqlparse.sql import Statement
from sqlparse.tokens import DDL, DML, Comment, Keyword

logger = logging.getLogger(__name__)

# Statements and keywords that can write, attach files, or change the connection
DANGEROUS_KEYWORDS = frozenset({
    "INSERT", "UPDATE", "DELETE", "DROP", "ALTER", "CREATE",
    "ATTACH", "DETACH", "PRAGMA", "VACUUM", "REINDEX", "ANALYZE",
})

_FENCE = re.compile(r"```(?:sql)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)
_STRING_LITERAL = re.compile(r"'(?:[^']|'')*'")
_FROM_OR_JOIN = re.compile(r"\b(?:FROM|JOIN)\b", re.IGNORECASE)
_CLAUSE_WORDS = (
    "WHERE|GROUP|ORDER|LIMIT|HAVING|WINDOW|JOIN|INNER|LEFT|RIGHT|FULL|CROSS|NATURAL"
    "|OUTER|ON|USING|UNION|EXCEPT|INTERSECT"
)
# One FROM-list entry: name, optional alias, optional trailing comma
_FROM_ITEM = re.compile(
    rf"\s*[\"`\[]?([A-Za-z_]\w*)[\"`\]]?"
    rf"(?:\s+(?:AS\s+)?(?!(?:{_CLAUSE_WORDS})\b)[\"`\[]?[A-Za-z_]\w*[\"`\]]?)?"
    rf"\s*(,)?",
    re.IGNORECASE,
)
_CTE_NAME = re.compile(
    r"(?:\bWITH(?:\s+RECURSIVE)?|,)\s*([A-Za-z_]\w*)\s*(?:\([^)]*\))?\s+AS\s*\(",
    re.IGNORECASE,
)


def extract_sql(text: str) -> str:
    """Extract SQL from LLM response, handling markdown code blocks."""
    if not text:
        return ""
    fenced = _FENCE.search(text)
    return (fenced.group(1) if fenced else text).strip()


def referenced_tables(sql: str) -> set[str]:
    """Lower-cased names after FROM/JOIN, minus CTE names and string literals.

    Every entry of a comma-separated FROM list counts. Subqueries are
    skipped here; their own FROM clauses are matched separately.
    """
    bare = _STRING_LITERAL.sub("''", sql)
    tables = set()
    for keyword in _FROM_OR_JOIN.finditer(bare):
        pos = keyword.end()
        while True:
            item = _FROM_ITEM.match(bare, pos)
            if item is None:
                break
            tables.add(item.group(1).lower())
            if not item.group(2):
                break
            pos = item.end()
    ctes = {name.lower() for name in _CTE_NAME.findall(bare)}
    return tables - ctes


def _find_forbidden(token) -> Optional[str]:
    """Walk the token tree; return a reason for the first forbidden token."""
    if token.ttype is not None:
        value = token.normalized.upper()
        if token.ttype in Comment:
            hidden = next((k for k in sorted(DANGEROUS_KEYWORDS) if re.search(rf"\b{k}\b", value)), None)
            return f"Dangerous keyword '{hidden}' found in comment" if hidden else None
        if token.ttype in (DML, DDL) and value != "SELECT":
            return f"Non-SELECT DML/DDL token: {value}"
        if token.ttype in Keyword and value in DANGEROUS_KEYWORDS:
            return f"Dangerous keyword: {value}"
        return None

    for sub in getattr(token, "tokens", ()):
        reason = _find_forbidden(sub)
        if reason:
            return reason
    return None


def _statement_kind(stmt: Statement) -> str:
    kind = stmt.get_type()
    if kind != "UNKNOWN":
        return kind
    # sqlparse cannot type some CTEs; fall back to the leading keyword
    first = stmt.token_first(skip_cm=True, skip_ws=True)
    word = first.normalized.upper() if first is not None else ""
    return "SELECT" if word in ("SELECT", "WITH") else (word or "EMPTY")


def is_safe_sql(sql: str, allowed_tables: Iterable[str] | None = None) -> Tuple[bool, str]:
    """
    Validate that SQL is a single read-only statement.

    Args:
        sql: The SQL query to validate
        allowed_tables: Optional table names the query may read from

    Returns:
        Tuple of (is_safe, error_reason)
    """
    candidate = sql.strip().rstrip(";").strip()
    if not candidate:
        return False, "Empty SQL"

    statements = [s for s in sqlparse.parse(candidate) if str(s).strip()]
    if len(statements) != 1:
        return False, f"Expected 1 statement, got {len(statements)}"

    stmt = statements[0]
    kind = _statement_kind(stmt)
    if kind != "SELECT":
        return False, f"Only SELECT statements allowed, got: {kind}"

    reason = _find_forbidden(stmt)
    if reason:
        return False, reason

    if allowed_tables is not None:
        allowed = {t.lower() for t in allowed_tables}
        unknown = sorted(referenced_tables(candidate) - allowed)
        if unknown:
            logger.debug(f"Query references tables outside the catalog: {unknown}")
            return False, f"Unknown table(s): {', '.join(unknown)}"

    return True, ""
