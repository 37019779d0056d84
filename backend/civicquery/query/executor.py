"""Sanitize, run and format generated SQL."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any, Iterable

from ..core.db import fetch_typed_rows
from ..core.exceptions import NoRowsError, UnsafeSQLError
from ..security.sql_guard import is_safe_sql
from ..security.sql_sanitizer import PhraseSanitizer, SQLSanitizer
from .formatter import format_cell, format_header, render_table

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResultTable:
    """A formatted query result."""
    sql: str
    columns: list[str]
    column_types: list[str]
    rows: list[tuple[Any, ...]]
    text: str

    @property
    def row_count(self) -> int:
        return len(self.rows)


class QueryExecutor:
    """Runs generated SELECT queries against the local dataset."""

    def __init__(
        self,
        db_path: str | Path,
        sanitizer: SQLSanitizer | None = None,
        max_rows: int | None = 200,
        timeout: float | None = 30,
        allowed_tables: Iterable[str] | None = None,
    ):
        self.db_path = db_path
        self.sanitizer = sanitizer or PhraseSanitizer()
        self.max_rows = max_rows
        self.timeout = timeout
        self.allowed_tables = frozenset(allowed_tables) if allowed_tables is not None else None

    def execute(self, sql: str, is_currency: bool = False, timeout: float | None = None) -> ResultTable:
        """Run ``sql`` and format the rows.

        Raises:
            UnsafeSQLError: If the query is not a single SELECT over known tables
            ExecutionError: If SQLite rejects or interrupts the query
            NoRowsError: If the query returns nothing
            UnsupportedTypeError: If a cell cannot be formatted
        """
        query = self.sanitizer.sanitize(sql.strip())
        logger.info(f"Running SQL: {query[:200]}")

        safe, reason = is_safe_sql(query, self.allowed_tables)
        if not safe:
            logger.warning(f"Rejected generated SQL: {reason}")
            raise UnsafeSQLError(reason, sql=query)

        columns, column_types, rows = fetch_typed_rows(
            self.db_path,
            query,
            max_rows=self.max_rows,
            timeout=timeout or self.timeout,
        )
        if not rows:
            raise NoRowsError(query)

        headers = [format_header(c, t) for c, t in zip(columns, column_types)]
        cells = [[format_cell(value, is_currency) for value in row] for row in rows]
        text = render_table(headers, cells)

        logger.info(f"Query returned {len(rows)} rows, {len(columns)} columns")
        return ResultTable(
            sql=query,
            columns=columns,
            column_types=column_types,
            rows=list(rows),
            text=text,
        )
