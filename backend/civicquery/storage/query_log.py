"""Persisted questions, generated SQL and results for follow-up chart actions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import sqlite3
from pathlib import Path

from ..core.db import get_db_connection
from ..core.exceptions import ExecutionError
from ..core.models import SQLAnalysisResult

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS user_queries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL DEFAULT '',
    channel_id TEXT NOT NULL DEFAULT '',
    question TEXT NOT NULL,
    table_name TEXT NOT NULL DEFAULT '',
    schema_comment TEXT NOT NULL DEFAULT '',
    applicability TEXT NOT NULL DEFAULT '',
    sql_query TEXT NOT NULL DEFAULT '',
    is_currency INTEGER NOT NULL DEFAULT 0,
    results TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
)
"""


@dataclass(frozen=True)
class QueryRecord:
    question: str
    analysis: SQLAnalysisResult
    results: str
    table_name: str = ""
    user_id: str = ""
    channel_id: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: int | None = None


class QueryLog:
    """SQLite-backed store of answered questions."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with get_db_connection(self.path, read_only=False) as conn:
            conn.execute(_SCHEMA)
            conn.commit()

    def store(self, record: QueryRecord) -> int:
        """Insert ``record`` and return its id."""
        analysis = record.analysis
        try:
            with get_db_connection(self.path, read_only=False) as conn:
                cursor = conn.execute(
                    """INSERT INTO user_queries
                    (user_id, channel_id, question, table_name, schema_comment, applicability,
                     sql_query, is_currency, results, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        record.user_id,
                        record.channel_id,
                        record.question,
                        record.table_name,
                        analysis.schema_comment,
                        analysis.applicability,
                        analysis.sql,
                        int(analysis.is_currency),
                        record.results,
                        record.created_at.isoformat(),
                    ),
                )
                conn.commit()
                query_id = int(cursor.lastrowid)
        except sqlite3.Error as e:
            logger.error(f"Failed to store query: {e}")
            raise ExecutionError(f"Failed to store query: {e}") from e

        logger.debug(f"Stored query {query_id}")
        return query_id

    def fetch(self, query_id: int) -> QueryRecord | None:
        """Return the record with ``query_id``, or None if there is none."""
        try:
            with get_db_connection(self.path, read_only=False) as conn:
                row = conn.execute(
                    """SELECT id, user_id, channel_id, question, table_name, schema_comment,
                    applicability, sql_query, is_currency, results, created_at
                    FROM user_queries WHERE id = ?""",
                    (query_id,),
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to fetch query {query_id}: {e}")
            raise ExecutionError(f"Failed to fetch query {query_id}: {e}") from e

        if row is None:
            return None

        (row_id, user_id, channel_id, question, table_name, schema_comment,
         applicability, sql_query, is_currency, results, created_at) = row
        return QueryRecord(
            id=row_id,
            user_id=user_id,
            channel_id=channel_id,
            question=question,
            table_name=table_name,
            analysis=SQLAnalysisResult(
                schema_comment=schema_comment,
                applicability=applicability,
                sql=sql_query,
                is_currency=bool(is_currency),
            ),
            results=results,
            created_at=datetime.fromisoformat(created_at),
        )
