"""Read-only access to the local SQLite dataset."""

from __future__ import annotations

from contextlib import contextmanager
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Generator

from .exceptions import ExecutionError

logger = logging.getLogger(__name__)

# Number of SQLite VM instructions between deadline checks
_PROGRESS_STEPS = 1000

_STORAGE_CLASSES = {
    int: "INTEGER",
    float: "REAL",
    str: "TEXT",
    bytes: "BLOB",
}


@contextmanager
def get_db_connection(
    db_path: str | Path,
    read_only: bool = True,
) -> Generator[sqlite3.Connection, None, None]:
    """Context manager for dataset connections.

    Args:
        db_path: SQLite database file
        read_only: Open with ``mode=ro`` so generated SQL can never write

    Yields:
        sqlite3.Connection object
    """
    mode = "ro" if read_only else "rwc"
    uri = f"{Path(db_path).resolve().as_uri()}?mode={mode}"
    try:
        conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
    except sqlite3.Error as e:
        logger.error(f"Failed to open database {db_path}: {e}")
        raise ExecutionError(f"Failed to open database {db_path}: {e}") from e
    try:
        yield conn
    finally:
        conn.close()


def _install_deadline(conn: sqlite3.Connection, timeout: float | None) -> None:
    if not timeout:
        return
    deadline = time.monotonic() + timeout

    def _check() -> int:
        # Non-zero return interrupts the running statement
        return 1 if time.monotonic() > deadline else 0

    conn.set_progress_handler(_check, _PROGRESS_STEPS)


def storage_class(values: list[Any]) -> str:
    """Return the SQLite storage class of the first non-null value."""
    for value in values:
        if value is None:
            continue
        return _STORAGE_CLASSES.get(type(value), type(value).__name__.upper())
    return "NULL"


def fetch_typed_rows(
    db_path: str | Path,
    sql: str,
    max_rows: int | None = None,
    timeout: float | None = None,
) -> tuple[list[str], list[str], list[tuple[Any, ...]]]:
    """Execute a SQL query and fetch results with per-column storage types.

    Args:
        db_path: SQLite database file
        sql: The SQL query to execute
        max_rows: Maximum number of rows to fetch (None = all)
        timeout: Seconds before the statement is interrupted

    Returns:
        Tuple of (column_names, column_types, rows)

    Raises:
        ExecutionError: If the query fails or times out
    """
    logger.debug(f"Executing SQL (limit={max_rows}): {sql[:200]}...")

    with get_db_connection(db_path) as conn:
        _install_deadline(conn, timeout)
        try:
            cursor = conn.execute(sql)
            columns = [col[0] for col in cursor.description] if cursor.description else []
            rows = cursor.fetchmany(max_rows) if max_rows else cursor.fetchall()
        except sqlite3.OperationalError as e:
            if "interrupted" in str(e):
                logger.error(f"Query exceeded {timeout}s timeout")
                raise ExecutionError(f"Query timed out after {timeout}s", sql=sql) from e
            logger.error(f"SQL operational error: {e}")
            raise ExecutionError(f"Invalid SQL query: {e}", sql=sql) from e
        except sqlite3.Error as e:
            logger.error(f"Database error: {e}")
            raise ExecutionError(f"Database error: {e}", sql=sql) from e

    column_types = [storage_class([row[i] for row in rows]) for i in range(len(columns))]
    logger.debug(f"Query returned {len(rows)} rows")
    return columns, column_types, rows
