"""SQL analysis - the first model round trip.

The model sees the selected table's schema, enum values and hints and
either calls ``sql_analysis`` with a query, or answers in prose when the
table cannot answer the question. Prose becomes ``missing_data``.
"""

from __future__ import annotations

from datetime import date
import logging
from typing import Any

from pydantic import ValidationError

from ..catalog.tables import TableDescriptor
from ..core.exceptions import MalformedResponseError
from ..core.models import SQLAnalysisResult
from ..security.sql_guard import extract_sql
from .client import call_completion
from .prompts import PromptTemplates
from .structured import Completer, FunctionSpec, request_structured

logger = logging.getLogger(__name__)

SQL_ANALYSIS_FUNCTION = FunctionSpec(
    name="sql_analysis",
    description="Accepts SQL query analysis derived from user queries.",
    properties={
        "schema": {
            "type": "string",
            "description": "1 to 2 sentences about which columns from the schema to use.",
        },
        "applicability": {
            "type": "string",
            "description": "1 to 2 sentences about which columns and enums are relevant, or which ones are missing.",
        },
        "sql": {
            "type": "string",
            "description": "A single-line SQL query to run. Remember to escape any special characters.",
        },
        "is_currency": {
            "type": "boolean",
            "description": "Whether the query results represent money/currency amounts.",
        },
    },
    required=("schema", "applicability", "sql", "is_currency"),
)


def analyze_sql(
    question: str,
    table: TableDescriptor,
    templates: PromptTemplates,
    today: date | None = None,
    complete: Completer = call_completion,
    **kwargs: Any,
) -> SQLAnalysisResult:
    """Generate SQL for ``question`` against ``table``."""
    logger.info(f"Analyzing question against {table.name}: {question[:100]}")
    messages = templates.render_sql_messages(table, question, today=today)

    result = request_structured(
        messages,
        SQL_ANALYSIS_FUNCTION,
        SQLAnalysisResult,
        free_text_field="missing_data",
        complete=complete,
        **kwargs,
    )

    if result.has_sql:
        sql = extract_sql(result.sql)
        if sql != result.sql:
            # An empty fence leaves neither sql nor missing_data
            try:
                result = SQLAnalysisResult.model_validate({**result.model_dump(by_alias=True), "sql": sql})
            except ValidationError as e:
                logger.error(f"Generated SQL is empty after removing fences: {result.sql[:200]!r}")
                raise MalformedResponseError("sql analysis returned an empty query", raw=result.sql) from e
        logger.info(f"Generated SQL length: {len(result.sql)} chars")
    else:
        logger.info("Model reported missing data instead of SQL")
    return result
