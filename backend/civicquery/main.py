from __future__ import annotations

import logging
import os
import re
import threading
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .assistant import Assistant
from .core import (
    AskRequest,
    AskResponse,
    ChartResponse,
    CivicQueryError,
    ConfigurationError,
    EmbeddingServiceError,
    EmptyResultError,
    ExecutionError,
    LLMError,
    MalformedResponseError,
    NoRowsError,
    QueryNotFoundError,
    UnexpectedPayloadShapeError,
    UnsafeSQLError,
    UnsupportedTypeError,
    get_settings,
)
from .viz import chart_input

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(title="CivicQuery", version="0.1.0")
settings = get_settings()

_state_lock = threading.RLock()

cors_origins = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)


# --- Structured Error Response ---

class ErrorDetail(BaseModel):
    error_code: str
    message: str
    details: dict[str, Any] | None = None


def raise_error(status_code: int, error_code: str, message: str, details: dict | None = None):
    """Raise HTTPException with structured error detail."""
    raise HTTPException(
        status_code=status_code,
        detail=ErrorDetail(error_code=error_code, message=message, details=details).model_dump()
    )


# --- Input Sanitization ---

MAX_MESSAGE_LENGTH = 2000

NO_RESULTS_ANSWER = "No results found for that query."


def sanitize_user_input(message: str) -> str:
    """Trim and length-limit a question before it reaches the model."""
    if not message:
        return ""
    sanitized = message[:MAX_MESSAGE_LENGTH]
    # Code fences confuse the SQL prompt
    sanitized = re.sub(r"```", "", sanitized)
    return sanitized.strip()


# --- Startup Events ---

@app.on_event("startup")
def _load_assistant() -> None:
    logger.info("Building assistant on startup...")
    with _state_lock:
        app.state.assistant = Assistant.from_settings(settings)
    logger.info(f"Assistant ready: {len(app.state.assistant.catalog)} tables indexed")


def get_assistant() -> Assistant:
    with _state_lock:
        assistant = getattr(app.state, "assistant", None)
        if assistant is None:
            logger.info("Assistant not built, building now...")
            assistant = Assistant.from_settings(settings)
            app.state.assistant = assistant
        return assistant


def _raise_for(exc: Exception) -> None:
    """Map pipeline errors onto structured HTTP errors."""
    if isinstance(exc, EmptyResultError):
        raise_error(404, "no_table", "No table matches that question closely enough", {"question": exc.question})
    if isinstance(exc, QueryNotFoundError):
        raise_error(404, "query_not_found", str(exc), {"query_id": exc.query_id})
    if isinstance(exc, UnsafeSQLError):
        raise_error(422, "unsafe_sql", str(exc), {"sql": exc.sql, "reason": exc.reason})
    if isinstance(exc, ExecutionError):
        raise_error(422, "execution_error", f"Database query failed: {exc}", {"sql": exc.sql})
    if isinstance(exc, (MalformedResponseError, UnexpectedPayloadShapeError)):
        raise_error(502, "malformed_response", f"Model returned an unusable reply: {exc}")
    if isinstance(exc, LLMError):
        raise_error(502, "llm_error", f"LLM service error: {exc}")
    if isinstance(exc, EmbeddingServiceError):
        raise_error(502, "embedding_error", f"Embedding service error: {exc}")
    if isinstance(exc, UnsupportedTypeError):
        raise_error(500, "unsupported_type", str(exc))
    if isinstance(exc, ConfigurationError):
        raise_error(500, "configuration_error", str(exc))
    raise exc


# --- API Endpoints ---

@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/tables")
def list_tables() -> dict[str, Any]:
    """List catalog tables and their descriptions."""
    assistant = get_assistant()
    tables = [{"name": table.name, "description": table.description} for table in assistant.catalog]
    return {"tables": tables, "count": len(tables)}


@app.post("/api/ask", response_model=AskResponse)
def ask(request: AskRequest) -> AskResponse:
    question = sanitize_user_input(request.question)
    if not question:
        raise_error(400, "empty_question", "Question is required")

    logger.info(f"Ask request: {question[:100]}...")
    assistant = get_assistant()

    try:
        answer = assistant.ask(question, user_id=request.user_id)
    except NoRowsError as exc:
        logger.info("Query returned no rows")
        return AskResponse(question=question, answer=NO_RESULTS_ANSWER, sql=exc.sql, warnings=["no_rows"])
    except CivicQueryError as exc:
        logger.error(f"Ask failed: {type(exc).__name__}: {exc}")
        _raise_for(exc)

    analysis = answer.analysis
    if not analysis.has_sql:
        return AskResponse(
            question=question,
            table=answer.table.name,
            answer=analysis.missing_data,
            warnings=["missing_data"],
        )

    result = answer.result
    max_rows = assistant.executor.max_rows
    warnings: list[str] = []
    if max_rows and result.row_count >= max_rows:
        warnings.append(f"results_truncated: {max_rows}")

    logger.info("Ask response complete")

    return AskResponse(
        question=question,
        table=answer.table.name,
        answer=result.text,
        schema_comment=analysis.schema_comment,
        applicability=analysis.applicability,
        sql=analysis.sql,
        is_currency=analysis.is_currency,
        result=result.text,
        query_id=answer.query_id,
        warnings=warnings,
    )


def _chart_response(query_id: int, publish: bool, user_id: str = "") -> ChartResponse:
    assistant = get_assistant()
    try:
        if publish:
            selection, outcome = assistant.publish(query_id, user_id=user_id)
        else:
            selection, outcome = assistant.chart(query_id)
    except CivicQueryError as exc:
        logger.error(f"Chart for query {query_id} failed: {type(exc).__name__}: {exc}")
        _raise_for(exc)

    return ChartResponse(
        query_id=query_id,
        supported=outcome.supported,
        message=outcome.message,
        chart=chart_input(selection) if outcome.supported else None,
        locator=outcome.locator,
    )


@app.post("/api/queries/{query_id}/chart", response_model=ChartResponse)
def chart(query_id: int) -> ChartResponse:
    return _chart_response(query_id, publish=False)


@app.post("/api/queries/{query_id}/publish", response_model=ChartResponse)
def publish(query_id: int, user_id: str = "") -> ChartResponse:
    return _chart_response(query_id, publish=True, user_id=user_id)


def run() -> None:
    """Serve the API with uvicorn (``civicquery-api`` console script)."""
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    run()
