"""The question-answering pipeline.

An Assistant is built once at startup (catalog, semantic index, templates)
and then shared by every request. Nothing on it is written after
construction, so concurrent ``ask`` calls need no locking.

    question -> select table -> analyze SQL -> execute -> log
    query id -> select chart -> render / publish
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
from typing import Any, Callable

from .catalog.tables import TableCatalog, TableDescriptor, load_catalog
from .core.config import Settings, get_cached_settings
from .core.exceptions import CivicQueryError, QueryNotFoundError
from .core.models import ChartSelection, SQLAnalysisResult
from .llm.chart_selector import select_chart
from .llm.client import call_completion
from .llm.prompts import PromptTemplates
from .llm.sql_analysis import analyze_sql
from .llm.structured import Completer
from .query.executor import QueryExecutor, ResultTable
from .retrieval.embeddings import Embedder, RetryingEmbedder, RetryPolicy, make_embedder
from .retrieval.semantic_index import SemanticIndex, TableSelector
from .security.sql_sanitizer import PhraseSanitizer
from .storage.query_log import QueryLog, QueryRecord
from .viz.render import (
    ChartInputRenderer,
    ChartOutcome,
    ChartRenderer,
    FilePublisher,
    Publisher,
    render_body,
    render_chart,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Answer:
    question: str
    table: TableDescriptor
    analysis: SQLAnalysisResult
    result: ResultTable | None = None
    query_id: int | None = None


class Assistant:
    """Long-lived service object handed to every request handler."""

    def __init__(
        self,
        catalog: TableCatalog,
        index: SemanticIndex,
        selector: TableSelector,
        templates: PromptTemplates,
        executor: QueryExecutor,
        query_log: QueryLog,
        complete: Completer = call_completion,
        renderer: ChartRenderer | None = None,
        publisher: Publisher | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.catalog = catalog
        self.index = index
        self.selector = selector
        self.templates = templates
        self.executor = executor
        self.query_log = query_log
        self.complete = complete
        self.renderer = renderer or ChartInputRenderer()
        self.publisher = publisher
        self.today = today

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        embedder: Embedder | None = None,
        complete: Completer = call_completion,
        publisher: Publisher | None = None,
    ) -> "Assistant":
        """Load catalog and templates and build the semantic index.

        Raises:
            ConfigurationError: Bad catalog, templates, or embeddings
            EmbeddingServiceError: Embedding failures that outlast the retry policy
        """
        settings = settings or get_cached_settings()
        catalog = load_catalog(settings.catalog_path)
        templates = PromptTemplates.load(settings.prompts_dir)

        embedder = embedder or make_embedder(settings)
        retry = RetryPolicy(
            attempts=settings.embedding_retry_attempts,
            cooldown=settings.embedding_retry_cooldown,
        )
        index = SemanticIndex.build(catalog, embedder, retry=retry)

        query_embedder: Embedder = embedder
        if settings.embedding_retry_at_query_time:
            query_embedder = RetryingEmbedder(embedder, retry)

        selector = TableSelector(
            catalog,
            index,
            query_embedder,
            top_k=settings.table_selection_top_k,
            max_distance=settings.table_selection_max_distance,
        )
        executor = QueryExecutor(
            settings.db_path,
            sanitizer=PhraseSanitizer.for_catalog(catalog),
            max_rows=settings.max_rows,
            timeout=settings.query_timeout,
            allowed_tables=catalog.names(),
        )
        return cls(
            catalog=catalog,
            index=index,
            selector=selector,
            templates=templates,
            executor=executor,
            query_log=QueryLog(settings.query_log_path),
            complete=complete,
            publisher=publisher or FilePublisher(settings.publish_dir, settings.public_host),
        )

    def ask(self, question: str, user_id: str = "", channel_id: str = "") -> Answer:
        """Answer ``question`` from the best-matching table.

        Stops after analysis when the model reports missing data. Errors
        from any stage propagate with the question attached as context.
        """
        logger.info(f"Question: {question[:200]}")
        try:
            return self._answer(question, user_id, channel_id)
        except CivicQueryError as exc:
            if exc.question is None:
                exc.question = question
            raise

    def _answer(self, question: str, user_id: str, channel_id: str) -> Answer:
        table = self.selector.select_table(question)
        analysis = analyze_sql(
            question,
            table,
            self.templates,
            today=self.today(),
            complete=self.complete,
        )
        if not analysis.has_sql:
            return Answer(question=question, table=table, analysis=analysis)

        result = self.executor.execute(analysis.sql, is_currency=analysis.is_currency)
        query_id = self.query_log.store(
            QueryRecord(
                question=question,
                analysis=analysis,
                results=result.text,
                table_name=table.name,
                user_id=user_id,
                channel_id=channel_id,
            )
        )
        return Answer(
            question=question,
            table=table,
            analysis=analysis,
            result=result,
            query_id=query_id,
        )

    def _record(self, query_id: int) -> QueryRecord:
        record = self.query_log.fetch(query_id)
        if record is None:
            raise QueryNotFoundError(query_id)
        return record

    def chart(self, query_id: int) -> tuple[ChartSelection, ChartOutcome]:
        """Select and render a chart for a stored query."""
        record = self._record(query_id)
        selection = select_chart(record.question, record.results, self.templates, complete=self.complete)
        outcome = render_chart(selection, self.renderer, body=render_body(record.question, record.analysis))
        return selection, outcome

    def publish(self, query_id: int, user_id: str = "") -> tuple[ChartSelection, ChartOutcome]:
        """Select, render and publish a chart for a stored query."""
        record = self._record(query_id)
        selection = select_chart(record.question, record.results, self.templates, complete=self.complete)
        metadata: dict[str, Any] = {
            "id": f"query-{query_id}",
            "title": record.question,
            "creator": user_id or record.user_id,
        }
        outcome = render_chart(
            selection,
            self.renderer,
            publisher=self.publisher,
            metadata=metadata,
            body=render_body(record.question, record.analysis),
        )
        return selection, outcome
