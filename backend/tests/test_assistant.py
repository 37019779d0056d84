"""End-to-end tests for the Assistant pipeline with fake model collaborators."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from civicquery.assistant import Assistant
from civicquery.catalog import TableCatalog
from civicquery.core.config import get_settings
from civicquery.core.exceptions import (
    EmptyResultError,
    MalformedResponseError,
    NoRowsError,
    QueryNotFoundError,
    UnsafeSQLError,
)
from civicquery.llm.prompts import PromptTemplates
from civicquery.query import QueryExecutor
from civicquery.retrieval import RetryingEmbedder, RetryPolicy, SemanticIndex, TableSelector
from civicquery.security import PhraseSanitizer
from civicquery.storage import QueryLog
from civicquery.viz import FilePublisher

from conftest import CATALOG_PATH, PROMPTS_DIR, FakeCompleter, FakeEmbedder


def _assistant(catalog, budget_db, tmp_path, completer, embedder=None):
    budget = TableCatalog([catalog.get("operating_budget")])
    embedder = embedder or FakeEmbedder()
    index = SemanticIndex.build(budget, embedder, retry=RetryPolicy.none())
    return Assistant(
        catalog=budget,
        index=index,
        selector=TableSelector(budget, index, embedder),
        templates=PromptTemplates.load(PROMPTS_DIR),
        executor=QueryExecutor(budget_db, sanitizer=PhraseSanitizer.for_catalog(budget)),
        query_log=QueryLog(tmp_path / "queries.db"),
        complete=completer,
        publisher=FilePublisher(tmp_path / "published", "http://charts.test"),
        today=lambda: date(2026, 10, 17),
    )


class TestAsk:
    """Tests for Assistant.ask."""

    def test_parks_2022(self, catalog, budget_db, tmp_path, fake_completer):
        """A budget question is answered from the operating budget table."""
        assistant = _assistant(catalog, budget_db, tmp_path, fake_completer)
        answer = assistant.ask("What did Parks spend in 2022?", user_id="u1")

        assert answer.table.name == "operating_budget"
        assert "operating_budget" in answer.analysis.sql
        assert "year = 2022" in answer.analysis.sql
        assert answer.analysis.is_currency
        assert "$1,000,234.50" in answer.result.text
        assert answer.query_id is not None

        system = fake_completer.calls[0]["messages"][0]["content"]
        assert "October 17, 2026" in system
        assert "Children's Services" in system

        record = assistant.query_log.fetch(answer.query_id)
        assert record.question == "What did Parks spend in 2022?"
        assert record.results == answer.result.text
        assert record.user_id == "u1"

    def test_missing_data_stops_early(self, catalog, budget_db, tmp_path):
        """Prose answers skip execution and are not logged."""
        completer = FakeCompleter(free_text="The budget has no weather data.")
        assistant = _assistant(catalog, budget_db, tmp_path, completer)
        answer = assistant.ask("Will it rain?")
        assert answer.analysis.missing_data == "The budget has no weather data."
        assert answer.result is None
        assert answer.query_id is None

    def test_no_rows(self, catalog, budget_db, tmp_path):
        """Queries without matches raise NoRowsError."""
        completer = FakeCompleter(sql="SELECT amount FROM operating_budget WHERE year = 1999")
        assistant = _assistant(catalog, budget_db, tmp_path, completer)
        with pytest.raises(NoRowsError) as exc_info:
            assistant.ask("What about 1999?")
        assert exc_info.value.question == "What about 1999?"

    def test_no_table(self, catalog, budget_db, tmp_path, fake_completer):
        """Questions far from every table raise EmptyResultError."""
        embedder = FakeEmbedder({"weather": [-1.0, 0.0]})
        assistant = _assistant(catalog, budget_db, tmp_path, fake_completer, embedder=embedder)
        with pytest.raises(EmptyResultError):
            assistant.ask("What is the weather?")
        assert fake_completer.calls == []

    def test_errors_carry_question(self, catalog, budget_db, tmp_path):
        """Execution and parsing errors raised while answering keep the question."""
        assistant = _assistant(catalog, budget_db, tmp_path, FakeCompleter(sql="DELETE FROM operating_budget"))
        with pytest.raises(UnsafeSQLError) as exc_info:
            assistant.ask("Delete it all")
        assert exc_info.value.question == "Delete it all"

        assistant = _assistant(catalog, budget_db, tmp_path, FakeCompleter(sql="```sql\n```"))
        with pytest.raises(MalformedResponseError) as exc_info:
            assistant.ask("Parks in 2022?")
        assert exc_info.value.question == "Parks in 2022?"


class TestCharts:
    """Tests for chart follow-ups on stored queries."""

    def test_chart(self, catalog, budget_db, tmp_path, fake_completer):
        """A stored query can be charted."""
        assistant = _assistant(catalog, budget_db, tmp_path, fake_completer)
        answer = assistant.ask("How much did Parks spend in 2022?")
        selection, outcome = assistant.chart(answer.query_id)
        assert selection.chart == "bar"
        assert outcome.supported
        assert outcome.locator is None
        assert answer.result.text in fake_completer.calls[-1]["messages"][0]["content"]

    def test_publish(self, catalog, budget_db, tmp_path, fake_completer):
        """Publishing writes the chart page under the query id."""
        assistant = _assistant(catalog, budget_db, tmp_path, fake_completer)
        answer = assistant.ask("How much did Parks spend in 2022?")
        _, outcome = assistant.publish(answer.query_id)
        assert outcome.locator == f"http://charts.test/charts/query-{answer.query_id}.html"
        page = (tmp_path / "published" / "charts" / f"query-{answer.query_id}.html").read_text(encoding="utf-8")
        assert "How much did Parks spend in 2022?" in page

    def test_unsupported_chart(self, catalog, budget_db, tmp_path):
        """Unsupported chart types produce a message, not an error."""
        assistant = _assistant(catalog, budget_db, tmp_path, FakeCompleter(chart_type="scatter"))
        answer = assistant.ask("How much did Parks spend in 2022?")
        _, outcome = assistant.publish(answer.query_id)
        assert not outcome.supported
        assert "scatter" in outcome.message

    def test_unknown_query(self, catalog, budget_db, tmp_path, fake_completer):
        """Charting an unknown query id raises QueryNotFoundError."""
        assistant = _assistant(catalog, budget_db, tmp_path, fake_completer)
        with pytest.raises(QueryNotFoundError):
            assistant.chart(99)


class TestFromSettings:
    """Tests for Assistant.from_settings."""

    def test_builds_from_settings(self, budget_db, tmp_path, fake_completer):
        """Settings paths wire up catalog, templates, executor and log."""
        settings = replace(
            get_settings(),
            catalog_path=CATALOG_PATH,
            prompts_dir=PROMPTS_DIR,
            db_path=str(budget_db),
            query_log_path=str(tmp_path / "log" / "queries.db"),
            publish_dir=str(tmp_path / "published"),
            embedding_retry_at_query_time=True,
        )
        assistant = Assistant.from_settings(settings, embedder=FakeEmbedder(), complete=fake_completer)
        assert len(assistant.index) == 4
        assert isinstance(assistant.selector.embedder, RetryingEmbedder)
        assert "Mayor's Office" in assistant.executor.sanitizer.phrases
