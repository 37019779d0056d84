"""Unit tests for structured reply parsing, SQL analysis and chart selection."""

from __future__ import annotations

import json
import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from civicquery.core.exceptions import MalformedResponseError, UnexpectedPayloadShapeError
from civicquery.core.models import ChartSelection, SQLAnalysisResult
from civicquery.llm.chart_selector import CHART_SELECT_FUNCTION, select_chart
from civicquery.llm.client import FreeTextReply, StructuredReply
from civicquery.llm.prompts import PromptTemplates
from civicquery.llm.sql_analysis import SQL_ANALYSIS_FUNCTION, analyze_sql
from civicquery.llm.structured import parse_reply, request_structured

from conftest import PROMPTS_DIR, FakeCompleter


def _analysis_call(**fields):
    payload = {"schema": "s", "applicability": "a", "sql": "SELECT 1", "is_currency": False}
    payload.update(fields)
    return StructuredReply(name="sql_analysis", arguments=json.dumps(payload))


def _parse_analysis(reply):
    return parse_reply(reply, SQL_ANALYSIS_FUNCTION, SQLAnalysisResult, free_text_field="missing_data")


@pytest.fixture
def templates():
    return PromptTemplates.load(PROMPTS_DIR)


class TestSQLAnalysisParsing:
    """Tests for decoding sql_analysis replies."""

    def test_function_call(self):
        """A well-formed call populates every field."""
        result = _parse_analysis(_analysis_call(is_currency=True))
        assert result.schema_comment == "s"
        assert result.applicability == "a"
        assert result.sql == "SELECT 1"
        assert result.is_currency is True
        assert result.missing_data == ""
        assert result.has_sql

    def test_free_text_becomes_missing_data(self):
        """Prose replies are reported as missing data with no SQL."""
        result = _parse_analysis(FreeTextReply(text="This table has no weather data."))
        assert result.missing_data == "This table has no weather data."
        assert result.sql == ""
        assert not result.has_sql

    def test_empty_free_text(self):
        """A reply with neither a call nor text is malformed."""
        with pytest.raises(MalformedResponseError):
            _parse_analysis(FreeTextReply(text="   "))

    def test_wrong_function_name(self):
        """A call to a different function is an unexpected shape."""
        reply = StructuredReply(name="select_chart", arguments="{}")
        with pytest.raises(UnexpectedPayloadShapeError) as exc_info:
            _parse_analysis(reply)
        assert exc_info.value.expected == "sql_analysis"
        assert exc_info.value.actual == "select_chart"

    def test_undecodable_arguments_keep_raw(self):
        """Malformed arguments are attached to the error."""
        reply = StructuredReply(name="sql_analysis", arguments="schema: s, sql: SELECT")
        with pytest.raises(MalformedResponseError) as exc_info:
            _parse_analysis(reply)
        assert exc_info.value.raw == "schema: s, sql: SELECT"

    def test_arguments_wrapped_in_prose(self):
        """A JSON object surrounded by text is still decoded."""
        reply = StructuredReply(
            name="sql_analysis",
            arguments='Here you go: {"schema": "s", "applicability": "a", "sql": "SELECT 1", "is_currency": false}',
        )
        assert _parse_analysis(reply).sql == "SELECT 1"

    def test_lenient_json5_arguments(self):
        """Trailing commas and single-quoted keys are accepted."""
        reply = StructuredReply(
            name="sql_analysis",
            arguments="{'schema': 's', 'applicability': 'a', \"sql\": \"SELECT 1\", \"is_currency\": true,}",
        )
        result = _parse_analysis(reply)
        assert result.sql == "SELECT 1"
        assert result.is_currency is True

    def test_missing_required_fields(self):
        """SQL without the reasoning fields is malformed."""
        reply = StructuredReply(name="sql_analysis", arguments='{"sql": "SELECT 1"}')
        with pytest.raises(MalformedResponseError) as exc_info:
            _parse_analysis(reply)
        assert exc_info.value.raw == '{"sql": "SELECT 1"}'

    def test_sql_wins_over_missing_data(self):
        """When both outcomes are filled, the SQL is kept."""
        result = _parse_analysis(_analysis_call(missing_data="nothing"))
        assert result.sql == "SELECT 1"
        assert result.missing_data == ""

    def test_blank_sql_and_no_explanation(self):
        """Whitespace SQL with no explanation is malformed."""
        with pytest.raises(MalformedResponseError):
            _parse_analysis(_analysis_call(sql="   "))


class TestAnalyzeSQL:
    """Tests for analyze_sql."""

    def test_offers_function_without_forcing(self, templates, catalog):
        """The model may answer in prose, so the call is not forced."""
        completer = FakeCompleter()
        analyze_sql("Parks in 2022?", catalog.get("operating_budget"), templates, complete=completer)
        call = completer.calls[0]
        assert call["function"]["name"] == "sql_analysis"
        assert call["force_function"] is False
        assert call["messages"][-1]["content"] == "Parks in 2022?"

    def test_strips_code_fences(self, templates, catalog):
        """Markdown fences around the SQL are removed."""
        completer = FakeCompleter(sql="```sql\nSELECT 1\n```")
        result = analyze_sql("q", catalog.get("operating_budget"), templates, complete=completer)
        assert result.sql == "SELECT 1"

    def test_empty_fence_is_malformed(self, templates, catalog):
        """A fence with no SQL inside leaves neither outcome and is rejected."""
        completer = FakeCompleter(sql="```sql\n```")
        with pytest.raises(MalformedResponseError) as exc_info:
            analyze_sql("q", catalog.get("operating_budget"), templates, complete=completer)
        assert exc_info.value.raw == "```sql\n```"

    def test_missing_data(self, templates, catalog):
        """Prose answers come back as missing data."""
        completer = FakeCompleter(free_text="No weather data here.")
        result = analyze_sql("Will it rain?", catalog.get("operating_budget"), templates, complete=completer)
        assert result.missing_data == "No weather data here."
        assert not result.has_sql


class TestChartSelection:
    """Tests for chart selection parsing."""

    def test_select_chart_forces_function(self, templates):
        """Chart selection always requires the function call."""
        completer = FakeCompleter()
        selection = select_chart("Parks in 2022?", "| total |", templates, complete=completer)
        assert completer.calls[0]["force_function"] is True
        assert selection.chart == "bar"
        assert selection.data[0].date == 2022
        assert selection.is_supported

    def test_unsupported_type_is_accepted(self):
        """Unknown chart types decode fine and are flagged unsupported."""
        reply = StructuredReply(
            name="select_chart",
            arguments=json.dumps({"type": "scatter", "title": "t", "data": [{"value": 1}], "is_currency": False}),
        )
        selection = parse_reply(reply, CHART_SELECT_FUNCTION, ChartSelection)
        assert selection.chart == "scatter"
        assert not selection.is_supported

    def test_free_text_not_allowed(self):
        """Prose is an unexpected shape when a chart call is required."""
        with pytest.raises(UnexpectedPayloadShapeError):
            parse_reply(FreeTextReply(text="A bar chart."), CHART_SELECT_FUNCTION, ChartSelection)

    def test_data_point_needs_value(self):
        """Data points without a value are malformed."""
        reply = StructuredReply(
            name="select_chart",
            arguments=json.dumps({"type": "bar", "title": "t", "data": [{"name": "x"}], "is_currency": False}),
        )
        with pytest.raises(MalformedResponseError):
            parse_reply(reply, CHART_SELECT_FUNCTION, ChartSelection)


class TestRequestStructured:
    """Tests for request_structured."""

    def test_passes_kwargs_to_completer(self):
        """Extra keyword arguments reach the completion call."""
        seen = {}

        def complete(messages, function=None, force_function=False, **kwargs):
            seen.update(kwargs)
            return _analysis_call()

        request_structured(
            [{"role": "user", "content": "q"}],
            SQL_ANALYSIS_FUNCTION,
            SQLAnalysisResult,
            free_text_field="missing_data",
            complete=complete,
            temperature=0.0,
        )
        assert seen == {"temperature": 0.0}
