"""Unit tests for the chat completion client."""

from __future__ import annotations

import json
import os
import sys

import httpx
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from civicquery.core.exceptions import LLMError
from civicquery.llm.client import FreeTextReply, StructuredReply, call_completion, extract_json

FUNCTION = {"name": "sql_analysis", "description": "d", "parameters": {"type": "object", "properties": {}}}


def _client(status, body):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    return httpx.Client(transport=httpx.MockTransport(handler)), requests


def _message(message):
    return {"choices": [{"message": message}]}


class TestCallCompletion:
    """Tests for call_completion."""

    def test_tool_call_reply(self):
        """Tool calls decode into a StructuredReply with JSON arguments."""
        client, requests = _client(200, _message({
            "content": "",
            "tool_calls": [{"function": {"name": "sql_analysis", "arguments": {"sql": "SELECT 1"}}}],
        }))
        reply = call_completion([{"role": "user", "content": "q"}], function=FUNCTION, client=client)
        assert isinstance(reply, StructuredReply)
        assert reply.name == "sql_analysis"
        assert json.loads(reply.arguments) == {"sql": "SELECT 1"}

        sent = json.loads(requests[0].content)
        assert sent["tools"] == [{"type": "function", "function": FUNCTION}]
        assert "tool_choice" not in sent
        assert requests[0].url.path == "/v1/chat/completions"

    def test_forced_function(self):
        """Forcing a function sets tool_choice."""
        client, requests = _client(200, _message({
            "tool_calls": [{"function": {"name": "sql_analysis", "arguments": "{}"}}],
        }))
        call_completion([{"role": "user", "content": "q"}], function=FUNCTION, force_function=True, client=client)
        sent = json.loads(requests[0].content)
        assert sent["tool_choice"] == {"type": "function", "function": {"name": "sql_analysis"}}

    def test_legacy_function_call(self):
        """The older function_call shape is also understood."""
        client, _ = _client(200, _message({"function_call": {"name": "sql_analysis", "arguments": "{}"}}))
        reply = call_completion([{"role": "user", "content": "q"}], function=FUNCTION, client=client)
        assert reply == StructuredReply(name="sql_analysis", arguments="{}", content="")

    def test_text_reply(self):
        """Plain content becomes a FreeTextReply."""
        client, _ = _client(200, _message({"content": "No such data."}))
        reply = call_completion([{"role": "user", "content": "q"}], client=client)
        assert reply == FreeTextReply(text="No such data.")

    def test_http_error(self):
        """Non-2xx responses raise LLMError."""
        client, _ = _client(500, {"error": "boom"})
        with pytest.raises(LLMError, match="500"):
            call_completion([{"role": "user", "content": "q"}], client=client)

    def test_invalid_json(self):
        """Non-JSON bodies raise LLMError."""
        client, _ = _client(200, "not json")
        with pytest.raises(LLMError, match="invalid JSON"):
            call_completion([{"role": "user", "content": "q"}], client=client)

    def test_missing_choices(self):
        """Responses without choices raise LLMError."""
        client, _ = _client(200, {"choices": []})
        with pytest.raises(LLMError, match="choices"):
            call_completion([{"role": "user", "content": "q"}], client=client)


class TestExtractJSON:
    """Tests for extract_json."""

    def test_object_in_text(self):
        """The outermost object is pulled out of surrounding text."""
        assert extract_json('Sure: {"a": {"b": 1}} done') == {"a": {"b": 1}}

    def test_no_object(self):
        """Text without an object gives None."""
        assert extract_json("no json here") is None
        assert extract_json("") is None
