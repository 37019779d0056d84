"""Chat completion client for the OpenAI-compatible API (Ollama or OpenAI)."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any, Union

import httpx

from ..core.config import get_cached_settings
from ..core.exceptions import LLMError

logger = logging.getLogger(__name__)

__all__ = [
    "CompletionReply",
    "FreeTextReply",
    "LLMError",
    "StructuredReply",
    "call_completion",
    "extract_json",
]


@dataclass(frozen=True)
class StructuredReply:
    """The model called a function; ``arguments`` is the raw JSON text."""
    name: str
    arguments: str
    content: str = ""


@dataclass(frozen=True)
class FreeTextReply:
    """The model answered in prose."""
    text: str


CompletionReply = Union[StructuredReply, FreeTextReply]


def _decode_reply(message: dict[str, Any]) -> CompletionReply:
    content = message.get("content") or ""

    tool_calls = message.get("tool_calls")
    if tool_calls and isinstance(tool_calls, list):
        function = tool_calls[0].get("function") or {}
        return StructuredReply(
            name=function.get("name") or "",
            arguments=_arguments_text(function.get("arguments")),
            content=content,
        )

    # Legacy "functions" API shape
    function_call = message.get("function_call")
    if function_call and isinstance(function_call, dict):
        return StructuredReply(
            name=function_call.get("name") or "",
            arguments=_arguments_text(function_call.get("arguments")),
            content=content,
        )

    return FreeTextReply(text=content)


def _arguments_text(arguments: Any) -> str:
    # Ollama returns arguments as an object, OpenAI as a JSON string
    if arguments is None:
        return ""
    if isinstance(arguments, str):
        return arguments
    return json.dumps(arguments)


def _first_message(data: Any) -> dict[str, Any]:
    """Return the first choice's message from a completions body."""
    choices = data.get("choices") if isinstance(data, dict) else None
    if not isinstance(choices, list) or not choices:
        logger.error(f"Completion body has no choices: {str(data)[:200]}")
        raise LLMError("LLM response has no choices")

    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        logger.error(f"First choice has no message: {str(choices[0])[:200]}")
        raise LLMError("LLM response choice has no message")
    return message


def call_completion(
    messages: list[dict[str, str]],
    function: dict[str, Any] | None = None,
    force_function: bool = False,
    model: str | None = None,
    temperature: float | None = None,
    max_tokens: int = 1200,
    timeout: float | None = None,
    client: httpx.Client | None = None,
) -> CompletionReply:
    """Call the chat completions API with proper error handling.

    Args:
        messages: Chat messages to send
        function: Optional function definition the model may call
        force_function: Require the model to call ``function``
        model: Model to use (defaults to settings.llm_model)
        temperature: Sampling temperature (defaults to settings.llm_temperature)
        max_tokens: Maximum tokens in response
        timeout: Request timeout in seconds (defaults to settings.request_timeout)
        client: Optional httpx client (tests pass one with a mock transport)
    """
    settings = get_cached_settings()
    effective_model = model or settings.llm_model
    effective_temperature = settings.llm_temperature if temperature is None else temperature
    effective_timeout = timeout or settings.request_timeout

    payload: dict[str, Any] = {
        "model": effective_model,
        "messages": messages,
        "temperature": effective_temperature,
        "max_tokens": max_tokens,
    }
    if function:
        payload["tools"] = [{"type": "function", "function": function}]
        if force_function:
            payload["tool_choice"] = {"type": "function", "function": {"name": function["name"]}}

    headers = {"Authorization": f"Bearer {settings.llm_api_key}"} if settings.llm_api_key else {}

    logger.debug(
        f"Calling LLM with model={effective_model}, temp={effective_temperature}, "
        f"function={function['name'] if function else None}"
    )

    http = client or httpx
    try:
        response = http.post(
            f"{settings.llm_base_url}/v1/chat/completions",
            json=payload,
            headers=headers,
            timeout=effective_timeout,
        )
        response.raise_for_status()
    except httpx.TimeoutException as e:
        logger.error(f"LLM request timed out after {effective_timeout}s")
        raise LLMError(f"LLM request timed out after {effective_timeout}s") from e
    except httpx.HTTPStatusError as e:
        logger.error(f"LLM HTTP error: {e.response.status_code} - {e.response.text[:200]}")
        raise LLMError(f"LLM request failed with status {e.response.status_code}") from e
    except httpx.HTTPError as e:
        logger.error(f"LLM transport error: {e}")
        raise LLMError(f"LLM request failed: {e}") from e

    try:
        data = response.json()
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse LLM response as JSON: {response.text[:200]}")
        raise LLMError("LLM returned invalid JSON") from e

    reply = _decode_reply(_first_message(data))
    if isinstance(reply, StructuredReply):
        logger.info(f"Got function call: {reply.name}({reply.arguments[:200]!r})")
    else:
        logger.info(f"Got reply text: {reply.text[:200]!r}")
    return reply


def extract_json(text: str) -> dict[str, Any] | None:
    """Extract the outermost JSON object from text, or None if there is none."""
    if not text:
        return None

    start = text.find("{")
    end = text.rfind("}")

    if start == -1 or end == -1 or end <= start:
        logger.warning(f"No JSON object found in text: {text[:100]}...")
        return None

    snippet = text[start : end + 1]
    try:
        result = json.loads(snippet)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse failed at position {e.pos}: {e.msg}")
        return None
    return result if isinstance(result, dict) else None
