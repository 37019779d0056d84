"""Schema-constrained model calls.

Both model round trips (SQL analysis and chart selection) go through
``request_structured``: render messages, offer one function to the model,
then decode whatever comes back into a pydantic model. All provider-specific
decoding stays in ``client``; this module only sees the tagged reply.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Optional, Type, TypeVar

import json5
from pydantic import BaseModel, ValidationError

from ..core.exceptions import MalformedResponseError, UnexpectedPayloadShapeError
from .client import CompletionReply, FreeTextReply, StructuredReply, call_completion, extract_json

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

Completer = Callable[..., CompletionReply]


@dataclass(frozen=True)
class FunctionSpec:
    """A function definition offered to the model."""
    name: str
    description: str
    properties: dict[str, Any]
    required: tuple[str, ...] = field(default_factory=tuple)

    def definition(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": self.properties,
                "required": list(self.required),
            },
        }


def _decode_arguments(arguments: str) -> dict[str, Any]:
    # JSON5 tolerates trailing commas, single quotes and unquoted keys
    try:
        decoded = json5.loads(arguments)
    except ValueError:
        # Some models wrap the object in prose or code fences
        decoded = extract_json(arguments)
    if not isinstance(decoded, dict):
        raise MalformedResponseError(f"function arguments are not a JSON object: {arguments[:200]!r}", raw=arguments)
    return decoded


def parse_reply(
    reply: CompletionReply,
    spec: FunctionSpec,
    model_cls: Type[M],
    free_text_field: Optional[str] = None,
) -> M:
    """Decode a completion reply into ``model_cls``.

    Free text becomes ``{free_text_field: text}`` when a free-text field is
    given; otherwise only a call to ``spec.name`` is acceptable.

    Raises:
        UnexpectedPayloadShapeError: Wrong function name, or free text where a call was required
        MalformedResponseError: Arguments do not decode or validate
    """
    if isinstance(reply, FreeTextReply):
        if free_text_field is None:
            raise UnexpectedPayloadShapeError(spec.name, None, raw=reply.text)
        if not reply.text.strip():
            raise MalformedResponseError("model returned neither a function call nor text", raw=reply.text)
        return model_cls.model_validate({free_text_field: reply.text})

    if not isinstance(reply, StructuredReply):
        raise UnexpectedPayloadShapeError(spec.name, type(reply).__name__, raw=reply)

    if reply.name != spec.name:
        raise UnexpectedPayloadShapeError(spec.name, reply.name, raw=reply.arguments)

    payload = _decode_arguments(reply.arguments)
    try:
        return model_cls.model_validate(payload)
    except ValidationError as e:
        logger.error(f"Invalid {spec.name} payload: {e.errors()}")
        raise MalformedResponseError(f"invalid {spec.name} payload: {e}", raw=reply.arguments) from e


def request_structured(
    messages: list[dict[str, str]],
    spec: FunctionSpec,
    model_cls: Type[M],
    free_text_field: Optional[str] = None,
    complete: Completer = call_completion,
    **kwargs: Any,
) -> M:
    """Ask the model for a ``spec`` function call and decode the result.

    The function is forced when no free-text fallback is allowed.
    """
    reply = complete(
        messages,
        function=spec.definition(),
        force_function=free_text_field is None,
        **kwargs,
    )
    return parse_reply(reply, spec, model_cls, free_text_field=free_text_field)
