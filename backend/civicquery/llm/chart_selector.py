"""Chart selection - the second model round trip.

Chart types outside CHART_TYPES are returned as-is; the renderer decides
what it can draw.
"""

from __future__ import annotations

import logging
from typing import Any

from ..core.models import CHART_TYPES, ChartSelection
from .client import call_completion
from .prompts import PromptTemplates
from .structured import Completer, FunctionSpec, request_structured

logger = logging.getLogger(__name__)

CHART_SELECT_FUNCTION = FunctionSpec(
    name="select_chart",
    description="Selects a chart type and formats data to be used in the chart.",
    properties={
        "type": {
            "type": "string",
            "description": "Selected type of chart for this data.",
            "enum": list(CHART_TYPES),
        },
        "title": {
            "type": "string",
            "description": "Title for the chart.",
        },
        "data": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Name of the data entry."},
                    "date": {"type": "number", "description": "Year of the data entry."},
                    "value": {"type": "number", "description": "Value of the data entry."},
                },
                "required": ["value"],
            },
        },
        "is_currency": {
            "type": "boolean",
            "description": "Whether the data value represents money/currency amount or not.",
        },
    },
    required=("type", "title", "data", "is_currency"),
)


def select_chart(
    question: str,
    result_table: str,
    templates: PromptTemplates,
    complete: Completer = call_completion,
    **kwargs: Any,
) -> ChartSelection:
    """Ask the model to pick a chart and reshape ``result_table`` for it."""
    prompt = templates.render_chart_select(question, result_table)
    selection = request_structured(
        [{"role": "user", "content": prompt}],
        CHART_SELECT_FUNCTION,
        ChartSelection,
        complete=complete,
        **kwargs,
    )
    logger.info(f"Selected {selection.chart!r} chart with {len(selection.data)} points")
    if not selection.is_supported:
        logger.warning(f"Model chose unsupported chart type {selection.chart!r}")
    return selection
