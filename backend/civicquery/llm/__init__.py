"""LLM interaction module.

Contains the completion client, prompt templates, and the two structured
model calls:
- SQL analysis
- Chart selection
"""

from .chart_selector import CHART_SELECT_FUNCTION, select_chart
from .client import FreeTextReply, StructuredReply, call_completion, extract_json
from .prompts import PromptTemplates, format_date
from .sql_analysis import SQL_ANALYSIS_FUNCTION, analyze_sql
from .structured import FunctionSpec, parse_reply, request_structured

__all__ = [
    "CHART_SELECT_FUNCTION",
    "select_chart",
    "FreeTextReply",
    "StructuredReply",
    "call_completion",
    "extract_json",
    "PromptTemplates",
    "format_date",
    "SQL_ANALYSIS_FUNCTION",
    "analyze_sql",
    "FunctionSpec",
    "parse_reply",
    "request_structured",
]
