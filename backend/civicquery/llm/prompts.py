"""Prompt templates for SQL generation and chart selection.

Templates live in ``prompts/`` and are validated once at startup:
- ``sql_gen.yaml``: list of chat messages (role + content)
- ``chart_select.txt``: a single user message

Placeholders are ``str.format`` fields. Anything outside the allowed field
set is a ConfigurationError, so a typo fails the process before it serves
its first question.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
from pathlib import Path
from string import Formatter

import yaml

from ..catalog.tables import TableDescriptor
from ..core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SQL_GEN_FILE = "sql_gen.yaml"
CHART_SELECT_FILE = "chart_select.txt"

SQL_GEN_FIELDS = frozenset({
    "date",
    "table_name",
    "table_description",
    "table_schema",
    "table_enums",
    "table_hints",
    "table_instructions",
})
CHART_SELECT_FIELDS = frozenset({"question", "data"})

_ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class MessageTemplate:
    role: str
    content: str


def _check_fields(source: str, text: str, allowed: frozenset[str]) -> None:
    try:
        fields = {name for _, name, _, _ in Formatter().parse(text) if name is not None}
    except ValueError as e:
        raise ConfigurationError(f"Malformed template {source}: {e}") from e
    unknown = sorted(f for f in fields if f not in allowed)
    if unknown:
        raise ConfigurationError(f"Unknown field(s) in template {source}: {', '.join(unknown)}")


def format_date(today: date) -> str:
    """``October 17, 2026`` style date for the prompt."""
    return f"{today.strftime('%B')} {today.day}, {today.year}"


class PromptTemplates:
    """Validated SQL-generation and chart-selection templates."""

    def __init__(self, sql_messages: list[MessageTemplate], chart_select: str):
        if not sql_messages:
            raise ConfigurationError("SQL generation template has no messages")
        for i, message in enumerate(sql_messages):
            if message.role not in _ROLES:
                raise ConfigurationError(f"sql_gen message {i} has invalid role {message.role!r}")
            _check_fields(f"sql_gen message {i}", message.content, SQL_GEN_FIELDS)
        _check_fields(CHART_SELECT_FILE, chart_select, CHART_SELECT_FIELDS)

        self.sql_messages = tuple(sql_messages)
        self.chart_select = chart_select

    @classmethod
    def load(cls, prompts_dir: str | Path) -> "PromptTemplates":
        base = Path(prompts_dir)
        sql_path = base / SQL_GEN_FILE
        chart_path = base / CHART_SELECT_FILE

        for path in (sql_path, chart_path):
            if not path.exists():
                raise ConfigurationError(f"Prompt template not found: {path}")

        try:
            with open(sql_path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse {sql_path}: {e}") from e

        if not isinstance(raw, list):
            raise ConfigurationError(f"{sql_path} must be a list of messages")

        messages = []
        for i, entry in enumerate(raw):
            if not isinstance(entry, dict) or "role" not in entry:
                raise ConfigurationError(f"{sql_path} message {i} needs a 'role'")
            messages.append(MessageTemplate(role=str(entry["role"]), content=str(entry.get("content") or "")))

        chart_select = chart_path.read_text(encoding="utf-8")
        templates = cls(messages, chart_select)
        logger.info(f"Loaded prompt templates from {base}: {len(messages)} SQL messages")
        return templates

    def render_sql_messages(
        self,
        table: TableDescriptor,
        question: str,
        today: date | None = None,
    ) -> list[dict[str, str]]:
        """Render the SQL-generation conversation, ending with the question."""
        values = {
            "date": format_date(today or date.today()),
            "table_name": table.name,
            "table_description": table.description,
            "table_schema": table.schema,
            "table_enums": table.enums_text() or "(none)",
            "table_hints": table.hints_text() or "(none)",
            "table_instructions": table.instructions or "(none)",
        }
        messages = [
            {"role": m.role, "content": m.content.format(**values)}
            for m in self.sql_messages
        ]
        messages.append({"role": "user", "content": question})
        return messages

    def render_chart_select(self, question: str, data: str) -> str:
        return self.chart_select.format(question=question, data=data)
