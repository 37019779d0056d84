"""Table catalog loader - the datasets a question can be answered from.

Each table is described once in ``schema/tables.yaml``: a description, the
``CREATE TABLE`` text, enumerated column values, and per-column hints. The
same text is both embedded for table selection and injected into the SQL
prompt, so the model sees exactly the vocabulary the index matched on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Union

import yaml

from ..core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

EnumValue = Union[str, int, float]

_REQUIRED_FIELDS = ("name", "description", "schema")


@dataclass(frozen=True)
class TableDescriptor:
    """A dataset the assistant can query."""
    name: str
    description: str
    schema: str
    enums: Mapping[str, tuple[EnumValue, ...]] = field(default_factory=dict)
    hints: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    instructions: str = ""

    def enums_text(self) -> str:
        """One ``- column: v1, v2`` line per enumerated column."""
        return "\n".join(
            f"- {column}: {', '.join(str(v) for v in values)}"
            for column, values in self.enums.items()
        )

    def hints_text(self) -> str:
        """One ``- column: key=value, ...`` line per hinted column."""
        return "\n".join(
            f"- {column}: {', '.join(f'{k}={v}' for k, v in annotations.items())}"
            for column, annotations in self.hints.items()
        )

    def embedding_text(self) -> str:
        """Canonical text used as the table's semantic fingerprint."""
        parts = [
            f"Table: {self.name}",
            f"Description: {self.description}",
            f"Schema:\n{self.schema.strip()}",
        ]
        if self.enums:
            parts.append(f"Enums:\n{self.enums_text()}")
        if self.hints:
            parts.append(f"Hints:\n{self.hints_text()}")
        return "\n".join(parts)


class TableCatalog:
    """Immutable, ordered registry of table descriptors."""

    def __init__(self, tables: list[TableDescriptor]):
        by_name: dict[str, TableDescriptor] = {}
        for table in tables:
            if table.name in by_name:
                raise ConfigurationError(f"Duplicate table name in catalog: {table.name}")
            by_name[table.name] = table
        self._tables = MappingProxyType(by_name)

    def get(self, name: str) -> TableDescriptor:
        return self._tables[name]

    def names(self) -> list[str]:
        return list(self._tables)

    def __iter__(self) -> Iterator[TableDescriptor]:
        return iter(self._tables.values())

    def __len__(self) -> int:
        return len(self._tables)

    def __contains__(self, name: object) -> bool:
        return name in self._tables


def _parse_enums(name: str, raw: Any) -> dict[str, tuple[EnumValue, ...]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Table {name}: 'enums' must be a mapping")
    enums: dict[str, tuple[EnumValue, ...]] = {}
    for column, values in raw.items():
        if not isinstance(values, list):
            raise ConfigurationError(f"Table {name}: enum values for {column!r} must be a list")
        for value in values:
            if isinstance(value, bool) or not isinstance(value, (str, int, float)):
                raise ConfigurationError(
                    f"Table {name}: enum value {value!r} for {column!r} must be a string or number"
                )
        enums[str(column)] = tuple(values)
    return enums


def _parse_hints(name: str, raw: Any) -> dict[str, Mapping[str, Any]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Table {name}: 'hints' must be a mapping")
    hints: dict[str, Mapping[str, Any]] = {}
    for column, annotations in raw.items():
        if not isinstance(annotations, dict):
            raise ConfigurationError(f"Table {name}: hints for {column!r} must be a mapping")
        hints[str(column)] = MappingProxyType(dict(annotations))
    return hints


def parse_table(entry: Any) -> TableDescriptor:
    """Build a TableDescriptor from one catalog entry."""
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Catalog entry must be a mapping, got {type(entry).__name__}")
    missing = [f for f in _REQUIRED_FIELDS if not entry.get(f)]
    if missing:
        raise ConfigurationError(
            f"Catalog entry {entry.get('name', '<unnamed>')!r} missing fields: {', '.join(missing)}"
        )
    name = str(entry["name"])
    return TableDescriptor(
        name=name,
        description=str(entry["description"]).strip(),
        schema=str(entry["schema"]).strip(),
        enums=MappingProxyType(_parse_enums(name, entry.get("enums"))),
        hints=MappingProxyType(_parse_hints(name, entry.get("hints"))),
        instructions=str(entry.get("instructions") or "").strip(),
    )


def load_catalog(path: str | Path) -> TableCatalog:
    """Load the table catalog from YAML.

    Raises:
        ConfigurationError: If the document is missing or malformed
    """
    catalog_path = Path(path)
    if not catalog_path.exists():
        raise ConfigurationError(f"Table catalog not found: {catalog_path}")

    try:
        with open(catalog_path, "r", encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse table catalog {catalog_path}: {e}") from e

    if not isinstance(document, dict) or not isinstance(document.get("tables"), list):
        raise ConfigurationError(f"Table catalog {catalog_path} must contain a 'tables' list")

    catalog = TableCatalog([parse_table(entry) for entry in document["tables"]])
    if not len(catalog):
        raise ConfigurationError(f"Table catalog {catalog_path} is empty")

    logger.info(f"Loaded table catalog: {len(catalog)} tables")
    return catalog
