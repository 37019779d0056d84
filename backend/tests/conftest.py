"""Shared fixtures: a small budget dataset, fake model collaborators."""

from __future__ import annotations

import json
import os
import sqlite3
import sys

import pytest

# Add backend to path for imports
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, BACKEND_DIR)

from civicquery.catalog import load_catalog
from civicquery.llm.client import FreeTextReply, StructuredReply

CATALOG_PATH = os.path.join(BACKEND_DIR, "schema", "tables.yaml")
PROMPTS_DIR = os.path.join(BACKEND_DIR, "prompts")

BUDGET_ROWS = [
    ("Parks, Forestry & Recreation", "expenditure", 2022, 1000000.5),
    ("Parks, Forestry & Recreation", "expenditure", 2022, 234.0),
    ("Parks, Forestry & Recreation", "revenue", 2022, 50000.0),
    ("Parks, Forestry & Recreation", "expenditure", 2021, 900000.0),
    ("Children's Services", "expenditure", 2022, 75000.25),
    ("Mayor's Office", "expenditure", 2022, 1200.0),
]

PARKS_2022_SQL = (
    "SELECT SUM(amount) AS total FROM operating_budget "
    "WHERE program = 'Parks, Forestry & Recreation' AND entry_type = 'expenditure' AND year = 2022"
)


@pytest.fixture
def catalog():
    return load_catalog(CATALOG_PATH)


@pytest.fixture
def budget_db(tmp_path):
    """SQLite file with an operating_budget table."""
    path = tmp_path / "toronto.db"
    conn = sqlite3.connect(path)
    conn.execute(
        "CREATE TABLE operating_budget ("
        "id INTEGER PRIMARY KEY, program TEXT, entry_type TEXT, year INTEGER, amount REAL)"
    )
    conn.executemany(
        "INSERT INTO operating_budget (program, entry_type, year, amount) VALUES (?, ?, ?, ?)",
        BUDGET_ROWS,
    )
    conn.commit()
    conn.close()
    return path


class FakeEmbedder:
    """Returns canned vectors; unknown text gets ``default``."""

    def __init__(self, vectors=None, default=(1.0, 0.0)):
        self.vectors = dict(vectors or {})
        self.default = list(default)
        self.calls = []

    def embed(self, text):
        self.calls.append(text)
        for key, vector in self.vectors.items():
            if key in text:
                return list(vector)
        return list(self.default)


class FakeCompleter:
    """Stands in for ``call_completion``; answers per requested function."""

    def __init__(self, sql=PARKS_2022_SQL, is_currency=True, chart_type="bar", free_text=None):
        self.sql = sql
        self.is_currency = is_currency
        self.chart_type = chart_type
        self.free_text = free_text
        self.calls = []

    def __call__(self, messages, function=None, force_function=False, **kwargs):
        self.calls.append({"messages": messages, "function": function, "force_function": force_function})
        name = function["name"] if function else None
        if name == "sql_analysis":
            if self.free_text is not None:
                return FreeTextReply(text=self.free_text)
            return StructuredReply(
                name="sql_analysis",
                arguments=json.dumps({
                    "schema": "Uses program, entry_type, year and amount.",
                    "applicability": "The Parks program and 2022 are in the enums.",
                    "sql": self.sql,
                    "is_currency": self.is_currency,
                }),
            )
        if name == "select_chart":
            return StructuredReply(
                name="select_chart",
                arguments=json.dumps({
                    "type": self.chart_type,
                    "title": "Parks spending in 2022",
                    "data": [{"name": "Parks, Forestry & Recreation", "date": 2022, "value": 1000234.5}],
                    "is_currency": True,
                }),
            )
        return FreeTextReply(text="")


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def fake_completer():
    return FakeCompleter()
