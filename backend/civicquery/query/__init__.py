"""Query execution and result formatting."""

from .executor import QueryExecutor, ResultTable
from .formatter import NO_DATA, format_cell, format_header, render_table

__all__ = [
    "QueryExecutor",
    "ResultTable",
    "NO_DATA",
    "format_cell",
    "format_header",
    "render_table",
]
