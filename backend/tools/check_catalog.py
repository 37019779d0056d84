"""Check the table catalog and prompt templates without calling a model.

Loads the catalog, renders the SQL-generation prompt for every table and
prints each table's embedding text size. Exits non-zero on the first
configuration problem.

Usage:
    cd backend
    python -m tools.check_catalog
    python -m tools.check_catalog --catalog schema/tables.yaml --show-prompt operating_budget
"""

from __future__ import annotations

import argparse
import sys

from civicquery.catalog import load_catalog
from civicquery.core import ConfigurationError, get_settings
from civicquery.llm import PromptTemplates


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Validate table catalog and prompt templates")
    parser.add_argument("--catalog", default=settings.catalog_path, help="Path to tables.yaml")
    parser.add_argument("--prompts", default=settings.prompts_dir, help="Prompt templates directory")
    parser.add_argument("--show-prompt", metavar="TABLE", help="Print the rendered prompt for one table")
    args = parser.parse_args()

    try:
        catalog = load_catalog(args.catalog)
        templates = PromptTemplates.load(args.prompts)
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    for table in catalog:
        messages = templates.render_sql_messages(table, "sample question")
        prompt_chars = sum(len(m["content"]) for m in messages)
        print(
            f"{table.name}: {len(table.enums)} enum columns, {len(table.hints)} hinted columns, "
            f"embedding text {len(table.embedding_text())} chars, prompt {prompt_chars} chars"
        )

    if args.show_prompt:
        if args.show_prompt not in catalog:
            print(f"ERROR: unknown table {args.show_prompt!r}", file=sys.stderr)
            sys.exit(1)
        for message in templates.render_sql_messages(catalog.get(args.show_prompt), "sample question"):
            print(f"--- {message['role']} ---\n{message['content']}")

    print(f"OK: {len(catalog)} tables")


if __name__ == "__main__":
    main()
