"""Ask questions from the terminal.

Reads one question per line from stdin, prints the model's reasoning, the
generated SQL and the result table. Type "chart" after an answer to ask
for a chart of the last result.

Usage:
    cd backend
    python -m tools.ask
    python -m tools.ask --question "How much did Parks spend in 2022?"
"""

from __future__ import annotations

import argparse
import logging
import sys

from civicquery.assistant import Answer, Assistant
from civicquery.core import CivicQueryError, NoRowsError, get_settings


def _print_answer(answer: Answer) -> None:
    analysis = answer.analysis
    print(f"Table: {answer.table.name}")
    if not analysis.has_sql:
        print(analysis.missing_data)
        return
    print(f"Schema: {analysis.schema_comment}")
    print(f"Applicability: {analysis.applicability}")
    print(f"SQL: {analysis.sql}")
    if answer.result is not None:
        print(answer.result.text)


def _ask(assistant: Assistant, question: str) -> int | None:
    try:
        answer = assistant.ask(question, channel_id="cli")
    except NoRowsError as exc:
        print(f"No results found for that query.\nSQL: {exc.sql}")
        return None
    except CivicQueryError as exc:
        print(f"Error ({type(exc).__name__}): {exc}")
        return None
    _print_answer(answer)
    return answer.query_id


def _chart(assistant: Assistant, query_id: int) -> None:
    try:
        _, outcome = assistant.publish(query_id)
    except CivicQueryError as exc:
        print(f"Error ({type(exc).__name__}): {exc}")
        return
    print(outcome.message)


def main() -> None:
    parser = argparse.ArgumentParser(description="Ask the open-data assistant questions")
    parser.add_argument("--question", "-q", help="Ask one question and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show pipeline logs")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        assistant = Assistant.from_settings(get_settings())
    except CivicQueryError as exc:
        print(f"Failed to start: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.question:
        _ask(assistant, args.question)
        return

    last_query_id = None
    print(f"Ready: {len(assistant.catalog)} tables. Ctrl-D to quit.")
    for line in sys.stdin:
        question = line.strip()
        if not question:
            continue
        if question.lower() == "chart":
            if last_query_id is None:
                print("Ask a question with results first.")
            else:
                _chart(assistant, last_query_id)
            continue
        last_query_id = _ask(assistant, question)


if __name__ == "__main__":
    main()
