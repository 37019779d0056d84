"""Chart rendering and publishing.

Chart drawing itself happens in the browser: ``ChartInputRenderer`` only
produces the HTML page that feeds the chart script its input document.
Publishing writes the page somewhere reachable and returns a locator.
"""

from __future__ import annotations

from dataclasses import dataclass
import html
import json
import logging
from pathlib import Path
from typing import Any, Protocol
import uuid

from ..core.models import ChartSelection, SQLAnalysisResult

logger = logging.getLogger(__name__)

CHART_SELECTOR = "#civicquery-chart"

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>{title}</title>
  <script src="https://cdn.jsdelivr.net/npm/d3@7"></script>
  <script src="/static/charts/{chart}_chart.js"></script>
</head>
<body>
  <h1>{title}</h1>
  <div id="{element_id}"></div>
  <script type="text/javascript">
    const input = {input_json};
    renderChart(input);
  </script>
  <article>{body}</article>
</body>
</html>
"""


@dataclass(frozen=True)
class ChartArtifact:
    chart: str
    title: str
    content: str
    media_type: str = "text/html"


@dataclass(frozen=True)
class ChartOutcome:
    supported: bool
    message: str
    locator: str | None = None
    artifact: ChartArtifact | None = None


class ChartRenderer(Protocol):
    def render(self, selection: ChartSelection, body: str = "") -> ChartArtifact: ...


class Publisher(Protocol):
    def publish(self, artifact: ChartArtifact, metadata: dict[str, Any]) -> str: ...


def chart_input(selection: ChartSelection, selector: str = CHART_SELECTOR) -> dict[str, Any]:
    """The input document the chart scripts expect."""
    return {
        "selector": selector,
        "title": selection.title,
        "data": [point.model_dump(exclude_none=True) for point in selection.data],
        "isCurrency": selection.is_currency,
    }


class ChartInputRenderer:
    """Renders a chart page for one of the supported chart types."""

    def render(self, selection: ChartSelection, body: str = "") -> ChartArtifact:
        chart = selection.chart.strip().lower()
        page = PAGE_TEMPLATE.format(
            title=html.escape(selection.title),
            chart=chart.replace("-", "_"),
            element_id=CHART_SELECTOR.lstrip("#"),
            # Keep "</script>" in titles from closing the script element
            input_json=json.dumps(chart_input(selection)).replace("</", "<\\/"),
            body=body,
        )
        return ChartArtifact(chart=chart, title=selection.title, content=page)


class FilePublisher:
    """Writes artifacts under ``directory`` and returns their public URL."""

    def __init__(self, directory: str | Path, host: str = ""):
        self.directory = Path(directory)
        self.host = host.rstrip("/")

    def publish(self, artifact: ChartArtifact, metadata: dict[str, Any]) -> str:
        artifact_id = str(metadata.get("id") or uuid.uuid4().hex)
        target = self.directory / "charts" / f"{artifact_id}.html"
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(artifact.content, encoding="utf-8")
        logger.info(f"Published {artifact.chart} chart to {target}")
        return f"{self.host}/charts/{artifact_id}.html"


def unsupported_message(chart: str) -> str:
    return f"Ah you need a {chart} chart, but I can't make those yet."


def render_chart(
    selection: ChartSelection,
    renderer: ChartRenderer,
    publisher: Publisher | None = None,
    metadata: dict[str, Any] | None = None,
    body: str = "",
) -> ChartOutcome:
    """Render (and optionally publish) a chart; unsupported types never reach the renderer."""
    if not selection.is_supported:
        logger.info(f"Chart type {selection.chart!r} not supported yet")
        return ChartOutcome(supported=False, message=unsupported_message(selection.chart))

    artifact = renderer.render(selection, body=body)
    if publisher is None:
        return ChartOutcome(supported=True, message="Here's my attempt at a chart!", artifact=artifact)

    locator = publisher.publish(artifact, metadata or {})
    return ChartOutcome(
        supported=True,
        message=f"Published chart at {locator}",
        locator=locator,
        artifact=artifact,
    )


def render_body(question: str, analysis: SQLAnalysisResult) -> str:
    """Explanatory HTML shown under a published chart."""
    return (
        "<h3>What does the assistant think?</h3>\n"
        f"<h5>Question</h5>\n<p>{html.escape(question)}</p>\n"
        "<h5>Thought process</h5>\n"
        f"<p><em>{html.escape(analysis.schema_comment)}</em></p>\n"
        f"<p><em>{html.escape(analysis.applicability)}</em></p>\n"
        f"<h5>SQL Query</h5>\n<p><code>{html.escape(analysis.sql)}</code></p>"
    )
