"""Chart rendering and publishing."""

from .render import (
    CHART_SELECTOR,
    ChartArtifact,
    ChartInputRenderer,
    ChartOutcome,
    ChartRenderer,
    FilePublisher,
    Publisher,
    chart_input,
    render_body,
    render_chart,
    unsupported_message,
)

__all__ = [
    "CHART_SELECTOR",
    "ChartArtifact",
    "ChartInputRenderer",
    "ChartOutcome",
    "ChartRenderer",
    "FilePublisher",
    "Publisher",
    "chart_input",
    "render_body",
    "render_chart",
    "unsupported_message",
]
