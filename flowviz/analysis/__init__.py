"""Analysis utilities over the live graph."""

from flowviz.analysis.progress import (
    ProgressSummary,
    percent_complete,
    stage_display_name,
    summarize_progress,
)

__all__ = [
    "ProgressSummary",
    "percent_complete",
    "stage_display_name",
    "summarize_progress",
]
