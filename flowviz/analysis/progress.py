"""Derived progress figures over the current node set.

Everything here is a pure function of its inputs; callers recompute on every
change instead of caching.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from flowviz.models.node import NodeStatus, WorkflowNode, WorkflowStage
from flowviz.utils.identifiers import parse_timestamp

STAGE_DISPLAY_NAMES = {
    WorkflowStage.initialization: "Initializing",
    WorkflowStage.data_collection: "Collecting data",
    WorkflowStage.data_analysis: "Analyzing data",
    WorkflowStage.llm_processing: "AI analysis",
    WorkflowStage.report_generation: "Generating report",
    WorkflowStage.completed: "Completed",
    WorkflowStage.failed: "Failed",
}


@dataclass
class ProgressSummary:
    """Counts by status plus overall completion."""

    total: int = 0
    completed: int = 0
    running: int = 0
    failed: int = 0
    pending: int = 0
    retrying: int = 0
    skipped: int = 0
    percent_complete: int = 0
    elapsed_seconds: int | None = None

    def format_elapsed(self) -> str:
        """Elapsed time as '42s' or '3m 5s'."""
        if self.elapsed_seconds is None:
            return "0s"
        minutes, seconds = divmod(self.elapsed_seconds, 60)
        return f"{minutes}m {seconds}s" if minutes > 0 else f"{seconds}s"


def percent_complete(completed: int, total: int) -> int:
    """round(100 * completed / total), or 0 for an empty graph."""
    if total <= 0:
        return 0
    return round(100 * completed / total)


def summarize_progress(
    nodes: Iterable[WorkflowNode],
    start_time: str | None = None,
    now: datetime | None = None,
) -> ProgressSummary:
    """Count nodes by status and compute completion and elapsed time.

    Args:
        nodes: current node set.
        start_time: ISO8601 pipeline start, if known.
        now: reference time for elapsed_seconds (defaults to the current UTC time).
    """
    counts = {status: 0 for status in NodeStatus}
    total = 0
    for node in nodes:
        counts[node.status] += 1
        total += 1

    elapsed = None
    started = parse_timestamp(start_time) if start_time else None
    if started is not None:
        now = now or datetime.now(timezone.utc)
        elapsed = max(0, int((now - started).total_seconds()))

    return ProgressSummary(
        total=total,
        completed=counts[NodeStatus.completed],
        running=counts[NodeStatus.running],
        failed=counts[NodeStatus.failed],
        pending=counts[NodeStatus.pending],
        retrying=counts[NodeStatus.retrying],
        skipped=counts[NodeStatus.skipped],
        percent_complete=percent_complete(counts[NodeStatus.completed], total),
        elapsed_seconds=elapsed,
    )


def stage_display_name(stage: WorkflowStage) -> str:
    return STAGE_DISPLAY_NAMES.get(stage, stage.value)
