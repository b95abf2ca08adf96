"""View models consumed by the diagram and the detail panel.

These are plain serializable snapshots built from the live session; the
session itself is never handed to a renderer.
"""

from typing import Any

from pydantic import BaseModel, Field

from flowviz.models.node import LogEntry, NodeStatus, Position, WorkflowNode

# edge style keys understood by the diagram
EDGE_STYLE_DEFAULT = "default"
EDGE_STYLE_ACTIVE = "active"
EDGE_STYLE_COMPLETED = "completed"
EDGE_STYLE_RETRY = "retry"


class DiagramNode(BaseModel):
    node_id: str
    component: str
    label: str
    kind: str
    status: NodeStatus
    progress: int | None = None
    position: Position | None = None
    selected: bool = False


class DiagramEdge(BaseModel):
    edge_id: str
    source: str
    target: str
    animated: bool = False
    style: str = EDGE_STYLE_DEFAULT


class StatusPanelView(BaseModel):
    """Header figures: completion, counts by status, stage, elapsed time."""

    total: int
    completed: int
    running: int
    failed: int
    pending: int
    retrying: int
    skipped: int
    percent_complete: int
    stage: str
    stage_label: str
    elapsed: str


class NodeDetailView(BaseModel):
    """Everything the detail panel shows for one node."""

    node_id: str
    label: str
    kind: str
    status: NodeStatus
    progress: int | None = None
    started_at: str | None = None
    ended_at: str | None = None
    duration_seconds: float | None = None
    input_data: dict[str, Any] | None = None
    output_data: dict[str, Any] | None = None
    process_data: dict[str, Any] | None = None
    last_message: str | None = None
    error_message: str | None = None
    logs: list[LogEntry] = Field(default_factory=list)
    revision: int = 0

    @classmethod
    def from_node(cls, node: WorkflowNode) -> "NodeDetailView":
        return cls(
            node_id=node.node_id,
            label=node.display_name,
            kind=node.kind.value,
            status=node.status,
            progress=node.progress,
            started_at=node.started_at,
            ended_at=node.ended_at,
            duration_seconds=node.duration_seconds,
            input_data=node.input_snapshot,
            output_data=node.output_snapshot,
            process_data=node.process_snapshot,
            last_message=node.last_message,
            error_message=node.error_message if node.status == NodeStatus.failed else None,
            # copy so the view does not change under a renderer holding it
            logs=[entry.model_copy() for entry in node.logs],
            revision=node.revision,
        )


class SessionView(BaseModel):
    """Full render state of one visualization session."""

    request_id: str | None
    connection: str
    start_time: str | None = None
    last_update: str | None = None
    finished: bool = False
    nodes: list[DiagramNode] = Field(default_factory=list)
    edges: list[DiagramEdge] = Field(default_factory=list)
    status: StatusPanelView
    selected_node_id: str | None = None
    detail: NodeDetailView | None = None
