"""Node and edge models for the live workflow graph.

Nodes are mutable pydantic models owned by the GraphStore; nothing outside the
store assigns their fields, except `position`, which belongs to the layout.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from flowviz.utils.identifiers import edge_id, utc_timestamp


class NodeKind(str, Enum):
    """Structural category of a pipeline node."""

    orchestrator = "orchestrator"
    data_collector = "data_collector"
    analyzer = "analyzer"
    llm_processor = "llm_processor"
    reporter = "reporter"
    validator = "validator"
    monitor = "monitor"
    support = "support"
    flow_control = "flow_control"


class NodeStatus(str, Enum):
    """Execution status of a node."""

    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"
    retrying = "retrying"
    skipped = "skipped"


# statuses that a stale pending/running event must not overwrite
TERMINAL_STATUSES = {NodeStatus.completed, NodeStatus.failed}

# statuses that a late event is not allowed to move a terminal node back to
REGRESSIVE_STATUSES = {NodeStatus.pending, NodeStatus.running}


class WorkflowStage(str, Enum):
    """Coarse pipeline stage shown in the status panel."""

    initialization = "initialization"
    data_collection = "data_collection"
    data_analysis = "data_analysis"
    llm_processing = "llm_processing"
    report_generation = "report_generation"
    completed = "completed"
    failed = "failed"


FINAL_STAGES = {WorkflowStage.completed, WorkflowStage.failed}


class LogLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class LogEntry(BaseModel):
    """One line of a node's execution log."""

    timestamp: str = Field(default_factory=utc_timestamp)
    message: str
    level: LogLevel = LogLevel.info


class Position(BaseModel):
    """Top-left corner of a node in diagram coordinates."""

    model_config = {"frozen": True}

    x: float
    y: float


class WorkflowNode(BaseModel):
    """One unit of pipeline execution."""

    node_id: str
    kind: NodeKind
    display_name: str
    status: NodeStatus = NodeStatus.pending

    progress: int | None = None
    started_at: str | None = None
    ended_at: str | None = None
    duration_seconds: float | None = None

    input_snapshot: dict[str, Any] | None = None
    output_snapshot: dict[str, Any] | None = None
    process_snapshot: dict[str, Any] | None = None

    last_message: str | None = None
    error_message: str | None = None
    logs: list[LogEntry] = Field(default_factory=list)

    position: Position | None = None
    revision: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class NodeUpdate(BaseModel):
    """Partial node fields carried by one event.

    None means "not supplied"; the store never clears a field from an update.
    """

    status: NodeStatus | None = None
    progress: int | None = Field(default=None, ge=0, le=100)
    started_at: str | None = None
    ended_at: str | None = None
    duration_seconds: float | None = None
    input_snapshot: dict[str, Any] | None = None
    output_snapshot: dict[str, Any] | None = None
    process_snapshot: dict[str, Any] | None = None
    message: str | None = None
    log: LogEntry | None = None
    # explicit kind from a structural payload (agent_type); otherwise resolved from the catalog
    kind: NodeKind | None = None


class WorkflowEdge(BaseModel):
    """A directed structural relationship source -> target."""

    edge_id: str
    source: str
    target: str
    animated: bool = False

    @classmethod
    def between(cls, source: str, target: str, animated: bool = False) -> "WorkflowEdge":
        return cls(edge_id=edge_id(source, target), source=source, target=target, animated=animated)
