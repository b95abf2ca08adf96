"""Core data models for the workflow graph."""

from flowviz.models.events import (
    Connection,
    LifecycleEvent,
    NodeDetail,
    SnapshotEdge,
    SnapshotNode,
    StructureUpdate,
    TerminalEvent,
    WorkflowSnapshot,
    parse_event,
)
from flowviz.models.node import (
    FINAL_STAGES,
    TERMINAL_STATUSES,
    LogEntry,
    LogLevel,
    NodeKind,
    NodeStatus,
    NodeUpdate,
    Position,
    WorkflowEdge,
    WorkflowNode,
    WorkflowStage,
)

__all__ = [
    # Graph
    "LogEntry",
    "LogLevel",
    "NodeKind",
    "NodeStatus",
    "NodeUpdate",
    "Position",
    "TERMINAL_STATUSES",
    "WorkflowEdge",
    "WorkflowNode",
    # Pipeline
    "FINAL_STAGES",
    "WorkflowStage",
    # Events
    "Connection",
    "LifecycleEvent",
    "NodeDetail",
    "SnapshotEdge",
    "SnapshotNode",
    "StructureUpdate",
    "TerminalEvent",
    "WorkflowSnapshot",
    "parse_event",
]
