"""Inbound event models for the agent-thinking channel.

Payloads arrive as loosely typed JSON records. Every model tolerates extra keys;
the only hard requirement is an identifying field where a node is concerned.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from flowviz.errors import MalformedEventError
from flowviz.models.node import LogEntry, LogLevel, NodeKind, NodeStatus, NodeUpdate, WorkflowStage

# status spellings the backend uses besides the canonical ones
STATUS_ALIASES = {"error": NodeStatus.failed.value}

# numeric times at or above this are epoch milliseconds
EPOCH_MS_THRESHOLD = 1e11


def _normalize_status(value: Any) -> str | None:
    if value is None:
        return None
    value = STATUS_ALIASES.get(str(value), str(value))
    if value not in NodeStatus._value2member_map_:
        return None
    return value


def _as_snapshot(value: Any) -> dict | None:
    if value is None:
        return None
    if isinstance(value, dict):
        return value
    return {"value": value}


def _as_progress(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return max(0, min(100, int(round(float(value)))))
    except (TypeError, ValueError):
        return None


def _as_stage(value: Any) -> str | None:
    if value is None or str(value) not in WorkflowStage._value2member_map_:
        return None
    return str(value)


def _as_request_id(value: Any) -> str | None:
    return None if value is None else str(value)


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_timestamp(value: Any) -> str | None:
    """ISO8601 string for a string or numeric epoch (seconds or milliseconds)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value or None
    if not isinstance(value, (int, float)):
        return None
    seconds = value / 1000 if abs(value) >= EPOCH_MS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return None



def _resolve_node_id(data: dict) -> str | None:
    for key in ("agent_id", "node_id", "id"):
        value = data.get(key)
        if value:
            return str(value)
    return None


class LifecycleEvent(BaseModel):
    """A single node's status/progress/payload change (`agent_thinking`)."""

    model_config = {"extra": "allow"}

    node_id: str
    status: NodeStatus | None = None
    message: str | None = None
    progress: int | None = None
    duration: float | None = None
    start_time: str | None = None
    end_time: str | None = None
    input_data: dict[str, Any] | None = None
    output_data: dict[str, Any] | None = None
    process_data: dict[str, Any] | None = None
    current_stage: WorkflowStage | None = None
    request_id: str | None = None
    timestamp: str | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_payload(cls, data: Any) -> Any:
        """Map agent_id/node_id onto node_id and coerce loose values."""
        if not isinstance(data, dict):
            raise ValueError("event payload must be an object")
        node_id = _resolve_node_id(data)
        if node_id is None:
            raise ValueError("event payload must contain 'agent_id' or 'node_id'")
        data = dict(data)
        data["node_id"] = node_id
        data["status"] = _normalize_status(data.get("status"))
        data["progress"] = _as_progress(data.get("progress"))
        data["current_stage"] = _as_stage(data.get("current_stage"))
        data["message"] = _as_text(data.get("message"))
        data["duration"] = _as_float(data.get("duration"))
        for key in ("start_time", "end_time", "timestamp"):
            data[key] = _as_timestamp(data.get(key))
        for key in ("input_data", "output_data", "process_data"):
            data[key] = _as_snapshot(data.get(key))
        data["request_id"] = _as_request_id(data.get("request_id"))
        return data

    def log_entry(self) -> LogEntry:
        """The log line this event contributes to its node."""
        if self.status == NodeStatus.failed:
            level = LogLevel.error
        elif self.status == NodeStatus.retrying:
            level = LogLevel.warning
        else:
            level = LogLevel.info
        message = self.message or (self.status.value if self.status else "update")
        if self.timestamp:
            return LogEntry(timestamp=self.timestamp, message=message, level=level)
        return LogEntry(message=message, level=level)

    def to_update(self) -> NodeUpdate:
        return NodeUpdate(
            status=self.status,
            progress=self.progress,
            started_at=self.start_time,
            ended_at=self.end_time,
            duration_seconds=self.duration,
            input_snapshot=self.input_data,
            output_snapshot=self.output_data,
            process_snapshot=self.process_data,
            message=self.message,
            log=self.log_entry(),
        )


class SnapshotNode(BaseModel):
    """A node as described by a structural payload."""

    model_config = {"extra": "allow"}

    node_id: str
    agent_type: str | None = None
    status: NodeStatus | None = None
    progress: int | None = None
    duration: float | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError("node entry must be an object")
        node_id = _resolve_node_id(data)
        if node_id is None:
            raise ValueError("node entry must contain 'id', 'agent_id' or 'node_id'")
        data = dict(data)
        data["node_id"] = node_id
        data["status"] = _normalize_status(data.get("status"))
        data["progress"] = _as_progress(data.get("progress"))
        data["duration"] = _as_float(data.get("duration"))
        return data

    def to_update(self) -> NodeUpdate:
        kind = None
        if self.agent_type in NodeKind._value2member_map_:
            kind = NodeKind(self.agent_type)
        return NodeUpdate(
            status=self.status,
            progress=self.progress,
            duration_seconds=self.duration,
            kind=kind,
        )


class SnapshotEdge(BaseModel):
    model_config = {"extra": "allow"}

    source: str
    target: str


class WorkflowSnapshot(BaseModel):
    """Authoritative structure returned for `get_workflow_metadata`."""

    model_config = {"extra": "allow"}

    nodes: list[SnapshotNode] = Field(default_factory=list)
    edges: list[SnapshotEdge] = Field(default_factory=list)
    start_time: str | None = None
    current_stage: WorkflowStage | None = None
    request_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError("metadata payload must be an object")
        data = dict(data)
        data["current_stage"] = _as_stage(data.get("current_stage"))
        data["start_time"] = _as_timestamp(data.get("start_time"))
        data["request_id"] = _as_request_id(data.get("request_id"))
        data["nodes"] = data.get("nodes") or []
        data["edges"] = data.get("edges") or []
        return data


class Connection(BaseModel):
    """Where a dynamically added node hangs off the existing graph."""

    model_config = {"extra": "allow", "populate_by_name": True}

    source: str = Field(alias="from")


class StructureUpdate(BaseModel):
    """Explicit graph-shape change (`workflow_structure_update`)."""

    model_config = {"extra": "allow"}

    added_node: SnapshotNode | None = None
    connection: Connection | None = None
    new_structure: WorkflowSnapshot | None = None
    request_id: str | None = None

    @field_validator("request_id", mode="before")
    @classmethod
    def coerce_request_id(cls, value: Any) -> str | None:
        return _as_request_id(value)

    @model_validator(mode="after")
    def require_change(self) -> "StructureUpdate":
        if self.added_node is None and self.new_structure is None:
            raise ValueError("structure update must contain 'added_node' or 'new_structure'")
        return self


class TerminalEvent(BaseModel):
    """Pipeline-level completion or failure."""

    model_config = {"extra": "allow"}

    succeeded: bool
    message: str | None = None
    request_id: str | None = None

    @field_validator("request_id", mode="before")
    @classmethod
    def coerce_request_id(cls, value: Any) -> str | None:
        return _as_request_id(value)

    @field_validator("message", mode="before")
    @classmethod
    def coerce_message(cls, value: Any) -> str | None:
        return _as_text(value)


class NodeDetail(BaseModel):
    """Out-of-band response to `get_node_details`."""

    model_config = {"extra": "allow"}

    node_id: str
    input_data: dict[str, Any] | None = None
    output_data: dict[str, Any] | None = None
    process_data: dict[str, Any] | None = None
    request_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError("detail payload must be an object")
        node_id = _resolve_node_id(data)
        if node_id is None:
            raise ValueError("detail payload must contain 'agent_id' or 'node_id'")
        data = dict(data)
        data["node_id"] = node_id
        data["request_id"] = _as_request_id(data.get("request_id"))
        for key in ("input_data", "output_data", "process_data"):
            data[key] = _as_snapshot(data.get(key))
        return data

    def to_update(self) -> NodeUpdate:
        return NodeUpdate(
            input_snapshot=self.input_data,
            output_snapshot=self.output_data,
            process_snapshot=self.process_data,
        )


def parse_event(event_name: str, model: type[BaseModel], data: Any) -> BaseModel:
    """Validate a raw payload into `model`, raising MalformedEventError on failure."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {"msg": str(exc)}
        raise MalformedEventError(event_name, first.get("msg", str(exc))) from exc
