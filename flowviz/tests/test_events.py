"""Tests for inbound event parsing."""

import pytest

from flowviz.errors import MalformedEventError
from flowviz.models.events import (
    LifecycleEvent,
    NodeDetail,
    StructureUpdate,
    TerminalEvent,
    WorkflowSnapshot,
    parse_event,
)
from flowviz.models.node import LogLevel, NodeKind, NodeStatus, WorkflowStage


class TestLifecycleEvent:
    """Test normalization of agent_thinking payloads."""

    def test_agent_id_maps_to_node_id(self):
        event = LifecycleEvent.model_validate({"agent_id": "news_collector", "status": "running"})
        assert event.node_id == "news_collector"
        assert event.status == NodeStatus.running

    def test_node_id_accepted(self):
        event = LifecycleEvent.model_validate({"node_id": "news_collector"})
        assert event.node_id == "news_collector"
        assert event.status is None

    def test_error_status_alias(self):
        event = LifecycleEvent.model_validate({"agent_id": "a", "status": "error", "message": "boom"})
        assert event.status == NodeStatus.failed
        assert event.log_entry().level == LogLevel.error

    def test_unknown_status_dropped(self):
        event = LifecycleEvent.model_validate({"agent_id": "a", "status": "thinking"})
        assert event.status is None

    def test_progress_coerced_and_clamped(self):
        assert LifecycleEvent.model_validate({"agent_id": "a", "progress": "55.6"}).progress == 56
        assert LifecycleEvent.model_validate({"agent_id": "a", "progress": 140}).progress == 100
        assert LifecycleEvent.model_validate({"agent_id": "a", "progress": "lots"}).progress is None

    def test_non_object_payload_wrapped(self):
        """Plain-value payload fields are kept under a 'value' key."""
        event = LifecycleEvent.model_validate({"agent_id": "a", "output_data": "report text"})
        assert event.output_data == {"value": "report text"}

    def test_request_id_coerced_to_string(self):
        event = LifecycleEvent.model_validate({"agent_id": "a", "request_id": 42})
        assert event.request_id == "42"

    def test_unknown_stage_dropped(self):
        event = LifecycleEvent.model_validate({"agent_id": "a", "current_stage": "warming_up"})
        assert event.current_stage is None

    def test_to_update_carries_log_line(self):
        event = LifecycleEvent.model_validate({
            "agent_id": "a",
            "status": "retrying",
            "start_time": "2024-01-01T10:00:00Z",
            "duration": 1.5,
        })
        update = event.to_update()

        assert update.status == NodeStatus.retrying
        assert update.started_at == "2024-01-01T10:00:00Z"
        assert update.duration_seconds == 1.5
        assert update.log.level == LogLevel.warning
        assert update.log.message == "retrying"

    def test_epoch_milliseconds_become_iso_times(self):
        event = LifecycleEvent.model_validate({
            "agent_id": "news_collector",
            "status": "running",
            "start_time": 1700000000000,
            "end_time": 1700000090000,
        })

        assert event.status == NodeStatus.running
        assert event.start_time == "2023-11-14T22:13:20+00:00"
        assert event.end_time == "2023-11-14T22:14:50+00:00"

    def test_epoch_seconds_become_iso_times(self):
        event = LifecycleEvent.model_validate({"agent_id": "a", "start_time": 1700000000})
        assert event.start_time == "2023-11-14T22:13:20+00:00"

    def test_loose_values_never_fail_the_event(self):
        """Values that cannot be coerced are dropped; the status change survives."""
        event = LifecycleEvent.model_validate({
            "agent_id": "a",
            "status": "completed",
            "message": 42,
            "duration": "slow",
            "start_time": {"at": "noon"},
            "timestamp": True,
        })

        assert event.status == NodeStatus.completed
        assert event.message == "42"
        assert event.duration is None
        assert event.start_time is None
        assert event.timestamp is None
        assert event.log_entry().message == "42"


class TestStructuralEvents:
    """Test snapshot and structure update payloads."""

    def test_snapshot(self):
        snapshot = WorkflowSnapshot.model_validate({
            "nodes": [{"id": "orchestrator", "agent_type": "orchestrator", "status": "running"}],
            "edges": [{"source": "orchestrator", "target": "news_collector"}],
            "start_time": "2024-01-01T10:00:00Z",
            "current_stage": "data_collection",
        })

        assert snapshot.nodes[0].node_id == "orchestrator"
        assert snapshot.nodes[0].to_update().kind == NodeKind.orchestrator
        assert snapshot.edges[0].target == "news_collector"
        assert snapshot.current_stage == WorkflowStage.data_collection

    def test_snapshot_with_null_lists(self):
        snapshot = WorkflowSnapshot.model_validate({"nodes": None, "edges": None})
        assert snapshot.nodes == []
        assert snapshot.edges == []

    def test_unknown_agent_type_leaves_kind_unset(self):
        snapshot = WorkflowSnapshot.model_validate({"nodes": [{"id": "x", "agent_type": "wizard"}]})
        assert snapshot.nodes[0].to_update().kind is None

    def test_structure_update_added_node(self):
        update = StructureUpdate.model_validate({
            "added_node": {"id": "news_collector_retry_1"},
            "connection": {"from": "news_collector"},
            "request_id": 7,
        })

        assert update.added_node.node_id == "news_collector_retry_1"
        assert update.connection.source == "news_collector"
        assert update.request_id == "7"

    def test_structure_update_requires_a_change(self):
        with pytest.raises(MalformedEventError):
            parse_event("workflow_structure_update", StructureUpdate, {"request_id": "r1"})


class TestParseEvent:
    def test_missing_id_raises(self):
        with pytest.raises(MalformedEventError) as exc_info:
            parse_event("agent_thinking", LifecycleEvent, {"status": "running"})
        assert exc_info.value.event_name == "agent_thinking"

    def test_non_dict_raises(self):
        with pytest.raises(MalformedEventError):
            parse_event("agent_thinking", LifecycleEvent, "hello")

    def test_terminal_event(self):
        event = parse_event("workflow_error", TerminalEvent, {"succeeded": False, "message": 500, "request_id": 3})
        assert not event.succeeded
        assert event.message == "500"
        assert event.request_id == "3"

    def test_node_detail(self):
        detail = parse_event("node_details", NodeDetail, {"agent_id": "a", "process_data": [1, 2]})
        assert detail.node_id == "a"
        assert detail.to_update().process_snapshot == {"value": [1, 2]}
        assert detail.to_update().status is None
