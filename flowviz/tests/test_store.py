"""Tests for the graph state store merge rules."""

import pytest

from flowviz.catalog import AgentCatalog
from flowviz.models.node import LogEntry, NodeKind, NodeStatus, NodeUpdate
from flowviz.store import GraphStore


@pytest.fixture
def store() -> GraphStore:
    return GraphStore(AgentCatalog.load())


def running(message: str | None = None, **fields) -> NodeUpdate:
    return NodeUpdate(status=NodeStatus.running, message=message, log=LogEntry(message=message or "running"), **fields)


class TestUpsert:
    """Test node creation and field merging."""

    def test_creates_node_with_catalog_metadata(self, store):
        """A new node should take its kind and label from the catalog."""
        result = store.upsert_node("news_collector", running())

        assert result.created
        assert result.node.kind == NodeKind.data_collector
        assert result.node.display_name == "News Collector"
        assert len(store) == 1

    def test_unknown_id_uses_default_kind(self, store):
        """Ids missing from the catalog fall back to the default kind and their own id as label."""
        node = store.upsert_node("custom_agent", running()).node

        assert node.kind == NodeKind.data_collector
        assert node.display_name == "custom_agent"

    def test_explicit_kind_wins_over_catalog(self, store):
        node = store.upsert_node("custom_agent", NodeUpdate(kind=NodeKind.reporter)).node
        assert node.kind == NodeKind.reporter

    def test_duplicate_event_does_not_duplicate_node(self, store):
        """Applying the same event twice keeps one node."""
        store.upsert_node("orchestrator", running("start"))
        store.upsert_node("orchestrator", running("start"))

        assert len(store) == 1
        assert store.node_ids == ["orchestrator"]

    def test_fields_only_overwrite_when_supplied(self, store):
        """An update without progress must not clear an earlier progress."""
        store.upsert_node("orchestrator", NodeUpdate(status=NodeStatus.running, progress=40))
        store.upsert_node("orchestrator", NodeUpdate(message="still working"))

        node = store.get("orchestrator")
        assert node.progress == 40
        assert node.status == NodeStatus.running
        assert node.last_message == "still working"

    def test_logs_append(self, store):
        """Every event contributes one log line, in arrival order."""
        store.upsert_node("orchestrator", running("one"))
        store.upsert_node("orchestrator", running("two"))
        store.upsert_node("orchestrator", NodeUpdate(status=NodeStatus.completed, log=LogEntry(message="three")))

        assert [entry.message for entry in store.get("orchestrator").logs] == ["one", "two", "three"]

    def test_payload_snapshots_merge_not_clear(self, store):
        """A later event without input_data keeps the earlier input snapshot."""
        store.upsert_node("news_collector", NodeUpdate(input_snapshot={"symbol": "AAPL"}))
        store.upsert_node("news_collector", NodeUpdate(output_snapshot={"articles": 12}))

        node = store.get("news_collector")
        assert node.input_snapshot == {"symbol": "AAPL"}
        assert node.output_snapshot == {"articles": 12}

    def test_revision_bumps_only_on_change(self, store):
        store.upsert_node("orchestrator", NodeUpdate(progress=10))
        first = store.get("orchestrator").revision
        store.upsert_node("orchestrator", NodeUpdate(progress=10))

        assert store.get("orchestrator").revision == first


class TestTimestamps:
    """Test start/end bookkeeping."""

    def test_started_at_is_set_once(self, store):
        store.upsert_node("orchestrator", NodeUpdate(status=NodeStatus.running, started_at="2024-01-01T10:00:00Z"))
        store.upsert_node("orchestrator", NodeUpdate(status=NodeStatus.running, started_at="2024-01-01T10:05:00Z"))

        assert store.get("orchestrator").started_at == "2024-01-01T10:00:00Z"

    def test_running_without_start_time_gets_one(self, store):
        node = store.upsert_node("orchestrator", running()).node
        assert node.started_at is not None

    def test_duration_derived_from_start_and_end(self, store):
        store.upsert_node("orchestrator", NodeUpdate(status=NodeStatus.running, started_at="2024-01-01T10:00:00Z"))
        store.upsert_node("orchestrator", NodeUpdate(status=NodeStatus.completed, ended_at="2024-01-01T10:00:42Z"))

        node = store.get("orchestrator")
        assert node.ended_at == "2024-01-01T10:00:42Z"
        assert node.duration_seconds == 42.0

    def test_supplied_duration_is_kept(self, store):
        store.upsert_node("orchestrator", NodeUpdate(status=NodeStatus.completed, duration_seconds=3.5))
        assert store.get("orchestrator").duration_seconds == 3.5

    def test_terminal_status_sets_end_time(self, store):
        store.upsert_node("orchestrator", running())
        node = store.upsert_node("orchestrator", NodeUpdate(status=NodeStatus.failed)).node

        assert node.ended_at is not None


class TestStatusTransitions:
    """Test terminal stickiness and the retry path."""

    def test_late_running_event_does_not_regress_completed(self, store):
        """A delayed 'running' after 'completed' leaves the node completed but keeps its log."""
        store.upsert_node("news_collector", running("fetching"))
        store.upsert_node(
            "news_collector",
            NodeUpdate(status=NodeStatus.completed, progress=100, log=LogEntry(message="done")),
        )
        result = store.upsert_node(
            "news_collector",
            NodeUpdate(status=NodeStatus.running, progress=50, log=LogEntry(message="late")),
        )

        node = store.get("news_collector")
        assert result.status_rejected
        assert node.status == NodeStatus.completed
        assert node.progress == 100
        assert [entry.message for entry in node.logs] == ["fetching", "done", "late"]

    def test_late_pending_event_does_not_regress_failed(self, store):
        store.upsert_node("news_collector", NodeUpdate(status=NodeStatus.failed, message="timeout"))
        store.upsert_node("news_collector", NodeUpdate(status=NodeStatus.pending))

        node = store.get("news_collector")
        assert node.status == NodeStatus.failed
        assert node.error_message == "timeout"

    def test_retry_reopens_failed_node(self, store):
        """A retrying event after failure resets progress and end time."""
        store.upsert_node("news_collector", NodeUpdate(status=NodeStatus.running, progress=70))
        store.upsert_node("news_collector", NodeUpdate(status=NodeStatus.failed, message="rate limited"))
        store.upsert_node("news_collector", NodeUpdate(status=NodeStatus.retrying))

        node = store.get("news_collector")
        assert node.status == NodeStatus.retrying
        assert node.progress == 0
        assert node.ended_at is None
        assert node.duration_seconds is None

        store.upsert_node("news_collector", NodeUpdate(status=NodeStatus.running, progress=20))
        assert store.get("news_collector").status == NodeStatus.running
        assert store.get("news_collector").progress == 20

    def test_error_message_only_from_failed_events(self, store):
        store.upsert_node("news_collector", NodeUpdate(status=NodeStatus.running, message="working"))
        assert store.get("news_collector").error_message is None

        store.upsert_node("news_collector", NodeUpdate(status=NodeStatus.failed, message="boom"))
        assert store.get("news_collector").error_message == "boom"


class TestEdges:
    """Test parent resolution and edge materialization."""

    def test_parent_edge_created_when_parent_known(self, store):
        store.upsert_node("data_collection_orchestrator", running())
        result = store.upsert_node("news_collector", running())

        assert [edge.edge_id for edge in result.new_edges] == ["e-data_collection_orchestrator-news_collector"]
        assert result.structural

    def test_edge_deferred_until_parent_arrives(self, store):
        """A child seen before its parent gets its edge retroactively."""
        store.upsert_node("news_collector", running())
        assert store.edges == []

        result = store.upsert_node("data_collection_orchestrator", running())

        assert [edge.edge_id for edge in store.edges] == ["e-data_collection_orchestrator-news_collector"]
        assert [edge.edge_id for edge in result.new_edges] == ["e-data_collection_orchestrator-news_collector"]

    def test_hyphenated_ids_do_not_collide(self, store):
        """Pairs that only differ in where the hyphen falls are distinct edges."""
        for node_id in ("a-b", "c", "a", "b-c"):
            store.upsert_node(node_id, NodeUpdate())

        first = store.materialize_edge("a-b", "c")
        second = store.materialize_edge("a", "b-c")

        assert first is not None
        assert second is not None
        assert first.edge_id != second.edge_id
        assert len(store.edges) == 2

    def test_root_and_unknown_ids_have_no_parent_edge(self, store):
        store.upsert_node("orchestrator", running())
        store.upsert_node("custom_agent", running())

        assert store.edges == []
        assert store.deferred_edges == []

    def test_edges_are_unique(self, store):
        store.upsert_node("orchestrator", running())
        store.upsert_node("data_collection_orchestrator", running())
        assert store.materialize_edge("orchestrator", "data_collection_orchestrator") is None
        store.upsert_node("data_collection_orchestrator", NodeUpdate(progress=50))

        assert len(store.edges) == 1

    def test_self_loop_rejected(self, store):
        store.upsert_node("orchestrator", running())
        assert store.materialize_edge("orchestrator", "orchestrator") is None
        assert store.edges == []

    def test_edge_animation_follows_target_status(self, store):
        store.upsert_node("data_collection_orchestrator", running())
        store.upsert_node("news_collector", running())
        edge = store.edges[0]
        assert edge.animated

        store.upsert_node("news_collector", NodeUpdate(status=NodeStatus.completed))
        assert not edge.animated

    def test_settle_edges_stops_animation(self, store):
        store.upsert_node("data_collection_orchestrator", running())
        store.upsert_node("news_collector", running())
        store.settle_edges()

        assert all(not edge.animated for edge in store.edges)


class TestSnapshots:
    """Test wholesale replacement and merging of structural snapshots."""

    def test_replace_graph_uses_only_snapshot_edges(self, store):
        store.upsert_node("stale", running())
        store.replace_graph(
            [("a", NodeUpdate()), ("b", NodeUpdate()), ("news_collector", NodeUpdate())],
            [("a", "b")],
        )

        assert store.node_ids == ["a", "b", "news_collector"]
        assert [edge.edge_id for edge in store.edges] == ["e-a-b"]

    def test_replace_graph_defers_dangling_edges(self, store):
        store.replace_graph([("a", NodeUpdate())], [("a", "b")])
        assert store.deferred_edges == [("a", "b")]

        store.upsert_node("b", running())
        assert [edge.edge_id for edge in store.edges] == ["e-a-b"]
        assert store.deferred_edges == []

    def test_merge_graph_keeps_existing_state(self, store):
        store.upsert_node("orchestrator", running("started"))
        grew = store.merge_graph(
            [("orchestrator", NodeUpdate(progress=30)), ("data_collection_orchestrator", NodeUpdate())],
            [("orchestrator", "data_collection_orchestrator")],
        )

        node = store.get("orchestrator")
        assert grew
        assert node.progress == 30
        assert [entry.message for entry in node.logs] == ["started"]
        assert len(store.edges) == 1

    def test_structure_version_counts_growth(self, store):
        before = store.structure_version
        store.upsert_node("orchestrator", running())
        after_node = store.structure_version
        store.upsert_node("orchestrator", NodeUpdate(progress=5))

        assert after_node > before
        assert store.structure_version == after_node
