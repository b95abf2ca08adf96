"""Tests for the layered layout and stable repositioning."""

from flowviz.layout import LayeredLayout, LayoutOptions, assign_ranks, build_graph
from flowviz.models.node import Position, WorkflowEdge


class TestBuildGraph:
    """Test the directed graph the layout works on."""

    def test_skips_self_loops_duplicates_and_unknown_nodes(self):
        graph = build_graph(["a", "b"], [("a", "b"), ("a", "b"), ("a", "a"), ("b", "ghost")])

        assert list(graph.nodes) == ["a", "b"]
        assert list(graph.edges) == [("a", "b")]


class TestRanks:
    """Test longest-path rank assignment."""

    def test_chain(self):
        ranks = assign_ranks(["a", "b", "c"], [("a", "b"), ("b", "c")])
        assert ranks == {"a": 0, "b": 1, "c": 2}

    def test_longest_path_wins(self):
        """A node reachable by a short and a long path sits below the long one."""
        ranks = assign_ranks(
            ["a", "b", "c", "d"],
            [("a", "b"), ("b", "c"), ("c", "d"), ("a", "d")],
        )
        assert ranks["d"] == 3

    def test_orphans_are_roots(self):
        ranks = assign_ranks(["a", "b"], [])
        assert ranks == {"a": 0, "b": 0}

    def test_cycle_does_not_hang(self):
        """Back edges are ignored for ranking."""
        ranks = assign_ranks(["a", "b", "c"], [("a", "b"), ("b", "c"), ("c", "b")])
        assert ranks == {"a": 0, "b": 1, "c": 2}

    def test_two_node_cycle_ranks_in_discovery_order(self):
        ranks = assign_ranks(["a", "b"], [("a", "b"), ("b", "a")])
        assert ranks == {"a": 0, "b": 1}

    def test_cycle_below_a_root(self):
        """The edge closing the loop is the one dropped, not the root's edge."""
        ranks = assign_ranks(
            ["root", "x", "y", "z"],
            [("root", "x"), ("x", "y"), ("y", "z"), ("z", "x")],
        )
        assert ranks == {"root": 0, "x": 1, "y": 2, "z": 3}

    def test_accepts_workflow_edges(self):
        ranks = assign_ranks(["a", "b"], [WorkflowEdge.between("a", "b")])
        assert ranks == {"a": 0, "b": 1}

    def test_edges_to_unknown_nodes_ignored(self):
        ranks = assign_ranks(["a"], [("a", "ghost")])
        assert ranks == {"a": 0}


class TestFreshLayout:
    """Test full layout placement."""

    def test_ranks_are_rows(self):
        layout = LayeredLayout()
        positions = layout.fresh_positions(["a", "b", "c"], [("a", "b"), ("a", "c")])

        assert positions["a"] == Position(x=50, y=50)
        assert positions["b"] == Position(x=50, y=230)
        assert positions["c"] == Position(x=330, y=230)

    def test_components_placed_side_by_side(self):
        """An unrelated root never shares a column with another subgraph."""
        layout = LayeredLayout()
        positions = layout.fresh_positions(["a", "b", "orphan"], [("a", "b")])

        assert positions["a"].x == 50
        assert positions["orphan"].x == 50 + 280 - 80 + 120
        assert positions["orphan"].y == 50

    def test_is_deterministic(self):
        layout = LayeredLayout()
        nodes = ["a", "b", "c", "d"]
        edges = [("a", "b"), ("a", "c"), ("c", "d")]

        assert layout.fresh_positions(nodes, edges) == layout.fresh_positions(nodes, edges)

    def test_custom_spacing(self):
        layout = LayeredLayout(LayoutOptions(node_width=100, node_height=40, node_sep=20, rank_sep=30, margin_x=0, margin_y=0))
        positions = layout.fresh_positions(["a", "b", "c"], [("a", "b"), ("a", "c")])

        assert positions["b"] == Position(x=0, y=70)
        assert positions["c"] == Position(x=120, y=70)


class TestIncrementalLayout:
    """Test that existing nodes keep their positions."""

    def test_existing_positions_preserved(self):
        layout = LayeredLayout()
        first = layout.compute(["a", "b", "c"], [("a", "b"), ("b", "c")])
        second = layout.compute(
            ["a", "b", "c", "d"],
            [("a", "b"), ("b", "c"), ("b", "d")],
            previous=first,
        )

        for node_id in ("a", "b", "c"):
            assert second[node_id] == first[node_id]
        assert second["d"] == Position(x=330, y=410)

    def test_new_node_shifted_off_occupied_slot(self):
        """A new node whose computed slot is taken moves right until it is free."""
        layout = LayeredLayout()
        previous = {"a": Position(x=50, y=50), "c": Position(x=50, y=230)}
        positions = layout.compute(["a", "b", "c"], [("a", "b"), ("a", "c")], previous=previous)

        assert positions["c"] == Position(x=50, y=230)
        assert positions["b"] == Position(x=330, y=230)

    def test_force_recomputes_everything(self):
        layout = LayeredLayout()
        previous = {"a": Position(x=900, y=900)}
        positions = layout.compute(["a", "b"], [("a", "b")], previous=previous, force=True)

        assert positions["a"] == Position(x=50, y=50)
        assert positions["b"] == Position(x=50, y=230)

    def test_no_overlaps_after_growth(self):
        layout = LayeredLayout()
        opts = layout.options
        positions = layout.compute(["a", "b"], [("a", "b")])
        for new_node in ("c", "d", "e"):
            node_ids = list(positions) + [new_node]
            positions = layout.compute(node_ids, [("a", "b"), ("a", "c"), ("a", "d"), ("a", "e")], previous=positions)

        placed = list(positions.values())
        for i, first in enumerate(placed):
            for second in placed[i + 1:]:
                assert not (
                    abs(first.x - second.x) < opts.node_width and abs(first.y - second.y) < opts.node_height
                )
