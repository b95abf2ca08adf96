"""Layered (rank-based) DAG layout with stable repositioning.

Each node's rank is its longest-path distance from a root (a node with no
incoming edge). Within a rank nodes go left-to-right in discovery order.
Weakly connected components are laid out on their own and placed side by side,
so unrelated roots never share columns.

On incremental recomputes, every node that already has a position keeps it;
only new nodes receive computed positions.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable

import networkx as nx

from flowviz.models.node import Position, WorkflowEdge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LayoutOptions:
    """Spacing constants (top-to-bottom, upper-left aligned)."""

    node_width: float = 200
    node_height: float = 80
    node_sep: float = 80  # horizontal gap between nodes of a rank
    rank_sep: float = 100  # vertical gap between ranks
    margin_x: float = 50
    margin_y: float = 50
    component_gap: float = 120  # horizontal gap between disconnected subgraphs

    @property
    def column_step(self) -> float:
        return self.node_width + self.node_sep

    @property
    def rank_step(self) -> float:
        return self.node_height + self.rank_sep


EdgeLike = WorkflowEdge | tuple[str, str]


def build_graph(node_ids: list[str], edges: Iterable[EdgeLike]) -> nx.DiGraph:
    """Directed graph over node_ids; self-loops and edges to unknown nodes are skipped."""
    graph = nx.DiGraph()
    graph.add_nodes_from(node_ids)
    for edge in edges:
        source, target = (edge.source, edge.target) if isinstance(edge, WorkflowEdge) else tuple(edge)
        if source != target and source in graph and target in graph:
            graph.add_edge(source, target)
    return graph


def _components(graph: nx.DiGraph) -> list[list[str]]:
    """Weakly connected components, each in discovery order, ordered by first node."""
    order = {node_id: index for index, node_id in enumerate(graph)}
    components = [sorted(members, key=order.__getitem__) for members in nx.weakly_connected_components(graph)]
    return sorted(components, key=lambda members: order[members[0]])


def _break_cycles(graph: nx.DiGraph) -> nx.DiGraph:
    """Copy of graph without back edges, searching from roots in discovery order."""
    dag = nx.DiGraph()
    dag.add_nodes_from(n for n in graph if graph.in_degree(n) == 0)
    dag.add_nodes_from(graph)
    dag.add_edges_from(graph.edges)

    back_edges = []
    while True:
        try:
            cycle = nx.find_cycle(dag)
        except nx.NetworkXNoCycle:
            break
        source, target = cycle[-1][:2]
        dag.remove_edge(source, target)
        back_edges.append((source, target))

    if back_edges:
        logger.debug(f"Layout ignoring {len(back_edges)} back edge(s): {sorted(back_edges)}")
    return dag


def _ranks(graph: nx.DiGraph) -> dict[str, int]:
    dag = _break_cycles(graph)
    ranks = {node_id: 0 for node_id in graph}
    for node_id in nx.topological_sort(dag):
        for child in dag.successors(node_id):
            ranks[child] = max(ranks[child], ranks[node_id] + 1)
    return ranks


def assign_ranks(node_ids: list[str], edges: Iterable[EdgeLike]) -> dict[str, int]:
    """Longest-path rank of every node; roots and orphans get rank 0."""
    return _ranks(build_graph(node_ids, edges))


class LayeredLayout:
    """Computes diagram positions for the current graph."""

    def __init__(self, options: LayoutOptions | None = None) -> None:
        self.options = options or LayoutOptions()

    def fresh_positions(self, node_ids: list[str], edges: Iterable[EdgeLike]) -> dict[str, Position]:
        """Full layout ignoring any earlier positions."""
        opts = self.options
        graph = build_graph(node_ids, edges)
        ranks = _ranks(graph)

        positions: dict[str, Position] = {}
        offset_x = 0.0
        for component in _components(graph):
            rows: dict[int, list[str]] = defaultdict(list)
            for node_id in component:
                rows[ranks[node_id]].append(node_id)

            widest = 0
            for rank, row in rows.items():
                widest = max(widest, len(row))
                for column, node_id in enumerate(row):
                    positions[node_id] = Position(
                        x=opts.margin_x + offset_x + column * opts.column_step,
                        y=opts.margin_y + rank * opts.rank_step,
                    )

            offset_x += widest * opts.column_step - opts.node_sep + opts.component_gap

        return positions

    def compute(
        self,
        node_ids: list[str],
        edges: Iterable[EdgeLike],
        previous: dict[str, Position] | None = None,
        force: bool = False,
    ) -> dict[str, Position]:
        """Layout for node_ids, keeping positions from `previous` unless force is set."""
        fresh = self.fresh_positions(node_ids, edges)
        if force or not previous:
            return fresh

        result: dict[str, Position] = {
            node_id: previous[node_id] for node_id in node_ids if node_id in previous
        }
        for node_id in node_ids:
            if node_id in result:
                continue
            result[node_id] = self._free_slot(fresh[node_id], result.values())
        return result

    def _free_slot(self, candidate: Position, placed: Iterable[Position]) -> Position:
        """Shift candidate right, one column at a time, until it overlaps nothing."""
        opts = self.options
        occupied = list(placed)
        x, y = candidate.x, candidate.y
        while any(self._overlaps(x, y, other) for other in occupied):
            x += opts.column_step
        return Position(x=x, y=y)

    def _overlaps(self, x: float, y: float, other: Position) -> bool:
        opts = self.options
        return (
            abs(x - other.x) < opts.node_width + opts.node_sep / 2
            and abs(y - other.y) < opts.node_height + opts.rank_sep / 2
        )
