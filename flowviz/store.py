"""Graph state store: the canonical node and edge collections of one session.

Merge rules:
- scalar fields overwrite only when the update supplies a value;
- logs append;
- started_at is set once;
- completed/failed are sticky against late pending/running events, but a
  retrying event reopens the node with a fresh progress cycle.

Edges whose endpoints are not both known yet are kept as deferred and created
as soon as the missing node shows up.
"""

import logging
from dataclasses import dataclass, field

from flowviz.catalog import AgentCatalog
from flowviz.models.node import (
    REGRESSIVE_STATUSES,
    NodeStatus,
    NodeUpdate,
    WorkflowEdge,
    WorkflowNode,
)
from flowviz.utils.identifiers import edge_id, seconds_between, utc_timestamp

logger = logging.getLogger(__name__)


@dataclass
class UpsertResult:
    """Outcome of a single upsert."""

    node: WorkflowNode
    created: bool
    changed: bool
    status_rejected: bool = False
    new_edges: list[WorkflowEdge] = field(default_factory=list)

    @property
    def structural(self) -> bool:
        """True when the node or edge sets grew."""
        return self.created or bool(self.new_edges)


class GraphStore:
    """Mutable node/edge model keyed by node id.

    Nodes are kept in discovery order, which the layout uses to order nodes
    within a rank.
    """

    def __init__(self, catalog: AgentCatalog) -> None:
        self.catalog = catalog
        self._nodes: dict[str, WorkflowNode] = {}
        self._edges: dict[str, WorkflowEdge] = {}
        self._deferred: dict[str, tuple[str, str]] = {}
        self._structure_version = 0

    # -- read access -----------------------------------------------------

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, node_id: str) -> WorkflowNode | None:
        return self._nodes.get(node_id)

    @property
    def nodes(self) -> list[WorkflowNode]:
        return list(self._nodes.values())

    @property
    def node_ids(self) -> list[str]:
        return list(self._nodes)

    @property
    def edges(self) -> list[WorkflowEdge]:
        return list(self._edges.values())

    @property
    def deferred_edges(self) -> list[tuple[str, str]]:
        """(source, target) pairs waiting for a missing endpoint."""
        return list(self._deferred.values())

    @property
    def structure_version(self) -> int:
        """Counter bumped whenever a node or an edge is added."""
        return self._structure_version

    # -- mutation --------------------------------------------------------

    def upsert_node(self, node_id: str, update: NodeUpdate | None = None) -> UpsertResult:
        """Create or merge a node, then try to attach it to its catalog parent."""
        return self._upsert(node_id, update or NodeUpdate(), resolve_parent=True)

    def materialize_edge(self, source: str, target: str) -> WorkflowEdge | None:
        """Create source -> target once both nodes exist.

        Returns the new edge, or None when the edge already exists or has been
        deferred because an endpoint is unknown.
        """
        if source == target:
            logger.warning(f"Ignoring self-loop edge on '{source}'")
            return None

        eid = edge_id(source, target)
        if eid in self._edges:
            return None

        if source not in self._nodes or target not in self._nodes:
            if eid not in self._deferred:
                missing = source if source not in self._nodes else target
                logger.debug(f"Deferring edge {eid}: '{missing}' not seen yet")
                self._deferred[eid] = (source, target)
            return None

        self._deferred.pop(eid, None)
        target_node = self._nodes[target]
        edge = WorkflowEdge.between(source, target, animated=target_node.status == NodeStatus.running)
        self._edges[eid] = edge
        self._structure_version += 1
        return edge

    def replace_graph(
        self,
        nodes: list[tuple[str, NodeUpdate]],
        edges: list[tuple[str, str]],
    ) -> None:
        """Replace all state with an authoritative snapshot.

        Only the snapshot's own edges are created; the catalog hierarchy is not
        consulted, since the snapshot already describes the shape.
        """
        self._nodes.clear()
        self._edges.clear()
        self._deferred.clear()
        self._structure_version += 1

        for node_id, update in nodes:
            self._upsert(node_id, update, resolve_parent=False)
        for source, target in edges:
            self.materialize_edge(source, target)

        logger.info(
            f"Loaded snapshot with {len(self._nodes)} nodes and {len(self._edges)} edges"
            + (f" ({len(self._deferred)} deferred)" if self._deferred else "")
        )

    def merge_graph(
        self,
        nodes: list[tuple[str, NodeUpdate]],
        edges: list[tuple[str, str]],
    ) -> bool:
        """Merge a snapshot into existing state without dropping anything.

        Returns True when the node or edge sets grew.
        """
        before = self._structure_version
        for node_id, update in nodes:
            self._upsert(node_id, update, resolve_parent=True)
        for source, target in edges:
            self.materialize_edge(source, target)
        return self._structure_version != before

    def set_animation(self, node_id: str) -> list[WorkflowEdge]:
        """Sync `animated` on edges into node_id with its running status."""
        node = self._nodes.get(node_id)
        if node is None:
            return []
        running = node.status == NodeStatus.running
        touched = []
        for edge in self._edges.values():
            if edge.target == node_id and edge.animated != running:
                edge.animated = running
                touched.append(edge)
        return touched

    def settle_edges(self) -> None:
        """Stop all edge animation (pipeline finished)."""
        for edge in self._edges.values():
            edge.animated = False

    # -- internals -------------------------------------------------------

    def _upsert(self, node_id: str, update: NodeUpdate, resolve_parent: bool) -> UpsertResult:
        node = self._nodes.get(node_id)
        created = node is None
        if created:
            node = WorkflowNode(
                node_id=node_id,
                kind=update.kind or self.catalog.kind_of(node_id),
                display_name=self.catalog.display_name_of(node_id),
            )
            self._nodes[node_id] = node
            self._structure_version += 1
            if node_id not in self.catalog:
                logger.info(f"Node '{node_id}' is not in the catalog; using kind '{node.kind.value}'")

        changed, rejected = self._merge(node, update)
        if changed or created:
            node.revision += 1

        new_edges: list[WorkflowEdge] = []
        if resolve_parent:
            parent = self.catalog.parent_of(node_id)
            if parent is not None:
                edge = self.materialize_edge(parent, node_id)
                if edge is not None:
                    new_edges.append(edge)
        if created:
            new_edges.extend(self._resolve_deferred(node_id))

        self.set_animation(node_id)
        return UpsertResult(
            node=node,
            created=created,
            changed=changed or created,
            status_rejected=rejected,
            new_edges=new_edges,
        )

    def _resolve_deferred(self, node_id: str) -> list[WorkflowEdge]:
        """Create deferred edges that were only waiting on node_id."""
        ready = [
            pair for pair in self._deferred.values()
            if node_id in pair and pair[0] in self._nodes and pair[1] in self._nodes
        ]
        created = []
        for source, target in ready:
            edge = self.materialize_edge(source, target)
            if edge is not None:
                logger.debug(f"Materialized deferred edge {edge.edge_id}")
                created.append(edge)
        return created

    def _merge(self, node: WorkflowNode, update: NodeUpdate) -> tuple[bool, bool]:
        """Apply update to node in place. Returns (changed, status_rejected)."""
        changed = False
        rejected = False

        status = update.status
        if status is not None and status != node.status:
            if node.is_terminal and status in REGRESSIVE_STATUSES:
                logger.warning(
                    f"Ignoring out-of-order transition {node.status.value} -> {status.value} "
                    f"for node '{node.node_id}'"
                )
                rejected = True
            else:
                node.status = status
                changed = True
                if status == NodeStatus.retrying:
                    # a retry starts a fresh progress cycle
                    node.progress = 0
                    node.ended_at = None
                    node.duration_seconds = None

        if not rejected:
            if update.progress is not None and update.progress != node.progress:
                node.progress = update.progress
                changed = True

            if update.ended_at is not None and update.ended_at != node.ended_at:
                node.ended_at = update.ended_at
                changed = True
            elif node.ended_at is None and status is not None and status == node.status and node.is_terminal:
                node.ended_at = utc_timestamp()
                changed = True

            if update.duration_seconds is not None and update.duration_seconds != node.duration_seconds:
                node.duration_seconds = update.duration_seconds
                changed = True

        # set-once: the first start time observed wins
        if node.started_at is None:
            if update.started_at is not None:
                node.started_at = update.started_at
                changed = True
            elif node.status == NodeStatus.running:
                node.started_at = utc_timestamp()
                changed = True

        if node.duration_seconds is None and node.ended_at is not None:
            derived = seconds_between(node.started_at, node.ended_at)
            if derived is not None:
                node.duration_seconds = derived
                changed = True

        for attr in ("input_snapshot", "output_snapshot", "process_snapshot"):
            value = getattr(update, attr)
            if value is not None and value != getattr(node, attr):
                setattr(node, attr, value)
                changed = True

        if update.message is not None:
            node.last_message = update.message
            if status == NodeStatus.failed and not rejected:
                node.error_message = update.message
            changed = True

        if update.log is not None:
            node.logs.append(update.log)
            changed = True

        return changed, rejected
