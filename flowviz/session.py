"""Session context: one live visualization of one pipeline execution.

A session is opened for an execution id and closed explicitly. Every inbound
event goes through the same pipeline on the event loop:

    merge into the store -> re-layout if the shape changed -> recompute
    progress -> refresh the inspection view -> notify listeners

Closing stops event application at once; anything still arriving from the
transport afterwards is ignored.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

from flowviz.adapters.channel import ChannelHandlers, ConnectionState, EventChannel, Subscription
from flowviz.analysis.progress import ProgressSummary, summarize_progress
from flowviz.catalog import AgentCatalog
from flowviz.config import Settings
from flowviz.errors import SessionClosedError
from flowviz.inspection import Inspector
from flowviz.layout import LayeredLayout
from flowviz.models.events import (
    LifecycleEvent,
    NodeDetail,
    StructureUpdate,
    TerminalEvent,
    WorkflowSnapshot,
)
from flowviz.models.node import FINAL_STAGES, NodeStatus, NodeUpdate, WorkflowStage
from flowviz.presentation.viewmodels import NodeDetailView
from flowviz.store import GraphStore
from flowviz.utils.identifiers import utc_timestamp

logger = logging.getLogger(__name__)

STAGE_ORDER = list(WorkflowStage)


@dataclass
class SessionUpdate:
    """What one pass through the apply pipeline changed."""

    changed_ids: list[str] = field(default_factory=list)
    structural: bool = False
    layout_changed: bool = False
    selection_refreshed: bool = False
    progress: ProgressSummary | None = None


Listener = Callable[[SessionUpdate], None]


class WorkflowSession:
    """Session-scoped state and the event apply pipeline."""

    def __init__(
        self,
        channel: EventChannel,
        catalog: AgentCatalog | None = None,
        settings: Settings | None = None,
        layout: LayeredLayout | None = None,
    ) -> None:
        self.channel = channel
        self.settings = settings or Settings()
        self.catalog = catalog or AgentCatalog.load(self.settings.catalog_path)
        self.layout = layout or LayeredLayout()
        self._listeners: list[Listener] = []
        self._subscription: Subscription | None = None
        self._layout_handle: asyncio.TimerHandle | None = None
        self._handlers = ChannelHandlers(
            on_lifecycle=self.apply_lifecycle,
            on_snapshot=self.apply_snapshot,
            on_structure=self.apply_structure,
            on_terminal=self.apply_terminal,
            on_detail=self.apply_detail,
            on_connection_state=self._on_connection_state,
        )
        self._reset(None)

    def _reset(self, request_id: str | None) -> None:
        self.request_id = request_id
        self.store = GraphStore(self.catalog)
        self.inspector = Inspector(self.store, request_detail=self._request_detail)
        self.start_time: str | None = None
        self.current_stage = WorkflowStage.initialization
        self.connection_state = ConnectionState.idle
        self.last_update: str | None = None
        self.finished = False
        self._snapshot_applied = False
        self._accepting = False

    # -- lifecycle -------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._accepting

    async def open(self, execution_id: str) -> None:
        """Start visualizing execution_id, replacing any other open execution."""
        if self._accepting and self.request_id == execution_id:
            return
        if self._accepting:
            await self.close()

        self._reset(execution_id)
        self._accepting = True
        self._subscription = await self.channel.subscribe(execution_id, self._handlers)
        self.connection_state = self.channel.state
        logger.info(f"Opened workflow session for {execution_id}")

    async def close(self) -> None:
        """Stop applying events, unsubscribe, and drop the session state."""
        if not self._accepting and self._subscription is None:
            return
        request_id = self.request_id
        self._accepting = False
        self._cancel_layout()
        self.inspector.clear()

        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.unsubscribe()

        self._reset(None)
        logger.info(f"Closed workflow session for {request_id}")

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # -- derived state ---------------------------------------------------

    @property
    def progress(self) -> ProgressSummary:
        """Progress over the current store (never cached)."""
        return summarize_progress(self.store.nodes, start_time=self.start_time)

    @property
    def degraded(self) -> bool:
        return self.connection_state == ConnectionState.degraded

    # -- event application ----------------------------------------------

    def apply_lifecycle(self, event: LifecycleEvent) -> None:
        if not self._accepting:
            return
        result = self.store.upsert_node(event.node_id, event.to_update())
        self._advance_stage(event.current_stage)
        if event.status == NodeStatus.running and not result.status_rejected:
            self._advance_stage(self.catalog.stage_of(event.node_id))
        self._after_apply([event.node_id], structural=result.structural)

    def apply_snapshot(self, snapshot: WorkflowSnapshot) -> None:
        """Apply the structural snapshot.

        The first snapshot replaces an empty store wholesale. A snapshot that
        arrives after live events, or a repeat after reconnecting, is merged so
        that nothing already accumulated is lost.
        """
        if not self._accepting:
            return
        nodes = [(node.node_id, node.to_update()) for node in snapshot.nodes]
        edges = [(edge.source, edge.target) for edge in snapshot.edges]

        if not self._snapshot_applied and len(self.store) == 0:
            self.store.replace_graph(nodes, edges)
            structural = True
        else:
            structural = self.store.merge_graph(nodes, edges)
        self._snapshot_applied = True

        if snapshot.start_time and self.start_time is None:
            self.start_time = snapshot.start_time
        self._advance_stage(snapshot.current_stage)
        self._after_apply([node_id for node_id, _ in nodes], structural=structural)

    def apply_structure(self, update: StructureUpdate) -> None:
        if not self._accepting:
            return
        before = self.store.structure_version
        changed: list[str] = []

        if update.added_node is not None:
            added = update.added_node
            self.store.upsert_node(added.node_id, added.to_update())
            if update.connection is not None:
                self.store.materialize_edge(update.connection.source, added.node_id)
            changed.append(added.node_id)

        if update.new_structure is not None:
            structure = update.new_structure
            self.store.merge_graph(
                [(node.node_id, node.to_update()) for node in structure.nodes],
                [(edge.source, edge.target) for edge in structure.edges],
            )
            changed.extend(node.node_id for node in structure.nodes)

        self._after_apply(changed, structural=self.store.structure_version != before)

    def apply_terminal(self, event: TerminalEvent) -> None:
        if not self._accepting:
            return
        stage = WorkflowStage.completed if event.succeeded else WorkflowStage.failed
        self._advance_stage(stage)
        self.finished = True
        self.store.settle_edges()
        if event.succeeded:
            logger.info(f"Workflow {self.request_id} completed")
        else:
            logger.warning(f"Workflow {self.request_id} failed: {event.message or 'no message'}")
        self._after_apply([], structural=False)

    def apply_detail(self, detail: NodeDetail) -> None:
        if not self._accepting:
            return
        if detail.node_id not in self.store:
            logger.debug(f"Ignoring details for unknown node '{detail.node_id}'")
            return
        self.store.upsert_node(detail.node_id, detail.to_update())
        self._after_apply([detail.node_id], structural=False)

    def _after_apply(self, changed_ids: list[str], structural: bool) -> None:
        layout_changed = False
        if structural:
            layout_changed = self._schedule_layout()
        refreshed = self.inspector.notify(changed_ids)
        self.last_update = utc_timestamp()
        self._notify(SessionUpdate(
            changed_ids=changed_ids,
            structural=structural,
            layout_changed=layout_changed,
            selection_refreshed=refreshed,
            progress=self.progress,
        ))

    def _advance_stage(self, stage: WorkflowStage | None) -> None:
        """Move the stage forward; completed/failed are final."""
        if stage is None or self.current_stage in FINAL_STAGES:
            return
        if stage in FINAL_STAGES or STAGE_ORDER.index(stage) > STAGE_ORDER.index(self.current_stage):
            self.current_stage = stage

    def _on_connection_state(self, state: ConnectionState) -> None:
        self.connection_state = state
        if state == ConnectionState.degraded:
            logger.warning(f"Session {self.request_id} degraded; keeping {len(self.store)} nodes")
        self._notify(SessionUpdate())

    def _notify(self, update: SessionUpdate) -> None:
        for listener in list(self._listeners):
            listener(update)

    # -- layout ----------------------------------------------------------

    def _schedule_layout(self) -> bool:
        """Run the layout now, or coalesce it into one deferred pass.

        Returns True when positions were updated synchronously.
        """
        delay = self.settings.layout_debounce
        if delay <= 0:
            self._run_layout()
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._run_layout()
            return True
        if self._layout_handle is None:
            self._layout_handle = loop.call_later(delay, self._deferred_layout)
        return False

    def _deferred_layout(self) -> None:
        self._layout_handle = None
        if not self._accepting:
            return
        self._run_layout()
        self._notify(SessionUpdate(structural=True, layout_changed=True, progress=self.progress))

    def _cancel_layout(self) -> None:
        if self._layout_handle is not None:
            self._layout_handle.cancel()
            self._layout_handle = None

    def _run_layout(self, force: bool = False) -> None:
        nodes = self.store.nodes
        previous = {node.node_id: node.position for node in nodes if node.position is not None}
        positions = self.layout.compute(self.store.node_ids, self.store.edges, previous=previous, force=force)
        for node in nodes:
            node.position = positions[node.node_id]

    def flush_layout(self) -> None:
        """Run a pending deferred layout immediately."""
        if self._layout_handle is not None:
            self._cancel_layout()
            self._run_layout()

    # -- user actions ----------------------------------------------------

    def _require_open(self) -> None:
        if not self._accepting:
            raise SessionClosedError(self.request_id)

    def relayout(self) -> None:
        """Recompute every position from scratch (explicit user request)."""
        self._require_open()
        self._cancel_layout()
        self._run_layout(force=True)
        self._notify(SessionUpdate(structural=True, layout_changed=True, progress=self.progress))

    async def select(self, node_id: str) -> NodeDetailView | None:
        self._require_open()
        view = await self.inspector.select(node_id)
        self._notify(SessionUpdate(selection_refreshed=True))
        return view

    def clear_selection(self) -> None:
        self.inspector.clear()
        self._notify(SessionUpdate(selection_refreshed=True))

    async def pause(self) -> bool:
        self._require_open()
        return await self._subscription.pause() if self._subscription else False

    async def resume(self) -> bool:
        self._require_open()
        return await self._subscription.resume() if self._subscription else False

    async def reconnect(self) -> bool:
        """Retry a degraded event channel; the stream resumes once connected."""
        self._require_open()
        return await self.channel.reconnect()

    async def _request_detail(self, node_id: str) -> bool:
        if self._subscription is None:
            return False
        return await self._subscription.request_detail(node_id)

    def upsert(self, node_id: str, update: NodeUpdate) -> None:
        """Apply a locally produced update through the normal pipeline."""
        self._require_open()
        result = self.store.upsert_node(node_id, update)
        self._after_apply([node_id], structural=result.structural)

    def __repr__(self) -> str:
        return (
            f"WorkflowSession(request_id={self.request_id!r}, nodes={len(self.store)}, "
            f"stage={self.current_stage.value})"
        )
