"""Build render-ready views from a live session."""

from flowviz.analysis.progress import stage_display_name
from flowviz.models.node import NodeStatus, WorkflowEdge, WorkflowNode
from flowviz.presentation.viewmodels import (
    EDGE_STYLE_ACTIVE,
    EDGE_STYLE_COMPLETED,
    EDGE_STYLE_DEFAULT,
    EDGE_STYLE_RETRY,
    DiagramEdge,
    DiagramNode,
    SessionView,
    StatusPanelView,
)


def edge_style(edge: WorkflowEdge, target: WorkflowNode | None) -> str:
    """Style key for an edge, driven by the status of the node it feeds."""
    if target is None:
        return EDGE_STYLE_DEFAULT
    if target.status == NodeStatus.running:
        return EDGE_STYLE_ACTIVE
    if target.status == NodeStatus.retrying:
        return EDGE_STYLE_RETRY
    if target.status == NodeStatus.completed:
        return EDGE_STYLE_COMPLETED
    return EDGE_STYLE_DEFAULT


def build_session_view(session) -> SessionView:
    """Snapshot everything a renderer needs from a WorkflowSession."""
    store = session.store
    catalog = session.catalog
    selected = session.inspector.selected_id

    nodes = [
        DiagramNode(
            node_id=node.node_id,
            component=catalog.component_for(node.kind),
            label=node.display_name,
            kind=node.kind.value,
            status=node.status,
            progress=node.progress,
            position=node.position,
            selected=node.node_id == selected,
        )
        for node in store.nodes
    ]
    edges = [
        DiagramEdge(
            edge_id=edge.edge_id,
            source=edge.source,
            target=edge.target,
            animated=edge.animated,
            style=edge_style(edge, store.get(edge.target)),
        )
        for edge in store.edges
    ]

    summary = session.progress
    status = StatusPanelView(
        total=summary.total,
        completed=summary.completed,
        running=summary.running,
        failed=summary.failed,
        pending=summary.pending,
        retrying=summary.retrying,
        skipped=summary.skipped,
        percent_complete=summary.percent_complete,
        stage=session.current_stage.value,
        stage_label=stage_display_name(session.current_stage),
        elapsed=summary.format_elapsed(),
    )

    return SessionView(
        request_id=session.request_id,
        connection=session.connection_state.value,
        start_time=session.start_time,
        last_update=session.last_update,
        finished=session.finished,
        nodes=nodes,
        edges=edges,
        status=status,
        selected_node_id=selected,
        detail=session.inspector.detail(),
    )
