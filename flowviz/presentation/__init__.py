"""Render-ready views of a workflow session."""

from flowviz.presentation.builder import build_session_view, edge_style
from flowviz.presentation.viewmodels import (
    DiagramEdge,
    DiagramNode,
    NodeDetailView,
    SessionView,
    StatusPanelView,
)

__all__ = [
    "DiagramEdge",
    "DiagramNode",
    "NodeDetailView",
    "SessionView",
    "StatusPanelView",
    "build_session_view",
    "edge_style",
]
