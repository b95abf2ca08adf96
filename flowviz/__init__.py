"""Flowviz - live visualization engine for multi-agent pipeline executions."""

from flowviz.adapters.channel import ChannelHandlers, ConnectionState, EventChannel, Subscription
from flowviz.adapters.transports import LocalTransport, SocketIOTransport
from flowviz.analysis.progress import ProgressSummary, summarize_progress
from flowviz.catalog import AgentCatalog
from flowviz.config import Settings, configure_logging
from flowviz.errors import (
    CatalogError,
    FlowvizError,
    MalformedEventError,
    SessionClosedError,
    UnknownSessionError,
)
from flowviz.inspection import Inspector
from flowviz.layout import LayeredLayout, LayoutOptions
from flowviz.models.node import NodeKind, NodeStatus, WorkflowEdge, WorkflowNode, WorkflowStage
from flowviz.presentation.builder import build_session_view
from flowviz.session import SessionUpdate, WorkflowSession
from flowviz.store import GraphStore

__all__ = [
    # Graph
    "NodeKind",
    "NodeStatus",
    "WorkflowEdge",
    "WorkflowNode",
    "WorkflowStage",
    "GraphStore",
    # Layout and progress
    "LayeredLayout",
    "LayoutOptions",
    "ProgressSummary",
    "summarize_progress",
    # Event channel
    "ChannelHandlers",
    "ConnectionState",
    "EventChannel",
    "Subscription",
    "LocalTransport",
    "SocketIOTransport",
    # Session
    "AgentCatalog",
    "Inspector",
    "SessionUpdate",
    "WorkflowSession",
    "build_session_view",
    # Configuration
    "Settings",
    "configure_logging",
    # Errors
    "CatalogError",
    "FlowvizError",
    "MalformedEventError",
    "SessionClosedError",
    "UnknownSessionError",
]
