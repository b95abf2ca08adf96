"""Adapters between the engine and the agent-thinking event stream."""

from flowviz.adapters.channel import (
    ChannelHandlers,
    ConnectionState,
    EventChannel,
    Subscription,
)
from flowviz.adapters.transports import LocalTransport, SocketIOTransport, Transport

__all__ = [
    "ChannelHandlers",
    "ConnectionState",
    "EventChannel",
    "Subscription",
    "Transport",
    "LocalTransport",
    "SocketIOTransport",
]
