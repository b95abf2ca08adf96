"""Event channel adapter: one subscription per execution id over a transport.

Subscribing registers the channel's event routes before anything is requested,
then asks the server to start streaming (`subscribe_agent_thinking`) and for
the structural snapshot (`get_workflow_metadata`). Events for other request
ids, events arriving after teardown, and malformed payloads are dropped.

If the link drops without being asked to, the channel retries a fixed number
of times with a fixed delay and re-opens every live subscription. When the
retries run out the channel reports `degraded`; subscriptions stay registered
so a later reconnect resumes them.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel

from flowviz.adapters.transports import DISCONNECT, Transport
from flowviz.errors import MalformedEventError
from flowviz.models.events import (
    LifecycleEvent,
    NodeDetail,
    StructureUpdate,
    TerminalEvent,
    WorkflowSnapshot,
    parse_event,
)

logger = logging.getLogger(__name__)

# outbound event names
SUBSCRIBE = "subscribe_agent_thinking"
UNSUBSCRIBE = "unsubscribe_agent_thinking"
GET_METADATA = "get_workflow_metadata"
GET_NODE_DETAILS = "get_node_details"
PAUSE = "pause_workflow"
RESUME = "resume_workflow"

# inbound event name -> (model, handler attribute)
ROUTES: dict[str, tuple[type[BaseModel], str]] = {
    "agent_thinking": (LifecycleEvent, "on_lifecycle"),
    "workflow_metadata": (WorkflowSnapshot, "on_snapshot"),
    "workflow_structure_update": (StructureUpdate, "on_structure"),
    "node_details": (NodeDetail, "on_detail"),
}

# inbound terminal event name -> whether the pipeline succeeded
TERMINAL_ROUTES = {
    "workflow_complete": True,
    "workflow_error": False,
    "error": False,
}


class ConnectionState(str, Enum):
    idle = "idle"
    connecting = "connecting"
    connected = "connected"
    reconnecting = "reconnecting"
    degraded = "degraded"
    closed = "closed"


@dataclass
class ChannelHandlers:
    """Typed callbacks for one subscription. Any of them may be left unset."""

    on_lifecycle: Callable[[LifecycleEvent], None] | None = None
    on_snapshot: Callable[[WorkflowSnapshot], None] | None = None
    on_structure: Callable[[StructureUpdate], None] | None = None
    on_terminal: Callable[[TerminalEvent], None] | None = None
    on_detail: Callable[[NodeDetail], None] | None = None
    on_connection_state: Callable[[ConnectionState], None] | None = None


class Subscription:
    """Handle returned by EventChannel.subscribe()."""

    def __init__(self, channel: "EventChannel", execution_id: str, handlers: ChannelHandlers) -> None:
        self._channel = channel
        self.execution_id = execution_id
        self.handlers = handlers
        self.active = True

    async def unsubscribe(self) -> None:
        """Stop delivery now and tell the server to drop the registration."""
        await self._channel._teardown(self)

    async def request_detail(self, node_id: str) -> bool:
        """Best-effort `get_node_details`; False if it could not be sent."""
        return await self._send(GET_NODE_DETAILS, {"node_id": node_id})

    async def pause(self) -> bool:
        return await self._send(PAUSE)

    async def resume(self) -> bool:
        return await self._send(RESUME)

    async def _send(self, event: str, extra: dict | None = None) -> bool:
        if not self.active:
            return False
        payload = {"request_id": self.execution_id, **(extra or {})}
        return await self._channel._emit(event, payload)

    def __repr__(self) -> str:
        return f"Subscription(execution_id={self.execution_id!r}, active={self.active})"


class EventChannel:
    """Owns the transport, the event routes and the reconnect policy."""

    def __init__(
        self,
        transport: Transport,
        reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
    ) -> None:
        self.transport = transport
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.state = ConnectionState.idle
        self._subscriptions: dict[str, Subscription] = {}
        self._routes_bound = False
        self._closing = False
        self._reconnect_task: asyncio.Task | None = None

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions.values())

    async def subscribe(self, execution_id: str, handlers: ChannelHandlers) -> Subscription:
        """Subscribe to the event stream of one execution.

        Subscribing twice with the same handlers returns the live handle;
        with different handlers the previous subscription is torn down first.
        """
        existing = self._subscriptions.get(execution_id)
        if existing is not None and existing.active:
            if existing.handlers is handlers:
                return existing
            logger.info(f"Re-subscribing {execution_id} with new handlers")
            await self._teardown(existing)

        self._closing = False
        self._bind_routes()
        subscription = Subscription(self, execution_id, handlers)
        self._subscriptions[execution_id] = subscription

        if not self.transport.connected:
            await self._connect()
        if self.transport.connected:
            await self._open_stream(subscription)
        return subscription

    async def reconnect(self) -> bool:
        """Manually retry after the channel went degraded."""
        if self.transport.connected:
            return True
        await self._run_reconnect()
        return self.transport.connected

    async def close(self) -> None:
        """Tear down every subscription and close the transport."""
        self._closing = True
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None
        for subscription in list(self._subscriptions.values()):
            await self._teardown(subscription)
        if self.transport.connected:
            await self.transport.disconnect()
        self._set_state(ConnectionState.closed)

    # -- routing ---------------------------------------------------------

    def _bind_routes(self) -> None:
        if self._routes_bound:
            return
        for event_name in ROUTES:
            self.transport.on(event_name, self._router(event_name))
        for event_name in TERMINAL_ROUTES:
            self.transport.on(event_name, self._router(event_name))
        self.transport.on(DISCONNECT, self._on_disconnect)
        self._routes_bound = True

    def _router(self, event_name: str) -> Callable[[Any], None]:
        def route(data: Any) -> None:
            self._dispatch(event_name, data)

        return route

    def _dispatch(self, event_name: str, data: Any) -> None:
        targets = self._targets_for(data)
        if not targets:
            logger.debug(f"No live subscription for '{event_name}'; ignoring")
            return

        try:
            if event_name in TERMINAL_ROUTES:
                payload = dict(data) if isinstance(data, dict) else {"message": str(data)}
                payload["succeeded"] = TERMINAL_ROUTES[event_name]
                event = parse_event(event_name, TerminalEvent, payload)
                attr = "on_terminal"
            else:
                model, attr = ROUTES[event_name]
                event = parse_event(event_name, model, data)
        except MalformedEventError as exc:
            logger.warning(f"Dropping event: {exc}")
            return

        for subscription in targets:
            handler = getattr(subscription.handlers, attr)
            if handler is not None and subscription.active:
                handler(event)

    def _targets_for(self, data: Any) -> list[Subscription]:
        """Live subscriptions an inbound payload belongs to."""
        live = [s for s in self._subscriptions.values() if s.active]
        request_id = data.get("request_id") if isinstance(data, dict) else None
        if request_id is None:
            return live
        matched = [s for s in live if s.execution_id == str(request_id)]
        if not matched:
            logger.debug(f"Ignoring event for stale request {request_id}")
        return matched

    # -- lifecycle -------------------------------------------------------

    async def _open_stream(self, subscription: Subscription) -> None:
        # routes are already bound, so nothing sent in reply to these can be missed
        payload = {"request_id": subscription.execution_id}
        if await self._emit(SUBSCRIBE, payload):
            await self._emit(GET_METADATA, payload)
            logger.info(f"Subscribed to agent events for {subscription.execution_id}")

    async def _teardown(self, subscription: Subscription) -> None:
        if not subscription.active:
            return
        subscription.active = False
        if self._subscriptions.get(subscription.execution_id) is subscription:
            del self._subscriptions[subscription.execution_id]
        if self.transport.connected:
            await self._emit(UNSUBSCRIBE, {"request_id": subscription.execution_id})
        logger.info(f"Unsubscribed from {subscription.execution_id}")

    async def _emit(self, event: str, payload: dict) -> bool:
        try:
            await self.transport.emit(event, payload)
        except ConnectionError as exc:
            logger.warning(f"Could not send '{event}': {exc}")
            return False
        return True

    async def _connect(self) -> None:
        self._set_state(ConnectionState.connecting)
        try:
            await self.transport.connect()
        except ConnectionError as exc:
            logger.warning(f"Initial connection failed: {exc}")
            self._start_reconnect()
            return
        self._set_state(ConnectionState.connected)

    def _on_disconnect(self, _data: Any = None) -> None:
        if self._closing:
            return
        logger.warning("Event channel disconnected")
        self._start_reconnect()

    def _start_reconnect(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._set_state(ConnectionState.reconnecting)
        self._reconnect_task = asyncio.get_running_loop().create_task(self._run_reconnect())

    async def _run_reconnect(self) -> None:
        self._set_state(ConnectionState.reconnecting)
        for attempt in range(1, self.reconnect_attempts + 1):
            await asyncio.sleep(self.reconnect_delay)
            if self._closing:
                return
            try:
                await self.transport.connect()
            except ConnectionError as exc:
                logger.warning(f"Reconnect attempt {attempt}/{self.reconnect_attempts} failed: {exc}")
                continue

            logger.info(f"Reconnected on attempt {attempt}")
            self._set_state(ConnectionState.connected)
            for subscription in list(self._subscriptions.values()):
                if subscription.active:
                    await self._open_stream(subscription)
            return

        logger.error(f"Giving up after {self.reconnect_attempts} reconnect attempts; channel degraded")
        self._set_state(ConnectionState.degraded)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        self.state = state
        for subscription in list(self._subscriptions.values()):
            callback = subscription.handlers.on_connection_state
            if callback is not None and subscription.active:
                callback(state)
