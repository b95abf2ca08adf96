"""Transports that carry the agent-thinking event stream.

The channel adapter only needs a small surface: connect, disconnect, emit a
named event, and register handlers for named events. Handlers receive the
event payload (None for the built-in "disconnect" event) and may be plain
functions or coroutines.
"""

import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Protocol

import socketio

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]

# fired by every transport when the link drops, requested or not
DISCONNECT = "disconnect"


class Transport(Protocol):
    """Protocol for a bidirectional named-event transport."""

    @property
    def connected(self) -> bool:
        ...

    async def connect(self) -> None:
        """Open the link. Raises ConnectionError on failure."""
        ...

    async def disconnect(self) -> None:
        ...

    async def emit(self, event: str, data: dict) -> None:
        """Send a named event. Raises ConnectionError when not connected."""
        ...

    def on(self, event: str, handler: Handler) -> None:
        ...

    def off(self, event: str, handler: Handler) -> None:
        ...


async def _call_handlers(handlers: list[Handler], data: Any) -> None:
    for handler in list(handlers):
        result = handler(data)
        if inspect.isawaitable(result):
            await result


class LocalTransport:
    """In-memory transport: records what was emitted and lets callers push events.

    Useful for tests and offline demos. `fail_connects` makes the next N
    connect attempts fail.
    """

    def __init__(self, fail_connects: int = 0) -> None:
        self.emitted: list[tuple[str, dict]] = []
        self.fail_connects = fail_connects
        self.connect_attempts = 0
        self._connected = False
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self.connect_attempts += 1
        if self.fail_connects > 0:
            self.fail_connects -= 1
            raise ConnectionError("local transport refused the connection")
        self._connected = True

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        await _call_handlers(self._handlers[DISCONNECT], None)

    async def emit(self, event: str, data: dict) -> None:
        if not self._connected:
            raise ConnectionError(f"cannot emit '{event}': not connected")
        self.emitted.append((event, dict(data)))

    def on(self, event: str, handler: Handler) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Handler) -> None:
        if handler in self._handlers[event]:
            self._handlers[event].remove(handler)

    def handler_count(self, event: str) -> int:
        return len(self._handlers[event])

    def emitted_names(self) -> list[str]:
        return [name for name, _ in self.emitted]

    async def deliver(self, event: str, data: Any) -> None:
        """Push a server event to the registered handlers.

        Events sent while disconnected are lost, like on a real socket.
        """
        if not self._connected:
            logger.debug(f"Dropping '{event}' delivered while disconnected")
            return
        await _call_handlers(self._handlers[event], data)

    async def drop(self) -> None:
        """Simulate the server side closing the link."""
        await self.disconnect()


class SocketIOTransport:
    """Socket.IO client transport (python-socketio AsyncClient).

    The client's built-in reconnection is turned off; the channel adapter owns
    the retry policy. The auth token, when set, is sent as the Socket.IO auth
    payload.
    """

    def __init__(
        self,
        url: str,
        auth_token: str | None = None,
        socketio_path: str = "socket.io",
    ) -> None:
        self.url = url
        self.socketio_path = socketio_path
        self._auth = {"token": auth_token} if auth_token else None
        self._client = socketio.AsyncClient(reconnection=False)
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._bound: set[str] = set()

    @property
    def connected(self) -> bool:
        return self._client.connected

    async def connect(self) -> None:
        try:
            await self._client.connect(
                self.url,
                transports=["websocket"],
                auth=self._auth,
                socketio_path=self.socketio_path,
            )
        except socketio.exceptions.ConnectionError as exc:
            raise ConnectionError(f"cannot connect to {self.url}: {exc}") from exc
        logger.info(f"Connected to {self.url} (sid={self._client.sid})")

    async def disconnect(self) -> None:
        await self._client.disconnect()

    async def emit(self, event: str, data: dict) -> None:
        if not self._client.connected:
            raise ConnectionError(f"cannot emit '{event}': not connected")
        try:
            await self._client.emit(event, data)
        except socketio.exceptions.BadNamespaceError as exc:
            raise ConnectionError(f"cannot emit '{event}': {exc}") from exc

    def on(self, event: str, handler: Handler) -> None:
        self._handlers[event].append(handler)
        if event not in self._bound:
            self._bind(event)

    def off(self, event: str, handler: Handler) -> None:
        if handler in self._handlers[event]:
            self._handlers[event].remove(handler)

    def _bind(self, event: str) -> None:
        # one client-level handler per event; local handlers can then be removed freely
        async def trampoline(*args: Any) -> None:
            data = args[0] if args and event != DISCONNECT else None
            await _call_handlers(self._handlers[event], data)

        self._client.on(event, trampoline)
        self._bound.add(event)
