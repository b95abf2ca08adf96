"""In-process registry of live visualization sessions, keyed by request ID."""

import logging
from typing import Callable

from flowviz.adapters.channel import EventChannel
from flowviz.adapters.transports import SocketIOTransport, Transport
from flowviz.catalog import AgentCatalog
from flowviz.config import Settings
from flowviz.errors import UnknownSessionError
from flowviz.session import WorkflowSession

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str], Transport]


def socketio_transport_factory(settings: Settings) -> TransportFactory:
    """Factory building one Socket.IO client per session."""

    def build(_request_id: str) -> Transport:
        return SocketIOTransport(settings.server_url, auth_token=settings.auth_token)

    return build


class SessionRegistry:
    """Owns one WorkflowSession (and its event channel) per request ID."""

    def __init__(
        self,
        settings: Settings,
        catalog: AgentCatalog | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self.settings = settings
        self.catalog = catalog or AgentCatalog.load(settings.catalog_path)
        self.transport_factory = transport_factory or socketio_transport_factory(settings)
        self._sessions: dict[str, WorkflowSession] = {}

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._sessions

    def request_ids(self) -> list[str]:
        return list(self._sessions)

    async def open(self, request_id: str) -> WorkflowSession:
        """Open a session for request_id, reusing a live one."""
        session = self._sessions.get(request_id)
        if session is not None:
            return session

        channel = EventChannel(
            self.transport_factory(request_id),
            reconnect_attempts=self.settings.reconnect_attempts,
            reconnect_delay=self.settings.reconnect_delay,
        )
        session = WorkflowSession(channel, catalog=self.catalog, settings=self.settings)
        try:
            await session.open(request_id)
        except Exception:
            logger.exception(f"Failed to open session {request_id}")
            await channel.close()
            raise
        self._sessions[request_id] = session
        logger.info(f"Registered session {request_id} ({len(self._sessions)} live)")
        return session

    def get(self, request_id: str) -> WorkflowSession:
        session = self._sessions.get(request_id)
        if session is None:
            raise UnknownSessionError(request_id)
        return session

    async def close(self, request_id: str) -> None:
        session = self._sessions.pop(request_id, None)
        if session is None:
            raise UnknownSessionError(request_id)
        await session.close()
        await session.channel.close()
        logger.info(f"Removed session {request_id}")

    async def close_all(self) -> None:
        for request_id in list(self._sessions):
            await self.close(request_id)
