"""Custom exceptions for the workflow visualization engine."""


class FlowvizError(Exception):
    """Base class for engine errors."""


class MalformedEventError(FlowvizError):
    """An inbound event could not be parsed into a typed event."""

    def __init__(self, event_name: str, message: str):
        self.event_name = event_name
        self.message = message
        super().__init__(f"Malformed '{event_name}' event: {message}")


class SessionClosedError(FlowvizError):
    """A user action was attempted on a session that is not open."""

    def __init__(self, request_id: str | None):
        self.request_id = request_id
        super().__init__(f"Session '{request_id}' is not open")


class UnknownSessionError(FlowvizError):
    """No live session exists for the given request ID."""

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Session not found: {request_id}")


class CatalogError(FlowvizError):
    """The agent catalog data is missing or inconsistent."""
