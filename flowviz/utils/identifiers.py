"""ID generation and timestamp utilities."""

import uuid
from datetime import datetime, timezone


def generate_request_id() -> str:
    """Generate a unique request ID (UUID4)."""
    return str(uuid.uuid4())


def _escape_edge_part(value: str) -> str:
    return value.replace("~", "~~").replace("-", "~-")


def edge_id(source: str, target: str) -> str:
    """Deterministic edge ID for a source -> target pair.

    Hyphens and tildes inside node ids are escaped with a tilde, so the bare
    hyphen between the two parts is the only separator and distinct pairs
    never share an ID.
    """
    return f"e-{_escape_edge_part(source)}-{_escape_edge_part(target)}"


def utc_timestamp() -> str:
    """Generate an ISO8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(ts: str) -> datetime | None:
    """Parse an ISO8601 timestamp, returning None if it is not one."""
    try:
        parsed = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    # naive timestamps from the backend are treated as UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def seconds_between(start: str | None, end: str | None) -> float | None:
    """Seconds from start to end, or None when either is missing or unparseable."""
    if not start or not end:
        return None
    start_dt = parse_timestamp(start)
    end_dt = parse_timestamp(end)
    if start_dt is None or end_dt is None:
        return None
    return round((end_dt - start_dt).total_seconds(), 3)
