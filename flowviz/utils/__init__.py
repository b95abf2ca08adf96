"""Utility functions for flowviz."""

from flowviz.utils.identifiers import (
    edge_id,
    generate_request_id,
    parse_timestamp,
    seconds_between,
    utc_timestamp,
)

__all__ = [
    "edge_id",
    "generate_request_id",
    "parse_timestamp",
    "seconds_between",
    "utc_timestamp",
]
