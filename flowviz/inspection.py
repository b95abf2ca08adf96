"""Inspection of a single selected node.

The selection is only an id. The detail view is rebuilt from the store each
time it is read, so it always shows the node's latest merged state; `notify`
tells the caller whether a batch of store changes touched the selection.
"""

import logging
from typing import Awaitable, Callable

from flowviz.presentation.viewmodels import NodeDetailView
from flowviz.store import GraphStore

logger = logging.getLogger(__name__)

DetailRequester = Callable[[str], Awaitable[bool]]


class Inspector:
    """Tracks the selected node id for one session."""

    def __init__(self, store: GraphStore, request_detail: DetailRequester | None = None) -> None:
        self.store = store
        self.request_detail = request_detail
        self._selected_id: str | None = None
        self._shown_revision: int | None = None

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @property
    def has_selection(self) -> bool:
        return self._selected_id is not None

    async def select(self, node_id: str) -> NodeDetailView | None:
        """Select node_id and ask the backend for extra detail.

        The id may not be in the store yet; the view fills in once it arrives.
        """
        self._selected_id = node_id
        view = self.detail()
        self._shown_revision = view.revision if view else None

        if self.request_detail is not None:
            sent = await self.request_detail(node_id)
            if not sent:
                logger.info(f"Detail request for '{node_id}' not sent; showing accumulated state")
        return view

    def clear(self) -> None:
        self._selected_id = None
        self._shown_revision = None

    def notify(self, changed_ids: list[str]) -> bool:
        """Return True when the selected node's content changed."""
        if self._selected_id is None or self._selected_id not in changed_ids:
            return False
        node = self.store.get(self._selected_id)
        if node is None or node.revision == self._shown_revision:
            return False
        self._shown_revision = node.revision
        return True

    def detail(self) -> NodeDetailView | None:
        """Current view of the selected node, or None."""
        if self._selected_id is None:
            return None
        node = self.store.get(self._selected_id)
        if node is None:
            return None
        return NodeDetailView.from_node(node)
