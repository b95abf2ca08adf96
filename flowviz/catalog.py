"""Static agent catalog: kinds, display names and the parent hierarchy.

The catalog is data (agent_catalog.json) so the pipeline topology can change
without touching engine code. Point FLOWVIZ_CATALOG_PATH at another file to
override the bundled one.
"""

import json
import logging
from importlib import resources
from pathlib import Path

import networkx as nx
from pydantic import BaseModel, Field, ValidationError

from flowviz.errors import CatalogError
from flowviz.models.node import NodeKind, WorkflowStage

logger = logging.getLogger(__name__)


class CatalogEntry(BaseModel):
    """What the engine knows about one agent id."""

    model_config = {"extra": "forbid"}

    kind: NodeKind
    display_name: str
    parent: str | None = None
    stage: WorkflowStage | None = None


class CatalogData(BaseModel):
    """On-disk shape of the catalog file."""

    version: str
    default_kind: NodeKind = NodeKind.data_collector
    agents: dict[str, CatalogEntry]
    components: dict[NodeKind, str] = Field(default_factory=dict)
    default_component: str = "CollectorNode"


class AgentCatalog:
    """Lookup table from agent id to kind, label, parent and stage."""

    def __init__(self, data: CatalogData) -> None:
        self._data = data
        self._validate_hierarchy()

    @classmethod
    def load(cls, path: Path | str | None = None) -> "AgentCatalog":
        """Load a catalog file, or the bundled one when path is None."""
        try:
            if path is None:
                raw = resources.files("flowviz.data").joinpath("agent_catalog.json").read_text()
            else:
                raw = Path(path).read_text()
        except OSError as exc:
            raise CatalogError(f"cannot read agent catalog: {exc}") from exc

        try:
            data = CatalogData.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise CatalogError(f"invalid agent catalog: {exc}") from exc

        logger.debug(f"Loaded agent catalog v{data.version} with {len(data.agents)} agents")
        return cls(data)

    def _validate_hierarchy(self) -> None:
        agents = self._data.agents
        for agent_id, entry in agents.items():
            if entry.parent is not None and entry.parent not in agents:
                raise CatalogError(f"agent '{agent_id}' has unknown parent '{entry.parent}'")

        hierarchy = nx.DiGraph()
        hierarchy.add_nodes_from(agents)
        hierarchy.add_edges_from(
            (entry.parent, agent_id) for agent_id, entry in agents.items() if entry.parent is not None
        )
        try:
            cycle = nx.find_cycle(hierarchy)
        except nx.NetworkXNoCycle:
            return
        members = " -> ".join(parent for parent, _ in cycle)
        raise CatalogError(f"parent cycle through {members}")

    @property
    def version(self) -> str:
        return self._data.version

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._data.agents

    def get(self, agent_id: str) -> CatalogEntry | None:
        return self._data.agents.get(agent_id)

    def parent_of(self, agent_id: str) -> str | None:
        """Expected structural parent, or None for roots and unknown ids."""
        entry = self._data.agents.get(agent_id)
        return entry.parent if entry else None

    def children_of(self, agent_id: str) -> list[str]:
        """Known ids whose parent is agent_id, in catalog order."""
        return [aid for aid, entry in self._data.agents.items() if entry.parent == agent_id]

    def kind_of(self, agent_id: str) -> NodeKind:
        entry = self._data.agents.get(agent_id)
        if entry is None:
            return self._data.default_kind
        return entry.kind

    def display_name_of(self, agent_id: str) -> str:
        entry = self._data.agents.get(agent_id)
        return entry.display_name if entry else agent_id

    def stage_of(self, agent_id: str) -> WorkflowStage | None:
        """Pipeline stage an orchestrator id stands for, if any."""
        entry = self._data.agents.get(agent_id)
        return entry.stage if entry else None

    def component_for(self, kind: NodeKind) -> str:
        """Rendering component name for a node kind."""
        return self._data.components.get(kind, self._data.default_component)
