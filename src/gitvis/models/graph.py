"""Types for the positioned commit graph."""

from dataclasses import dataclass, field, replace
from typing import FrozenSet, List, Optional

from gitvis.models.base import Commit, Submodule


@dataclass(frozen=True)
class LayoutOptions:
    """Options for the layered layout."""

    direction: str = "TB"  # 'TB' or 'LR'
    node_spacing: float = 40
    rank_spacing: float = 80


@dataclass(frozen=True)
class DisplaySettings:
    """Display toggles. Only ``compact_mode`` and ``color_by_author`` affect layout."""

    compact_mode: bool = False
    color_by_author: bool = False
    highlighted_commits: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class Position:
    x: float
    y: float


@dataclass(frozen=True)
class GraphNode:
    """A commit placed on the canvas; ``position`` is its top-left corner."""

    id: str
    commit: Commit
    color: str
    position: Position
    width: float
    height: float
    is_compact: bool = False
    is_highlighted: bool = False
    selected: bool = False

    def with_state(self, selected: bool, highlighted: bool) -> "GraphNode":
        if selected == self.selected and highlighted == self.is_highlighted:
            return self
        return replace(self, selected=selected, is_highlighted=highlighted)


@dataclass(frozen=True)
class GraphEdge:
    """A child -> parent relation between two visible commits."""

    id: str
    source: str
    target: str
    is_merge: bool
    color: str


@dataclass(frozen=True)
class SubmoduleNode:
    id: str
    submodule: Submodule
    position: Position
    width: float
    height: float
    is_compact: bool = False


@dataclass
class GraphModel:
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)

    def node(self, node_id: str) -> Optional[GraphNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def bounding_box(self):
        """Return ``(min_x, min_y, max_x, max_y)`` of all nodes, or None when empty."""
        if not self.nodes:
            return None
        return (
            min(n.position.x for n in self.nodes),
            min(n.position.y for n in self.nodes),
            max(n.position.x + n.width for n in self.nodes),
            max(n.position.y + n.height for n in self.nodes),
        )
