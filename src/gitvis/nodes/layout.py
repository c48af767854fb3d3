"""
Commit graph layout.

Turns a list of commits into a positioned GraphModel. The expensive part,
the dot layout, depends only on the commit set, the layout options, the
compact flag and the coloring strategy. Selection and highlight changes are
applied on top of an existing model without moving any node.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import networkx as nx
from loguru import logger

from gitvis.errors import LayoutError
from gitvis.models.base import Commit, Submodule
from gitvis.models.graph import (
    DisplaySettings,
    GraphEdge,
    GraphModel,
    GraphNode,
    LayoutOptions,
    Position,
    SubmoduleNode,
)
from gitvis.nodes.colors import DEFAULT_COLOR, assign_author_colors, assign_branch_colors
from gitvis.nodes.dot_layout import layered_layout

NODE_WIDTH_NORMAL = 280
NODE_HEIGHT_NORMAL = 100
NODE_WIDTH_COMPACT = 200
NODE_HEIGHT_COMPACT = 60
COMPACT_SPACING_FACTOR = 0.6
LAYOUT_MARGIN = 50

SUBMODULE_WIDTH_NORMAL = 240
SUBMODULE_HEIGHT_NORMAL = 80
SUBMODULE_WIDTH_COMPACT = 180
SUBMODULE_HEIGHT_COMPACT = 50
SUBMODULE_GAP_NORMAL = 40
SUBMODULE_GAP_COMPACT = 24


def node_size(compact_mode: bool) -> Tuple[int, int]:
    """Width and height of a commit node in pixels."""
    if compact_mode:
        return NODE_WIDTH_COMPACT, NODE_HEIGHT_COMPACT
    return NODE_WIDTH_NORMAL, NODE_HEIGHT_NORMAL


def build_edges(commits: Sequence[Commit], colors: Dict[str, str]) -> List[GraphEdge]:
    """One edge per (child, parent) pair where both commits are present."""
    present = {c.hash for c in commits}
    edges = []
    for commit in commits:
        for index, parent in enumerate(commit.parents):
            if parent not in present:
                continue
            edges.append(
                GraphEdge(
                    id=f"{commit.hash}-{parent}",
                    source=commit.hash,
                    target=parent,
                    is_merge=index > 0,
                    color=colors.get(commit.hash, DEFAULT_COLOR),
                )
            )
    return edges


def layout_commit_graph(
    commits: Sequence[Commit],
    options: LayoutOptions = LayoutOptions(),
    settings: DisplaySettings = DisplaySettings(),
) -> GraphModel:
    """Position every commit with a layered layout.

    Edges run from child to parent, so with ``direction='TB'`` newer commits
    sit above their ancestors. Nodes are returned unselected and without
    highlight; use ``apply_selection`` for those.
    """
    if not commits:
        return GraphModel()

    width, height = node_size(settings.compact_mode)
    factor = COMPACT_SPACING_FACTOR if settings.compact_mode else 1.0

    if settings.color_by_author:
        colors = assign_author_colors(commits)
    else:
        colors = assign_branch_colors(commits)
    edges = build_edges(commits, colors)

    graph = nx.DiGraph()
    for commit in commits:
        graph.add_node(commit.hash, width=width, height=height)
    graph.add_edges_from((e.source, e.target) for e in edges)

    centres = layered_layout(
        graph,
        direction=options.direction,
        node_sep=options.node_spacing * factor,
        rank_sep=options.rank_spacing * factor,
        margin=LAYOUT_MARGIN,
    )

    nodes = []
    for commit in commits:
        if commit.hash not in centres:
            raise LayoutError(f"No position computed for commit {commit.short_hash}")
        x, y = centres[commit.hash]
        nodes.append(
            GraphNode(
                id=commit.hash,
                commit=commit,
                color=colors.get(commit.hash, DEFAULT_COLOR),
                position=Position(x=x - width / 2, y=y - height / 2),
                width=width,
                height=height,
                is_compact=settings.compact_mode,
            )
        )
    logger.debug(f"Laid out {len(nodes)} commits and {len(edges)} edges")
    return GraphModel(nodes=nodes, edges=edges)


def apply_selection(
    model: GraphModel, selected: Optional[str] = None, highlighted: Iterable[str] = ()
) -> GraphModel:
    """Return a model with selection and highlight flags set; positions are untouched."""
    highlighted = frozenset(highlighted)
    nodes = [n.with_state(n.id == selected, n.id in highlighted) for n in model.nodes]
    return GraphModel(nodes=nodes, edges=model.edges)


class GraphLayoutCache:
    """Keeps the last computed layout and recomputes only when its inputs change."""

    def __init__(self):
        self._key = None
        self._model: Optional[GraphModel] = None
        self.computations = 0

    @staticmethod
    def _cache_key(commits: Sequence[Commit], options: LayoutOptions, settings: DisplaySettings):
        return (
            tuple(c.hash for c in commits),
            options,
            settings.compact_mode,
            settings.color_by_author,
        )

    def layout(
        self,
        commits: Sequence[Commit],
        options: LayoutOptions = LayoutOptions(),
        settings: DisplaySettings = DisplaySettings(),
    ) -> GraphModel:
        """Return the layout for these inputs, computing it only when they changed."""
        key = self._cache_key(commits, options, settings)
        if key != self._key or self._model is None:
            self._model = layout_commit_graph(commits, options, settings)
            self._key = key
            self.computations += 1
        return self._model

    def render(
        self,
        commits: Sequence[Commit],
        options: LayoutOptions = LayoutOptions(),
        settings: DisplaySettings = DisplaySettings(),
        selected: Optional[str] = None,
    ) -> GraphModel:
        """The cached layout with the selection and highlight flags applied."""
        model = self.layout(commits, options, settings)
        return apply_selection(model, selected, settings.highlighted_commits)

    def clear(self) -> None:
        self._key = None
        self._model = None


def layout_submodules(
    submodules: Sequence[Submodule], primary: GraphModel, compact_mode: bool = False
) -> List[SubmoduleNode]:
    """Place submodule nodes in a row centred below the commit graph."""
    if not submodules:
        return []

    if compact_mode:
        width, height, gap = SUBMODULE_WIDTH_COMPACT, SUBMODULE_HEIGHT_COMPACT, SUBMODULE_GAP_COMPACT
    else:
        width, height, gap = SUBMODULE_WIDTH_NORMAL, SUBMODULE_HEIGHT_NORMAL, SUBMODULE_GAP_NORMAL

    row_width = len(submodules) * width + (len(submodules) - 1) * gap
    box = primary.bounding_box()
    if box is None:
        centre_x, top = LAYOUT_MARGIN + row_width / 2, LAYOUT_MARGIN
    else:
        min_x, _, max_x, max_y = box
        centre_x, top = (min_x + max_x) / 2, max_y + gap * 2

    left = centre_x - row_width / 2
    return [
        SubmoduleNode(
            id=f"submodule:{sub.path}",
            submodule=sub,
            position=Position(x=left + i * (width + gap), y=top),
            width=width,
            height=height,
            is_compact=compact_mode,
        )
        for i, sub in enumerate(submodules)
    ]
