"""
Layered layout of a commit graph with Graphviz ``dot``.

The graph is handed to ``dot`` through pygraphviz with every node as a
fixed-size box, so ranking, crossing reduction and coordinate assignment
are Graphviz's. ``dot`` works in points with the origin at the bottom
left; the result is flipped so y grows downwards and shifted so the
top-left corner of the drawing sits at ``margin``. One point is one
pixel. Returned coordinates are node centres.
"""

import math
from typing import Dict, Hashable, Tuple

import networkx as nx
from loguru import logger

from gitvis.errors import LayoutError

POINTS_PER_INCH = 72.0
DIRECTIONS = ("TB", "LR")


def _inches(points: float) -> str:
    return f"{points / POINTS_PER_INCH:.4f}"


def to_dot_graph(
    graph: nx.DiGraph, direction: str = "TB", node_sep: float = 40.0, rank_sep: float = 80.0
):
    """Build the pygraphviz graph ``dot`` lays out.

    Node ``width`` and ``height`` attributes are in pixels; Graphviz wants
    inches, and the box must not grow to fit a label.
    """
    boxes = nx.DiGraph()
    for node, data in graph.nodes(data=True):
        boxes.add_node(
            node,
            width=_inches(data["width"]),
            height=_inches(data["height"]),
            shape="box",
            fixedsize="true",
            label="",
        )
    boxes.add_edges_from(graph.edges)

    ag = nx.nx_agraph.to_agraph(boxes)
    ag.graph_attr["rankdir"] = direction
    ag.graph_attr["nodesep"] = _inches(node_sep)
    ag.graph_attr["ranksep"] = _inches(rank_sep)
    # Only node positions are read back; skip edge routing.
    ag.graph_attr["splines"] = "false"
    return ag


def layered_layout(
    graph: nx.DiGraph,
    direction: str = "TB",
    node_sep: float = 40.0,
    rank_sep: float = 80.0,
    margin: float = 50.0,
) -> Dict[Hashable, Tuple[float, float]]:
    """Lay out ``graph`` and return the centre ``(x, y)`` of every node.

    With ``direction='TB'`` edges point downwards, with ``'LR'`` they point
    to the right. ``node_sep`` is the gap between boxes in one rank and
    ``rank_sep`` the gap between ranks.
    """
    if direction not in DIRECTIONS:
        raise LayoutError(f"Unsupported layout direction {direction!r}")
    if graph.number_of_nodes() == 0:
        return {}

    ag = to_dot_graph(graph, direction, node_sep, rank_sep)
    ag.layout(prog="dot")

    raw = {}
    for node in graph.nodes:
        pos = ag.get_node(node).attr.get("pos")
        if not pos:
            raise LayoutError(f"dot returned no position for {node!r}")
        x, y = (float(v) for v in pos.split(",")[:2])
        if not (math.isfinite(x) and math.isfinite(y)):
            raise LayoutError(f"Layout produced a non-finite position for {node!r}")
        raw[node] = (x, -y)

    shift_x = margin - min(raw[n][0] - graph.nodes[n]["width"] / 2 for n in raw)
    shift_y = margin - min(raw[n][1] - graph.nodes[n]["height"] / 2 for n in raw)
    logger.debug(f"dot placed {len(raw)} nodes ({direction})")
    return {n: (x + shift_x, y + shift_y) for n, (x, y) in raw.items()}
