"""
Graph analysis - bounding box and structure counts for a concept map.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .models import DEFAULT_NODE_HEIGHT, DEFAULT_NODE_WIDTH

if TYPE_CHECKING:
    from .models import Edge, Node


@dataclass
class GraphBounds:
    """Axis-aligned bounding box of a set of nodes."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    def to_dict(self) -> dict:
        return {
            "min_x": self.min_x,
            "min_y": self.min_y,
            "max_x": self.max_x,
            "max_y": self.max_y,
            "width": self.width,
            "height": self.height,
        }


def graph_bounds(
    nodes: list["Node"],
    fallback_width: float = DEFAULT_NODE_WIDTH,
    fallback_height: float = DEFAULT_NODE_HEIGHT,
) -> GraphBounds:
    """
    Compute the bounding box of the given nodes.

    Nodes without measured dimensions use the fallback size. An empty list
    yields a single default-sized box at the origin.
    """
    if not nodes:
        return GraphBounds(0, 0, fallback_width, fallback_height)

    min_x = min_y = float("inf")
    max_x = max_y = float("-inf")

    for node in nodes:
        width = node.width if node.width is not None else fallback_width
        height = node.height if node.height is not None else fallback_height
        x, y = node.position.x, node.position.y

        min_x = min(min_x, x)
        min_y = min(min_y, y)
        max_x = max(max_x, x + width)
        max_y = max(max_y, y + height)

    return GraphBounds(min_x, min_y, max_x, max_y)


def summarize_graph(nodes: list["Node"], edges: list["Edge"]) -> dict:
    """Counts used by status displays."""
    collapsed = [n.id for n in nodes if n.data.collapsed]
    roots = [n.id for n in nodes if not n.data.parent_id]
    return {
        "total_nodes": len(nodes),
        "total_edges": len(edges),
        "collapsed_nodes": collapsed,
        "root_nodes": roots,
    }
