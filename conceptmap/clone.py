"""
Graph cloning - explicit per-entity copies for history snapshots.

Each known field is copied by hand so a snapshot never shares a mutable
object with the live graph.
"""

from typing import Iterable, Optional

from .models import Edge, GraphSnapshot, MarkerEnd, Node, NodeData, NodeStyle, Position


def clone_position(position: Position) -> Position:
    return Position(x=position.x, y=position.y)


def clone_style(style: NodeStyle) -> NodeStyle:
    return NodeStyle(
        bg_color=style.bg_color,
        border_color=style.border_color,
        border_width=style.border_width,
        icon=style.icon,
    )


def clone_data(data: NodeData) -> NodeData:
    return NodeData(
        label=data.label,
        style=clone_style(data.style),
        collapsed=data.collapsed,
        parent_id=data.parent_id,
    )


def clone_marker(marker: Optional[MarkerEnd]) -> Optional[MarkerEnd]:
    if marker is None:
        return None
    return MarkerEnd(type=marker.type)


def clone_node(node: Node) -> Node:
    """Copy a node and everything it owns."""
    return Node(
        id=node.id,
        type=node.type,
        position=clone_position(node.position),
        data=clone_data(node.data),
        width=node.width,
        height=node.height,
        selected=node.selected,
        hidden=node.hidden,
    )


def clone_edge(edge: Edge) -> Edge:
    """Copy an edge and its marker."""
    return Edge(
        id=edge.id,
        source=edge.source,
        target=edge.target,
        type=edge.type,
        marker_end=clone_marker(edge.marker_end),
        selected=edge.selected,
        hidden=edge.hidden,
    )


def clone_graph(nodes: Iterable[Node], edges: Iterable[Edge]) -> GraphSnapshot:
    """Take an independent snapshot of the full node and edge lists."""
    return GraphSnapshot(
        nodes=[clone_node(n) for n in nodes],
        edges=[clone_edge(e) for e in edges],
    )
