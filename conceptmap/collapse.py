"""
Collapse projection - derive node/edge visibility from collapse markers.

A collapsed node hides everything reachable from it along edge direction.
The projection is recomputed on every read; inputs are never mutated.
"""

from collections import defaultdict
from typing import Iterable

from .models import Edge, Node


def build_adjacency(edges: Iterable[Edge]) -> dict[str, list[str]]:
    """Forward adjacency: source id -> target ids, in edge order."""
    adjacency: dict[str, list[str]] = defaultdict(list)
    for edge in edges:
        adjacency[edge.source].append(edge.target)
    return adjacency


def _reachable(root_id: str, adjacency: dict[str, list[str]]) -> set[str]:
    # Explicit stack; the visited set bounds the walk on cyclic graphs.
    descendants: set[str] = set()
    stack = list(adjacency.get(root_id, ()))

    while stack:
        current = stack.pop()
        if current in descendants:
            continue
        descendants.add(current)
        for child in adjacency.get(current, ()):
            if child not in descendants:
                stack.append(child)

    # A collapsed node never hides itself, even through a cycle
    descendants.discard(root_id)
    return descendants


def get_descendants(root_id: str, edges: Iterable[Edge]) -> set[str]:
    """
    Collect every node id reachable from root_id's direct targets.

    Dangling ids are collected like any other id; they simply match no node.
    """
    return _reachable(root_id, build_adjacency(edges))


def hidden_node_ids(nodes: Iterable[Node], edges: Iterable[Edge]) -> set[str]:
    """Union of the descendant sets of every collapsed node."""
    adjacency = build_adjacency(edges)
    hidden: set[str] = set()
    for node in nodes:
        if node.data.collapsed:
            hidden |= _reachable(node.id, adjacency)
    return hidden


def project(nodes: list[Node], edges: list[Edge]) -> tuple[list[Node], list[Edge]]:
    """
    Annotate nodes and edges with their derived `hidden` flag.

    Args:
        nodes: Live node list (not modified)
        edges: Live edge list (not modified)

    Returns:
        (nodes', edges') - new objects with `hidden` set
    """
    hidden = hidden_node_ids(nodes, edges)

    next_nodes = [
        node.model_copy(update={"hidden": node.id in hidden})
        for node in nodes
    ]
    next_edges = [
        edge.model_copy(update={"hidden": edge.source in hidden or edge.target in hidden})
        for edge in edges
    ]
    return next_nodes, next_edges
