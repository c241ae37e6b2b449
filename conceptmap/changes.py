"""
Change batches reported by the rendering surface.

The canvas reports what the user did as small change records (moved,
resized, selected, removed, added). These helpers merge a batch into a
node or edge list and return a new list; touched elements are replaced,
never modified in place.
"""

from typing import Annotated, Literal, Optional, Union
from pydantic import Field, TypeAdapter

from .models import CamelModel, Edge, Node, Position


class Dimensions(CamelModel):
    width: float
    height: float


class NodePositionChange(CamelModel):
    type: Literal["position"] = "position"
    id: str
    position: Optional[Position] = None
    dragging: Optional[bool] = None


class NodeDimensionsChange(CamelModel):
    type: Literal["dimensions"] = "dimensions"
    id: str
    dimensions: Optional[Dimensions] = None


class SelectChange(CamelModel):
    type: Literal["select"] = "select"
    id: str
    selected: bool


class RemoveChange(CamelModel):
    type: Literal["remove"] = "remove"
    id: str


class NodeAddChange(CamelModel):
    type: Literal["add"] = "add"
    item: Node


class EdgeAddChange(CamelModel):
    type: Literal["add"] = "add"
    item: Edge


NodeChange = Annotated[
    Union[NodePositionChange, NodeDimensionsChange, SelectChange, RemoveChange, NodeAddChange],
    Field(discriminator="type"),
]
EdgeChange = Annotated[
    Union[SelectChange, RemoveChange, EdgeAddChange],
    Field(discriminator="type"),
]

node_changes_adapter = TypeAdapter(list[NodeChange])
edge_changes_adapter = TypeAdapter(list[EdgeChange])


def is_selection_only(changes: list) -> bool:
    """True if every change in the batch is a selection toggle."""
    return all(change.type == "select" for change in changes)


def apply_node_changes(changes: list, nodes: list[Node]) -> list[Node]:
    """Merge a batch of node changes into `nodes` and return the new list."""
    if not changes:
        return list(nodes)

    updates: dict[str, dict] = {}
    removed: set[str] = set()
    added: list[Node] = []

    for change in changes:
        if change.type == "add":
            added.append(change.item)
        elif change.type == "remove":
            removed.add(change.id)
        elif change.type == "select":
            updates.setdefault(change.id, {})["selected"] = change.selected
        elif change.type == "position":
            if change.position is not None:
                updates.setdefault(change.id, {})["position"] = Position(
                    x=change.position.x, y=change.position.y
                )
        elif change.type == "dimensions":
            if change.dimensions is not None:
                update = updates.setdefault(change.id, {})
                update["width"] = change.dimensions.width
                update["height"] = change.dimensions.height

    result: list[Node] = []
    for node in nodes:
        if node.id in removed:
            continue
        update = updates.get(node.id)
        result.append(node.model_copy(update=update) if update else node)

    result.extend(added)
    return result


def apply_edge_changes(changes: list, edges: list[Edge]) -> list[Edge]:
    """Merge a batch of edge changes into `edges` and return the new list."""
    if not changes:
        return list(edges)

    selection: dict[str, bool] = {}
    removed: set[str] = set()
    added: list[Edge] = []

    for change in changes:
        if change.type == "add":
            added.append(change.item)
        elif change.type == "remove":
            removed.add(change.id)
        elif change.type == "select":
            selection[change.id] = change.selected

    result: list[Edge] = []
    for edge in edges:
        if edge.id in removed:
            continue
        if edge.id in selection:
            result.append(edge.model_copy(update={"selected": selection[edge.id]}))
        else:
            result.append(edge)

    result.extend(added)
    return result
