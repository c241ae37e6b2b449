"""
Conversion between the live graph and the persisted document shape.

Only persistent fields cross this boundary: selection, the derived
`hidden` flag and edge markers stay in the live graph.
"""

import json
import re

from .models import (
    ARROW_CLOSED,
    EDGE_TYPE,
    Edge,
    ExportEdge,
    ExportMap,
    ExportNode,
    MapMetadata,
    MarkerEnd,
    Node,
    NodeData,
    NodeStyle,
    Position,
    SCHEMA_VERSION,
)


_UNSAFE_FILENAME = re.compile(r'[<>:"/\\|?*]+')


def export_node(node: Node) -> ExportNode:
    style = node.data.style
    return ExportNode(
        id=node.id,
        position=Position(x=node.position.x, y=node.position.y),
        data=NodeData(
            label=node.data.label,
            style=NodeStyle(
                bg_color=style.bg_color,
                border_color=style.border_color,
                border_width=style.border_width,
                icon=style.icon,
            ),
            collapsed=node.data.collapsed,
            parent_id=node.data.parent_id,
        ),
        width=node.width,
        height=node.height,
    )


def export_edge(edge: Edge) -> ExportEdge:
    return ExportEdge(id=edge.id, source=edge.source, target=edge.target, type=edge.type)


def build_export_map(
    metadata: MapMetadata,
    nodes: list[Node],
    edges: list[Edge],
    updated_at: str | None = None,
) -> ExportMap:
    """Build the versioned persisted representation of a document."""
    return ExportMap(
        id=metadata.id,
        version=SCHEMA_VERSION,
        metadata=MapMetadata(
            id=metadata.id,
            name=metadata.name,
            created_at=metadata.created_at,
            updated_at=updated_at or metadata.updated_at,
        ),
        nodes=[export_node(n) for n in nodes],
        edges=[export_edge(e) for e in edges],
    )


def hydrate_from_export_map(doc: ExportMap) -> tuple[list[Node], list[Edge], MapMetadata]:
    """Rebuild live nodes, edges and metadata from a persisted document."""
    nodes = [
        Node(
            id=item.id,
            position=Position(x=item.position.x, y=item.position.y),
            data=NodeData(
                label=item.data.label,
                style=NodeStyle(
                    bg_color=item.data.style.bg_color,
                    border_color=item.data.style.border_color,
                    border_width=item.data.style.border_width,
                    icon=item.data.style.icon,
                ),
                collapsed=item.data.collapsed,
                parent_id=item.data.parent_id,
            ),
            width=item.width,
            height=item.height,
        )
        for item in doc.nodes
    ]

    edges = [
        Edge(
            id=item.id,
            source=item.source,
            target=item.target,
            type=item.type or EDGE_TYPE,
            marker_end=MarkerEnd(type=ARROW_CLOSED),
        )
        for item in doc.edges
    ]

    metadata = MapMetadata(
        id=doc.metadata.id or doc.id,
        name=doc.metadata.name,
        created_at=doc.metadata.created_at,
        updated_at=doc.metadata.updated_at,
    )
    return nodes, edges, metadata


def safe_filename(name: str, fallback: str = "ConceptMap") -> str:
    """Strip characters that are not allowed in file names."""
    return _UNSAFE_FILENAME.sub("-", name).strip() or fallback


def _signature(document_id: str, name: str, nodes: list, edges: list) -> str:
    payload = {
        "documentId": document_id,
        "name": name,
        "nodes": [n.model_dump(mode="json", by_alias=True, exclude_none=True) for n in nodes],
        "edges": [e.model_dump(mode="json", by_alias=True, exclude_none=True) for e in edges],
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def document_signature(document_id: str, name: str, nodes: list[Node], edges: list[Edge]) -> str:
    """
    Canonical serialization of a document's content.

    Node and edge order is preserved. Timestamps are left out so that
    stamping `updatedAt` on save never makes a document look edited.
    Selection and the derived `hidden` flag are left out as well.
    """
    return _signature(
        document_id,
        name,
        [export_node(n) for n in nodes],
        [export_edge(e) for e in edges],
    )


def export_signature(doc: ExportMap) -> str:
    """Signature of an already exported document (matches document_signature)."""
    return _signature(doc.id, doc.metadata.name, doc.nodes, doc.edges)
