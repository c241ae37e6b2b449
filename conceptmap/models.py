"""
Core data models for concept maps.

These models define the canonical schema for concept-map documents:
- Nodes with a position, layout hints and label/style data
- Edges connecting nodes (using source/target naming convention)
- Metadata with ISO timestamps
- The versioned export shape that gets persisted

Field Naming Convention:
- Python attributes are snake_case (`bg_color`, `parent_id`)
- JSON serialization outputs camelCase (`bgColor`, `parentId`) via aliases
- Both spellings are accepted on input
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
import uuid


SCHEMA_VERSION = 1

DEFAULT_NODE_COLOR = "#ffffff"
DEFAULT_BORDER_COLOR = "#1f2937"
DEFAULT_BORDER_WIDTH = 2
DEFAULT_NODE_LABEL = "Idea"

# Layout hints used when placing generated nodes
DEFAULT_NODE_WIDTH = 180
DEFAULT_NODE_HEIGHT = 60
HORIZONTAL_GAP = 120
VERTICAL_GAP = 40

NODE_TYPE = "concept"
EDGE_TYPE = "default"
ARROW_CLOSED = "arrowclosed"


def generate_node_id() -> str:
    """Generate a unique node ID."""
    return f"n{uuid.uuid4().hex[:12]}"


def generate_edge_id() -> str:
    """Generate a unique edge ID."""
    return f"e{uuid.uuid4().hex[:12]}"


def generate_document_id() -> str:
    """Generate a unique document ID."""
    return f"map-{uuid.uuid4().hex[:12]}"


def utc_now_iso() -> str:
    """Current UTC time as an ISO string with millisecond precision ('Z' suffix)."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Position(CamelModel):
    """Canvas coordinates."""
    x: float = 0
    y: float = 0


class NodeStyle(CamelModel):
    """Visual style of a node."""
    bg_color: str = DEFAULT_NODE_COLOR
    border_color: str = DEFAULT_BORDER_COLOR
    border_width: int = DEFAULT_BORDER_WIDTH
    icon: Optional[str] = None


class NodeData(CamelModel):
    """Semantic payload of a node."""
    label: str = DEFAULT_NODE_LABEL
    style: NodeStyle = Field(default_factory=NodeStyle)
    collapsed: Optional[bool] = None
    parent_id: Optional[str] = None  # Logical tree parent, set by the first connection


class Node(CamelModel):
    """A node in the live graph."""
    id: str = Field(default_factory=generate_node_id)
    type: str = NODE_TYPE
    position: Position = Field(default_factory=Position)
    data: NodeData = Field(default_factory=NodeData)
    width: Optional[float] = None
    height: Optional[float] = None
    selected: bool = False
    hidden: bool = False  # Derived by the collapse projection, never persisted


class MarkerEnd(CamelModel):
    """Rendering hint for the arrow at the target end of an edge."""
    type: str = ARROW_CLOSED


class Edge(CamelModel):
    """A directed edge between two nodes."""
    id: str = Field(default_factory=generate_edge_id)
    source: str
    target: str
    type: str = EDGE_TYPE
    marker_end: Optional[MarkerEnd] = None
    selected: bool = False
    hidden: bool = False  # Derived, never persisted


class MapMetadata(CamelModel):
    """Metadata about a document."""
    id: str = ""
    name: str = ""
    created_at: str = ""
    updated_at: str = ""


class DocumentSummary(MapMetadata):
    """An entry in the list of known documents."""


@dataclass(frozen=True)
class GraphSnapshot:
    """An independent copy of the node and edge lists, used only by history."""
    nodes: list[Node]
    edges: list[Edge]


# --- Persisted document shape ---

class ExportNode(CamelModel):
    """A node as it is persisted."""
    id: str
    type: Literal["concept"] = NODE_TYPE
    position: Position
    data: NodeData
    width: Optional[float] = None
    height: Optional[float] = None


class ExportEdge(CamelModel):
    """An edge as it is persisted."""
    id: str
    source: str
    target: str
    type: Optional[str] = None


class ExportMap(CamelModel):
    """
    The complete persisted document.
    This is what gets written to and read from storage.
    """
    id: str
    version: int = SCHEMA_VERSION
    metadata: MapMetadata
    nodes: list[ExportNode] = Field(default_factory=list)
    edges: list[ExportEdge] = Field(default_factory=list)

    def to_json_dict(self) -> dict:
        """Convert to a JSON-serializable dict, omitting unset optional keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_json_dict(cls, data: dict) -> "ExportMap":
        """Create an ExportMap from a JSON dict."""
        return cls.model_validate(data)

    def summary(self) -> DocumentSummary:
        """Document-list entry for this document."""
        return DocumentSummary(
            id=self.id,
            name=self.metadata.name,
            created_at=self.metadata.created_at,
            updated_at=self.metadata.updated_at,
        )


# --- API Request Models ---

class NewDocumentRequest(CamelModel):
    """Request to start a new document."""
    name: Optional[str] = None


class RenameDocumentRequest(CamelModel):
    """Request to rename the open document."""
    name: str


class AddNodeRequest(CamelModel):
    """Request to add a free-standing node."""
    x: float = 0
    y: float = 0


class UpdateLabelRequest(CamelModel):
    """Request to change a node's label."""
    label: str


class UpdateStyleRequest(CamelModel):
    """Request to update a node's style (partial update)."""
    bg_color: Optional[str] = None
    border_color: Optional[str] = None
    border_width: Optional[int] = None
    icon: Optional[str] = None


class ConnectRequest(CamelModel):
    """Request to connect two nodes."""
    source: str
    target: str


class SelectionRequest(CamelModel):
    """Selection reported by the canvas."""
    node_ids: list[str] = Field(default_factory=list)
    edge_ids: list[str] = Field(default_factory=list)


class ExportPathRequest(CamelModel):
    """Request to write the open document to a JSON file."""
    path: str
