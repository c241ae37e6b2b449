"""
ConceptMap - in-memory document engine for a concept-map editor.

Provides the graph models, the document store with undo/redo, the
collapse projection, autosave and storage backends.
"""

from .models import (
    # Core models
    Position,
    NodeStyle,
    NodeData,
    Node,
    MarkerEnd,
    Edge,
    MapMetadata,
    DocumentSummary,
    GraphSnapshot,
    # Persisted shape
    ExportNode,
    ExportEdge,
    ExportMap,
    SCHEMA_VERSION,
)

from .clone import clone_graph, clone_node, clone_edge
from .collapse import project, get_descendants
from .history import HistoryStack
from .store import DocumentStore
from .autosave import AutosavePipeline, LoopScheduler
from .export import document_signature
from .storage import DocumentStorage, InMemoryStorage, JsonFileStorage, StorageError
from .session import EditorSession
from .validation import validate_document, ValidationIssue, IssueSeverity
from .analysis import graph_bounds

__all__ = [
    # Models
    "Position",
    "NodeStyle",
    "NodeData",
    "Node",
    "MarkerEnd",
    "Edge",
    "MapMetadata",
    "DocumentSummary",
    "GraphSnapshot",
    "ExportNode",
    "ExportEdge",
    "ExportMap",
    "SCHEMA_VERSION",
    # Engine
    "clone_graph",
    "clone_node",
    "clone_edge",
    "project",
    "get_descendants",
    "HistoryStack",
    "DocumentStore",
    "AutosavePipeline",
    "LoopScheduler",
    "document_signature",
    # Storage
    "DocumentStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "StorageError",
    "EditorSession",
    # Validation / analysis
    "validate_document",
    "ValidationIssue",
    "IssueSeverity",
    "graph_bounds",
]
