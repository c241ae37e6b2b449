"""
Document Store - Core logic for concept-map state and history.

This module implements:
- Single document state management (one document open at a time)
- All graph-editing commands (add/connect/update/remove nodes and edges)
- Linear undo/redo history using snapshots, with drag coalescing
- Saving the current document through a storage collaborator
- Change callbacks for autosave and real-time sync
"""

import asyncio
import logging
from typing import Callable, Optional, TYPE_CHECKING

from .changes import apply_edge_changes, apply_node_changes, is_selection_only
from .clone import clone_graph
from .collapse import project
from .export import build_export_map, document_signature, hydrate_from_export_map
from .history import HISTORY_LIMIT, HistoryStack
from .models import (
    ARROW_CLOSED,
    DEFAULT_NODE_HEIGHT,
    DEFAULT_NODE_WIDTH,
    DocumentSummary,
    Edge,
    EDGE_TYPE,
    ExportMap,
    GraphSnapshot,
    HORIZONTAL_GAP,
    MapMetadata,
    MarkerEnd,
    Node,
    NodeData,
    NodeStyle,
    Position,
    VERTICAL_GAP,
    generate_document_id,
    utc_now_iso,
)
from .validation import IssueSeverity, validate_document

if TYPE_CHECKING:
    from .storage import DocumentStorage


logger = logging.getLogger(__name__)


def create_node(position: Position, parent_id: Optional[str] = None, selected: bool = False) -> Node:
    """Create a fresh concept node with default label and style."""
    return Node(
        position=Position(x=position.x, y=position.y),
        data=NodeData(parent_id=parent_id),
        selected=selected,
    )


def create_edge(source: str, target: str) -> Edge:
    """Create a directed edge with a closed arrow marker."""
    return Edge(
        source=source,
        target=target,
        type=EDGE_TYPE,
        marker_end=MarkerEnd(type=ARROW_CLOSED),
    )


class DocumentStore:
    """
    Owns the state of the open document: nodes, edges, metadata,
    selection, the document list and the undo/redo history.

    The history system works via snapshots:
    - Each recorded mutation first pushes a copy of the pre-mutation graph
    - Undo restores the previous snapshot
    - Redo re-applies a snapshot from the future stack
    - A drag gesture records exactly one snapshot, taken when it starts
    """

    def __init__(self, storage: Optional["DocumentStorage"] = None, history_limit: int = HISTORY_LIMIT):
        self._storage = storage
        self._nodes: list[Node] = []
        self._edges: list[Edge] = []
        self._metadata = MapMetadata(name="ConceptMap")
        self._documents: list[DocumentSummary] = []
        self._selected_node_id: Optional[str] = None
        self._selected_edge_id: Optional[str] = None
        self._history = HistoryStack(history_limit)
        self._dragging = False
        self._drag_snapshot: Optional[GraphSnapshot] = None
        self._ready = False
        self._generation = 0
        self._save_lock = asyncio.Lock()
        self._on_change_callbacks: list[Callable[[], None]] = []

    # --- Properties ---

    @property
    def storage(self) -> Optional["DocumentStorage"]:
        return self._storage

    @property
    def nodes(self) -> list[Node]:
        """Live node list (do not modify; use the store commands)."""
        return self._nodes

    @property
    def edges(self) -> list[Edge]:
        """Live edge list (do not modify; use the store commands)."""
        return self._edges

    @property
    def metadata(self) -> MapMetadata:
        return self._metadata

    @property
    def documents(self) -> list[DocumentSummary]:
        return self._documents

    @property
    def history(self) -> HistoryStack:
        return self._history

    @property
    def selected_node_id(self) -> Optional[str]:
        return self._selected_node_id

    @property
    def selected_edge_id(self) -> Optional[str]:
        return self._selected_edge_id

    @property
    def dragging(self) -> bool:
        return self._dragging

    @property
    def is_ready(self) -> bool:
        """True once a document has been created or loaded."""
        return self._ready

    @property
    def generation(self) -> int:
        """Bumped each time a document is created or loaded."""
        return self._generation

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self._nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        for edge in self._edges:
            if edge.id == edge_id:
                return edge
        return None

    # --- Change Callbacks ---

    def on_change(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback for state changes. Returns an unsubscribe function."""
        self._on_change_callbacks.append(callback)

        def unsubscribe():
            if callback in self._on_change_callbacks:
                self._on_change_callbacks.remove(callback)

        return unsubscribe

    def _notify_change(self):
        """Notify all registered callbacks of a change."""
        for callback in list(self._on_change_callbacks):
            callback()

    # --- History Management ---

    def _snapshot(self) -> GraphSnapshot:
        return clone_graph(self._nodes, self._edges)

    def _record(self):
        """Save the current graph to history before a mutation."""
        self._history.record(self._snapshot())

    def _clear_selection(self):
        self._selected_node_id = None
        self._selected_edge_id = None

    def _reset_session(self):
        self._history.clear()
        self._clear_selection()
        self._dragging = False
        self._drag_snapshot = None

    # --- Document Operations ---

    def set_documents(self, documents: list[DocumentSummary]):
        """Replace the list of known documents."""
        self._documents = list(documents)
        self._notify_change()

    def new_document(self, name: Optional[str] = None) -> MapMetadata:
        """
        Start a new document with a single selected root node at the origin.

        Blank or missing names become "Map <YYYY-MM-DD>".
        """
        now = utc_now_iso()
        display_name = (name or "").strip() or f"Map {now[:10]}"
        root = create_node(Position(x=0, y=0), selected=True)

        self._nodes = [root]
        self._edges = []
        self._metadata = MapMetadata(
            id=generate_document_id(),
            name=display_name,
            created_at=now,
            updated_at=now,
        )
        self._documents = [
            DocumentSummary(**self._metadata.model_dump()),
            *self._documents,
        ]
        self._reset_session()
        self._selected_node_id = root.id
        self._ready = True
        self._generation += 1

        logger.info("Created document %s (%s)", self._metadata.id, display_name)
        self._notify_change()
        return self._metadata

    def load_document(self, doc: ExportMap) -> MapMetadata:
        """Replace the whole graph with a persisted document. Never recorded."""
        nodes, edges, metadata = hydrate_from_export_map(doc)

        for issue in validate_document(nodes, edges):
            level = logging.WARNING if issue.severity == IssueSeverity.ERROR else logging.DEBUG
            logger.log(level, "Document %s: %s", metadata.id, issue.message)

        self._nodes = nodes
        self._edges = edges
        self._metadata = metadata
        self._reset_session()
        self._ready = True
        self._generation += 1

        logger.info("Loaded document %s (%d nodes, %d edges)", metadata.id, len(nodes), len(edges))
        self._notify_change()
        return self._metadata

    def rename_document(self, name: str) -> bool:
        """Rename the open document. Blank names are ignored."""
        trimmed = name.strip()
        if not trimmed:
            return False

        doc_id = self._metadata.id
        self._metadata = self._metadata.model_copy(update={"name": trimmed})
        self._documents = [
            doc.model_copy(update={"name": trimmed}) if doc.id == doc_id else doc
            for doc in self._documents
        ]
        self._notify_change()
        return True

    # --- Change Batches ---

    def apply_node_changes(self, changes: list):
        """Merge a batch of node changes from the canvas."""
        should_record = not self._dragging and not is_selection_only(changes)
        if should_record:
            self._record()
        self._nodes = apply_node_changes(changes, self._nodes)
        self._notify_change()

    def apply_edge_changes(self, changes: list):
        """Merge a batch of edge changes from the canvas."""
        should_record = not self._dragging and not is_selection_only(changes)
        if should_record:
            self._record()
        self._edges = apply_edge_changes(changes, self._edges)
        self._notify_change()

    def select_from_selection(self, node_ids: list[str], edge_ids: list[str]):
        """Track the primary selected node and edge reported by the canvas."""
        self._selected_node_id = node_ids[0] if node_ids else None
        self._selected_edge_id = edge_ids[0] if edge_ids else None
        self._notify_change()

    # --- Node Operations ---

    def connect(self, source: str, target: str) -> Optional[Edge]:
        """
        Add a directed edge from source to target.

        The first connection into a node without a parent makes `source`
        its logical parent; later connections never override it.
        Missing endpoints and duplicate connections are ignored.
        """
        if self.get_node(source) is None or self.get_node(target) is None:
            return None
        if any(e.source == source and e.target == target for e in self._edges):
            return None

        self._record()

        edge = create_edge(source, target)
        self._edges = [*self._edges, edge]
        self._nodes = [
            node.model_copy(update={"data": node.data.model_copy(update={"parent_id": source})})
            if node.id == target and not node.data.parent_id
            else node
            for node in self._nodes
        ]
        self._notify_change()
        return edge

    def _insert_selected(self, node: Node, edge: Optional[Edge] = None):
        """Append a new node (and its edge) and make it the only selection."""
        self._nodes = [
            n.model_copy(update={"selected": False}) if n.selected else n
            for n in self._nodes
        ]
        self._nodes.append(node)
        if edge is not None:
            self._edges = [*self._edges, edge]
        self._selected_node_id = node.id
        self._selected_edge_id = None

    def _lowest_child_y(self, parent_id: str) -> Optional[float]:
        """Largest y among the targets of parent_id's outgoing edges."""
        child_ids = {e.target for e in self._edges if e.source == parent_id}
        ys = [n.position.y for n in self._nodes if n.id in child_ids]
        return max(ys) if ys else None

    def add_node_at(self, position: Position) -> Node:
        """Add an unparented node at the given canvas position."""
        self._record()
        node = create_node(position, selected=True)
        self._insert_selected(node)
        self._notify_change()
        return node

    def add_child_node(self, parent_id: str) -> Optional[Node]:
        """
        Add a child to the right of parent_id, stacked below existing children.
        """
        parent = self.get_node(parent_id)
        if parent is None:
            return None

        self._record()

        lowest = self._lowest_child_y(parent_id)
        position = Position(
            x=parent.position.x + DEFAULT_NODE_WIDTH + HORIZONTAL_GAP,
            y=parent.position.y if lowest is None else lowest + DEFAULT_NODE_HEIGHT + VERTICAL_GAP,
        )
        node = create_node(position, parent_id=parent_id, selected=True)
        self._insert_selected(node, create_edge(parent_id, node.id))
        self._notify_change()
        return node

    def add_sibling_node(self, node_id: str) -> Optional[Node]:
        """
        Add a node next to node_id.

        A root gets an unparented sibling directly below it; otherwise the new
        node joins the same parent, below that parent's lowest child.
        """
        reference = self.get_node(node_id)
        if reference is None:
            return None

        parent_id = reference.data.parent_id
        self._record()

        if not parent_id:
            position = Position(
                x=reference.position.x,
                y=reference.position.y + DEFAULT_NODE_HEIGHT + VERTICAL_GAP,
            )
            node = create_node(position, selected=True)
            self._insert_selected(node)
        else:
            lowest = self._lowest_child_y(parent_id)
            base_y = reference.position.y if lowest is None else lowest
            position = Position(
                x=reference.position.x,
                y=base_y + DEFAULT_NODE_HEIGHT + VERTICAL_GAP,
            )
            node = create_node(position, parent_id=parent_id, selected=True)
            self._insert_selected(node, create_edge(parent_id, node.id))

        self._notify_change()
        return node

    def _replace_data(self, node_id: str, **updates) -> Optional[Node]:
        node = self.get_node(node_id)
        if node is None:
            return None

        self._record()
        updated = node.model_copy(update={"data": node.data.model_copy(update=updates)})
        self._nodes = [updated if n.id == node_id else n for n in self._nodes]
        self._notify_change()
        return updated

    def update_node_label(self, node_id: str, label: str) -> Optional[Node]:
        """Replace a node's label."""
        return self._replace_data(node_id, label=label)

    def update_node_style(self, node_id: str, **style) -> Optional[Node]:
        """
        Merge partial style fields into a node's style.

        Accepts snake_case or camelCase keys; None values and unknown keys
        are ignored. Nothing is recorded when no usable field remains.
        """
        node = self.get_node(node_id)
        if node is None:
            return None

        fields = NodeStyle.model_fields
        aliases = {info.alias: name for name, info in fields.items() if info.alias}
        updates = {}
        for key, value in style.items():
            name = aliases.get(key, key)
            if value is not None and name in fields:
                updates[name] = value
        if not updates:
            return node

        merged = node.data.style.model_copy(update=updates)
        return self._replace_data(node_id, style=merged)

    def toggle_collapse(self, node_id: str) -> Optional[Node]:
        """Flip a node's collapsed marker."""
        node = self.get_node(node_id)
        if node is None:
            return None
        return self._replace_data(node_id, collapsed=not node.data.collapsed)

    def remove_selection(self) -> bool:
        """
        Delete every selected node and edge, plus edges left without an endpoint
        by the removed nodes. Returns False (and records nothing) if nothing
        is selected.
        """
        removed_nodes = {n.id for n in self._nodes if n.selected}
        removed_edges = {e.id for e in self._edges if e.selected}
        if not removed_nodes and not removed_edges:
            return False

        self._record()

        self._nodes = [n for n in self._nodes if n.id not in removed_nodes]
        self._edges = [
            e for e in self._edges
            if e.id not in removed_edges
            and e.source not in removed_nodes
            and e.target not in removed_nodes
        ]
        self._clear_selection()
        self._notify_change()
        return True

    # --- Undo/Redo ---

    def _restore(self, snapshot: GraphSnapshot):
        self._nodes = list(snapshot.nodes)
        self._edges = list(snapshot.edges)
        self._clear_selection()

    def undo(self) -> bool:
        """Undo the last recorded mutation."""
        previous = self._history.undo(self._snapshot())
        if previous is None:
            return False
        self._restore(previous)
        self._notify_change()
        return True

    def redo(self) -> bool:
        """Redo the last undone mutation."""
        following = self._history.redo(self._snapshot())
        if following is None:
            return False
        self._restore(following)
        self._notify_change()
        return True

    # --- Drag Gestures ---

    def start_drag(self):
        """Begin a drag; moves until end_drag collapse into one undo step."""
        if self._dragging:
            return
        self._dragging = True
        self._drag_snapshot = self._snapshot()
        self._notify_change()

    def end_drag(self):
        """Finish a drag and commit the pre-drag snapshot to history."""
        snapshot = self._drag_snapshot
        self._dragging = False
        self._drag_snapshot = None
        if snapshot is not None:
            self._history.record(snapshot)
        self._notify_change()

    # --- Views ---

    def view(self) -> tuple[list[Node], list[Edge]]:
        """Render-ready projection of the live graph (collapse applied)."""
        return project(self._nodes, self._edges)

    def signature(self) -> str:
        """Content signature of the open document (timestamps excluded)."""
        return document_signature(self._metadata.id, self._metadata.name, self._nodes, self._edges)

    def export_document(self, updated_at: Optional[str] = None) -> ExportMap:
        """Persisted representation of the current state."""
        return build_export_map(self._metadata, self._nodes, self._edges, updated_at=updated_at)

    def get_state(self) -> dict:
        """Get the full current state for API responses."""
        nodes, edges = self.view()
        return {
            "metadata": self._metadata.model_dump(by_alias=True),
            "nodes": [n.model_dump(mode="json", by_alias=True, exclude_none=True) for n in nodes],
            "edges": [e.model_dump(mode="json", by_alias=True, exclude_none=True) for e in edges],
            "documents": [d.model_dump(by_alias=True) for d in self._documents],
            "selected_node_id": self._selected_node_id,
            "selected_edge_id": self._selected_edge_id,
            "can_undo": self.can_undo,
            "can_redo": self.can_redo,
            "is_ready": self._ready,
            "dragging": self._dragging,
        }

    # --- Persistence ---

    async def save_current_document(self) -> Optional[ExportMap]:
        """
        Save the open document through the storage collaborator.

        Returns the saved document, or None when no document is loaded.
        Storage errors propagate to the caller. Saves run one at a time;
        a save that has to wait exports the state as of when its turn comes.
        """
        if not self._metadata.id:
            return None
        if self._storage is None:
            raise RuntimeError("No storage configured")

        async with self._save_lock:
            if not self._metadata.id:
                return None
            now = utc_now_iso()
            doc = self.export_document(updated_at=now)
            await self._storage.put(doc)

            # The graph may have changed while the write was pending; only the
            # timestamps of the document that was written are updated.
            if self._metadata.id == doc.id:
                self._metadata = self._metadata.model_copy(update={"updated_at": now})
            self._documents = [
                d.model_copy(update={"name": doc.metadata.name, "updated_at": now}) if d.id == doc.id else d
                for d in self._documents
            ]
        logger.debug("Saved document %s", doc.id)
        self._notify_change()
        return doc
