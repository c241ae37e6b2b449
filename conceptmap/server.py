"""
ConceptMap Backend - FastAPI Application

It provides:
- REST API for every editor command (documents, nodes, edges, selection,
  undo/redo, drag gestures, save/export)
- WebSocket endpoint for real-time change notifications
- CORS configuration for local frontend development

The application owns one EditorSession, created in the lifespan handler
and reachable as `app.state.session`.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from .analysis import graph_bounds, summarize_graph
from .changes import EdgeChange, NodeChange
from .config import Settings, configure_logging
from .models import (
    AddNodeRequest,
    ConnectRequest,
    ExportMap,
    ExportPathRequest,
    NewDocumentRequest,
    Position,
    RenameDocumentRequest,
    SelectionRequest,
    UpdateLabelRequest,
    UpdateStyleRequest,
)
from .session import EditorSession
from .storage import DocumentStorage, JsonFileStorage, LastDocumentPointer, StorageError
from .store import DocumentStore
from .validation import validate_document, validation_summary
from .websocket_manager import WebSocketManager


logger = logging.getLogger(__name__)


def _session(request: Request) -> EditorSession:
    return request.app.state.session


def _store(request: Request) -> DocumentStore:
    return request.app.state.session.store


def _node_response(store: DocumentStore, node) -> dict:
    if node is None:
        raise HTTPException(status_code=404, detail="Node not found")
    return {"success": True, "node": node.model_dump(mode="json", by_alias=True, exclude_none=True), "state": store.get_state()}


def create_app(settings: Optional[Settings] = None, storage: Optional[DocumentStorage] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Runtime settings (read from the environment if omitted)
        storage: Storage collaborator (JSON files under settings.data_dir if omitted)
    """
    settings = settings or Settings()
    ws_manager = WebSocketManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan handler for startup/shutdown tasks."""
        session = EditorSession(
            storage if storage is not None else JsonFileStorage(settings.documents_dir),
            pointer=LastDocumentPointer(settings.last_document_path),
            debounce_ms=settings.autosave_ms,
            min_throttle_ms=settings.throttle_ms,
            history_limit=settings.history_limit,
        )
        app.state.session = session

        # Bridge between sync store callbacks and async WebSocket broadcasts
        change_event = asyncio.Event()
        unsubscribe = session.store.on_change(change_event.set)

        async def change_broadcaster():
            while True:
                await change_event.wait()
                change_event.clear()
                await ws_manager.notify_document_updated(session.store.metadata.id or None)

        await session.bootstrap()
        broadcaster_task = asyncio.create_task(change_broadcaster())

        yield

        broadcaster_task.cancel()
        try:
            await broadcaster_task
        except asyncio.CancelledError:
            pass
        unsubscribe()
        await ws_manager.close_all()
        await session.close()

    app = FastAPI(
        title="ConceptMap API",
        description="Command surface for the concept-map document engine",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.ws_manager = ws_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Health Check ---

    @app.get("/api/health")
    async def health_check():
        return {"status": "ok", "connections": ws_manager.connection_count}

    # --- Document State ---

    @app.get("/api/state")
    async def get_state(request: Request):
        """Render-ready state of the open document (collapse applied)."""
        return _store(request).get_state()

    @app.patch("/api/document")
    async def rename_document(request: Request, body: RenameDocumentRequest):
        """Rename the open document. Blank names are ignored."""
        store = _store(request)
        renamed = store.rename_document(body.name)
        return {"success": renamed, "metadata": store.metadata.model_dump(by_alias=True)}

    @app.post("/api/document/save")
    async def save_document(request: Request):
        """Save the open document now."""
        try:
            saved = await _session(request).save()
        except StorageError as e:
            raise HTTPException(status_code=500, detail=f"Failed to save: {e}")
        if saved is None:
            return {"success": False, "message": "Nothing to save"}
        return {"success": True, "document": saved.to_json_dict()}

    @app.get("/api/document/export")
    async def export_document(request: Request):
        """Persisted representation of the open document."""
        return _store(request).export_document().to_json_dict()

    @app.post("/api/document/export")
    async def export_document_to_file(request: Request, body: ExportPathRequest):
        """Write the open document as a JSON file on the server."""
        try:
            path = await _session(request).export_json(body.path)
        except OSError as e:
            raise HTTPException(status_code=400, detail=f"Failed to export: {e}")
        return {"success": True, "path": str(path)}

    @app.post("/api/document/import")
    async def import_document(request: Request, body: dict):
        """Load an external document and store it."""
        try:
            doc = ExportMap.from_json_dict(body)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=f"Invalid document: {e}")
        try:
            await _session(request).import_document(doc)
        except StorageError as e:
            raise HTTPException(status_code=500, detail=f"Failed to save: {e}")
        return {"success": True, "state": _store(request).get_state()}

    @app.get("/api/document/validate")
    async def validate_current_document(request: Request):
        store = _store(request)
        issues = validate_document(store.nodes, store.edges)
        return {
            "issues": [i.to_dict() for i in issues],
            "summary": validation_summary(issues)
        }

    @app.get("/api/document/summary")
    async def summarize_current_document(request: Request):
        store = _store(request)
        visible = [n for n in store.view()[0] if not n.hidden]
        return {
            "summary": summarize_graph(store.nodes, store.edges),
            "bounds": graph_bounds(visible).to_dict(),
        }

    # --- Document List ---

    @app.get("/api/documents")
    async def list_documents(request: Request):
        await _session(request).refresh_documents()
        return [d.model_dump(by_alias=True) for d in _store(request).documents]

    @app.post("/api/documents")
    async def new_document(request: Request, body: NewDocumentRequest):
        """Start a new document (the current one is saved first)."""
        try:
            metadata = await _session(request).create_document(body.name)
        except StorageError as e:
            raise HTTPException(status_code=500, detail=f"Failed to save: {e}")
        return {"success": True, "metadata": metadata.model_dump(by_alias=True)}

    @app.post("/api/documents/{document_id}/open")
    async def open_document(request: Request, document_id: str):
        try:
            opened = await _session(request).open_document(document_id)
        except StorageError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if not opened:
            raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
        return {"success": True, "state": _store(request).get_state()}

    @app.delete("/api/documents/{document_id}")
    async def delete_document(request: Request, document_id: str):
        try:
            deleted = await _session(request).delete_document(document_id)
        except StorageError as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not deleted:
            raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
        return {"success": True}

    @app.post("/api/reset")
    async def reset_app(request: Request):
        """Delete every stored document and start over."""
        metadata = await _session(request).reset()
        return {"success": True, "metadata": metadata.model_dump(by_alias=True)}

    # --- Undo/Redo ---

    @app.post("/api/undo")
    async def undo(request: Request):
        store = _store(request)
        if store.undo():
            return {"success": True, "state": store.get_state()}
        return {"success": False, "message": "Nothing to undo"}

    @app.post("/api/redo")
    async def redo(request: Request):
        store = _store(request)
        if store.redo():
            return {"success": True, "state": store.get_state()}
        return {"success": False, "message": "Nothing to redo"}

    # --- Node Operations ---

    @app.post("/api/nodes")
    async def add_node(request: Request, body: AddNodeRequest):
        store = _store(request)
        return _node_response(store, store.add_node_at(Position(x=body.x, y=body.y)))

    @app.post("/api/nodes/{node_id}/child")
    async def add_child(request: Request, node_id: str):
        store = _store(request)
        return _node_response(store, store.add_child_node(node_id))

    @app.post("/api/nodes/{node_id}/sibling")
    async def add_sibling(request: Request, node_id: str):
        store = _store(request)
        return _node_response(store, store.add_sibling_node(node_id))

    @app.patch("/api/nodes/{node_id}/label")
    async def update_label(request: Request, node_id: str, body: UpdateLabelRequest):
        store = _store(request)
        return _node_response(store, store.update_node_label(node_id, body.label))

    @app.patch("/api/nodes/{node_id}/style")
    async def update_style(request: Request, node_id: str, body: UpdateStyleRequest):
        store = _store(request)
        return _node_response(store, store.update_node_style(node_id, **body.model_dump(exclude_none=True)))

    @app.post("/api/nodes/{node_id}/collapse")
    async def toggle_collapse(request: Request, node_id: str):
        store = _store(request)
        return _node_response(store, store.toggle_collapse(node_id))

    # --- Edge Operations ---

    @app.post("/api/edges")
    async def connect(request: Request, body: ConnectRequest):
        store = _store(request)
        edge = store.connect(body.source, body.target)
        if edge is None:
            return {"success": False, "message": "Nodes not found or already connected"}
        return {"success": True, "edge": edge.model_dump(mode="json", by_alias=True, exclude_none=True)}

    # --- Canvas Change Batches ---

    @app.post("/api/changes/nodes")
    async def node_changes(request: Request, changes: list[NodeChange]):
        store = _store(request)
        store.apply_node_changes(changes)
        return {"success": True, "can_undo": store.can_undo}

    @app.post("/api/changes/edges")
    async def edge_changes(request: Request, changes: list[EdgeChange]):
        store = _store(request)
        store.apply_edge_changes(changes)
        return {"success": True, "can_undo": store.can_undo}

    @app.post("/api/selection")
    async def set_selection(request: Request, body: SelectionRequest):
        store = _store(request)
        store.select_from_selection(body.node_ids, body.edge_ids)
        return {"selected_node_id": store.selected_node_id, "selected_edge_id": store.selected_edge_id}

    @app.delete("/api/selection")
    async def remove_selection(request: Request):
        store = _store(request)
        removed = store.remove_selection()
        return {"success": removed, "state": store.get_state()}

    # --- Drag Gestures ---

    @app.post("/api/drag/start")
    async def start_drag(request: Request):
        _store(request).start_drag()
        return {"dragging": True}

    @app.post("/api/drag/end")
    async def end_drag(request: Request):
        store = _store(request)
        store.end_drag()
        return {"dragging": False, "can_undo": store.can_undo}

    # --- WebSocket ---

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Clients connect here to receive document_updated events."""
        await ws_manager.connect(websocket)
        try:
            while True:
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_text('{"type": "pong"}')
        except WebSocketDisconnect:
            await ws_manager.disconnect(websocket)

    return app


def main():
    """Run the API with uvicorn."""
    import uvicorn

    settings = Settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
