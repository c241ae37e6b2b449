"""
Editor session - wires the document store to storage and autosave.

The session is what an application constructs and owns: one store, the
storage collaborator it saves through, the autosave pipeline watching it
and the pointer to the last opened document.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from .autosave import AutosavePipeline, DEBOUNCE_MS, MIN_THROTTLE_MS, Scheduler
from .export import safe_filename
from .history import HISTORY_LIMIT
from .models import ExportMap, MapMetadata, utc_now_iso
from .storage import DocumentStorage, LastDocumentPointer, reset_app_data
from .store import DocumentStore


logger = logging.getLogger(__name__)


class EditorSession:
    """
    One open editor: store + storage + autosave.

    Typical lifecycle:
        session = EditorSession(JsonFileStorage(path))
        await session.bootstrap()
        ... edit through session.store ...
        await session.close()
    """

    def __init__(
        self,
        storage: DocumentStorage,
        pointer: Optional[LastDocumentPointer] = None,
        scheduler: Optional[Scheduler] = None,
        debounce_ms: int = DEBOUNCE_MS,
        min_throttle_ms: int = MIN_THROTTLE_MS,
        history_limit: int = HISTORY_LIMIT,
        autosave: bool = True,
    ):
        self._storage = storage
        self._pointer = pointer
        self._store = DocumentStore(storage, history_limit=history_limit)
        self._autosave: Optional[AutosavePipeline] = None
        if autosave:
            self._autosave = AutosavePipeline(
                self._store,
                scheduler=scheduler,
                debounce_ms=debounce_ms,
                min_throttle_ms=min_throttle_ms,
            )
        self._remembered_id: Optional[str] = None
        self._unsubscribe = self._store.on_change(self._remember_document)

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def storage(self) -> DocumentStorage:
        return self._storage

    @property
    def autosave(self) -> Optional[AutosavePipeline]:
        return self._autosave

    def _remember_document(self):
        if self._pointer is None or not self._store.is_ready:
            return
        doc_id = self._store.metadata.id
        if doc_id and doc_id != self._remembered_id:
            self._pointer.set(doc_id)
            self._remembered_id = doc_id

    async def _start_new(self, name: Optional[str] = None) -> MapMetadata:
        """Create a document and write it to storage right away."""
        metadata = self._store.new_document(name)
        await self.save()
        return metadata

    async def _flush(self):
        if self._autosave is not None:
            await self._autosave.flush()

    async def save(self) -> Optional[ExportMap]:
        """Save the open document now. Returns None if nothing is loaded."""
        if self._autosave is not None:
            return await self._autosave.save_now()
        return await self._store.save_current_document()

    async def refresh_documents(self) -> list[ExportMap]:
        """Reload the document list from storage."""
        documents = await self._storage.list()
        self._store.set_documents([doc.summary() for doc in documents])
        return documents

    async def bootstrap(self) -> MapMetadata:
        """
        Open the document the user was last working on.

        Falls back to the most recently updated document, and to a brand
        new document when storage is empty.
        """
        documents = await self._storage.list()
        if not documents:
            return await self._start_new()

        self._store.set_documents([doc.summary() for doc in documents])

        last_id = self._pointer.get() if self._pointer else None
        candidate = next((d for d in documents if d.id == last_id), documents[0])

        loaded = await self._storage.get(candidate.id)
        if loaded is None:
            logger.warning("Document %s vanished during startup", candidate.id)
            return await self._start_new()
        return self._store.load_document(loaded)

    async def open_document(self, document_id: str) -> bool:
        """Switch to a stored document. Returns False if it does not exist."""
        if not document_id:
            return False

        # Flushed first so reopening the open document reads its latest edits
        await self._flush()
        loaded = await self._storage.get(document_id)
        if loaded is None:
            return False

        self._store.load_document(loaded)
        return True

    async def import_document(self, doc: ExportMap) -> MapMetadata:
        """Open an external document and write it to storage."""
        await self._flush()
        metadata = self._store.load_document(doc)
        await self.save()
        await self.refresh_documents()
        return metadata

    async def create_document(self, name: Optional[str] = None) -> MapMetadata:
        """Start a new document after saving the current one."""
        await self._flush()
        return await self._start_new(name)

    async def delete_document(self, document_id: str) -> bool:
        """
        Remove a document from storage.

        Deleting the open document opens the next most recent one, or a new
        document if none is left.
        """
        existing = await self._storage.get(document_id)
        if existing is None:
            return False

        is_open = self._store.metadata.id == document_id
        if is_open and self._autosave is not None:
            self._autosave.cancel()
            await self._autosave.wait_idle()

        await self._storage.delete(document_id)
        documents = await self.refresh_documents()

        if is_open:
            if documents:
                loaded = await self._storage.get(documents[0].id)
                if loaded is not None:
                    self._store.load_document(loaded)
                    return True
            await self._start_new()
        return True

    async def export_json(self, path: str | Path) -> Path:
        """
        Write the current document as JSON.

        A directory target gets a file named after the document.
        """
        target = Path(path)
        if target.is_dir():
            target = target / f"{safe_filename(self._store.metadata.name)}.json"

        doc = self._store.export_document(updated_at=utc_now_iso())
        text = json.dumps(doc.to_json_dict(), indent=2)
        await asyncio.to_thread(target.write_text, text, encoding='utf-8')
        return target

    async def reset(self) -> MapMetadata:
        """Delete all stored documents and start over with a new one."""
        if self._autosave is not None:
            self._autosave.cancel()
            await self._autosave.wait_idle()
        await reset_app_data(self._storage, self._pointer)
        self._remembered_id = None
        self._store.set_documents([])
        return await self._start_new()

    async def close(self):
        """Save pending edits and stop autosave."""
        await self._flush()
        if self._autosave is not None:
            self._autosave.close()
        self._unsubscribe()
