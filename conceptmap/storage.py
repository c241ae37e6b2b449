"""
Document storage - durable key/value persistence for concept maps.

A storage collaborator exposes four async operations keyed by document id:
get, put, list (most recently updated first) and delete. Two backends are
provided: a directory of JSON files and an in-memory dict.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from .models import ExportMap


logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a document cannot be written or removed."""


class DocumentStorage(Protocol):
    async def get(self, document_id: str) -> Optional[ExportMap]: ...

    async def put(self, document: ExportMap) -> None: ...

    async def list(self) -> list[ExportMap]: ...

    async def delete(self, document_id: str) -> None: ...


def _sort_recent_first(documents: list[ExportMap]) -> list[ExportMap]:
    return sorted(documents, key=lambda d: d.metadata.updated_at, reverse=True)


class InMemoryStorage:
    """Dict-backed storage. Documents are copied on the way in and out."""

    def __init__(self):
        self._documents: dict[str, ExportMap] = {}

    async def get(self, document_id: str) -> Optional[ExportMap]:
        doc = self._documents.get(document_id)
        return doc.model_copy(deep=True) if doc else None

    async def put(self, document: ExportMap) -> None:
        self._documents[document.id] = document.model_copy(deep=True)

    async def list(self) -> list[ExportMap]:
        return _sort_recent_first([d.model_copy(deep=True) for d in self._documents.values()])

    async def delete(self, document_id: str) -> None:
        self._documents.pop(document_id, None)

    def __len__(self) -> int:
        return len(self._documents)


class JsonFileStorage:
    """
    One `<id>.json` file per document inside a directory.

    Writes go to a temporary file that replaces the target, so a failed
    write never leaves a truncated document behind.
    """

    def __init__(self, directory: str | Path):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path_for(self, document_id: str) -> Path:
        if not document_id or "/" in document_id or "\\" in document_id or document_id.startswith("."):
            raise StorageError(f"Invalid document id: {document_id!r}")
        return self._directory / f"{document_id}.json"

    def _read(self, path: Path) -> Optional[ExportMap]:
        if not path.exists():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return ExportMap.from_json_dict(data)

    def _write(self, document: ExportMap):
        path = self._path_for(document.id)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(document.to_json_dict(), f, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    def _list(self) -> list[ExportMap]:
        if not self._directory.exists():
            return []

        documents = []
        for path in self._directory.glob("*.json"):
            if path.name.startswith("."):
                continue
            try:
                doc = self._read(path)
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.warning("Skipping unreadable document %s: %s", path.name, e)
                continue
            if doc is not None:
                documents.append(doc)
        return _sort_recent_first(documents)

    def _delete(self, document_id: str):
        path = self._path_for(document_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e

    async def get(self, document_id: str) -> Optional[ExportMap]:
        return await asyncio.to_thread(self._read, self._path_for(document_id))

    async def put(self, document: ExportMap) -> None:
        await asyncio.to_thread(self._write, document)

    async def list(self) -> list[ExportMap]:
        return await asyncio.to_thread(self._list)

    async def delete(self, document_id: str) -> None:
        await asyncio.to_thread(self._delete, document_id)


class LastDocumentPointer:
    """Remembers the id of the last opened document in a small text file."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    def get(self) -> Optional[str]:
        try:
            value = self._path.read_text(encoding='utf-8').strip()
        except FileNotFoundError:
            return None
        return value or None

    def set(self, document_id: str):
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(document_id, encoding='utf-8')

    def clear(self):
        self._path.unlink(missing_ok=True)


async def reset_app_data(storage: DocumentStorage, pointer: Optional[LastDocumentPointer] = None) -> int:
    """Delete every stored document and forget the last opened one."""
    if pointer is not None:
        pointer.clear()

    documents = await storage.list()
    for doc in documents:
        await storage.delete(doc.id)

    logger.info("Reset app data (%d documents removed)", len(documents))
    return len(documents)
