"""Tests for the storage backends, the last-document pointer and reset."""

from __future__ import annotations

import json

import pytest

from conceptmap.models import ExportMap, MapMetadata
from conceptmap.storage import (
    InMemoryStorage,
    JsonFileStorage,
    LastDocumentPointer,
    StorageError,
    reset_app_data,
)


def _doc(doc_id: str, updated_at: str = "2024-01-01T00:00:00.000Z", name: str = "Doc") -> ExportMap:
    return ExportMap.from_json_dict({
        "id": doc_id,
        "version": 1,
        "metadata": {"id": doc_id, "name": name, "createdAt": "2024-01-01T00:00:00.000Z", "updatedAt": updated_at},
        "nodes": [{
            "id": "n1",
            "type": "concept",
            "position": {"x": 10, "y": 20},
            "data": {"label": "Root", "style": {"bgColor": "#fff", "borderColor": "#000", "borderWidth": 2}},
        }],
        "edges": [],
    })


@pytest.fixture(params=["memory", "files"])
def backend(request, tmp_path):
    if request.param == "memory":
        return InMemoryStorage()
    return JsonFileStorage(tmp_path / "maps")


class TestBackends:
    async def test_get_missing_returns_none(self, backend):
        assert await backend.get("map-missing") is None

    async def test_put_then_get(self, backend):
        await backend.put(_doc("map-a", name="Alpha"))

        loaded = await backend.get("map-a")

        assert loaded.metadata.name == "Alpha"
        assert loaded.nodes[0].data.label == "Root"

    async def test_put_overwrites(self, backend):
        await backend.put(_doc("map-a", name="Alpha"))
        await backend.put(_doc("map-a", name="Beta"))

        assert (await backend.get("map-a")).metadata.name == "Beta"
        assert len(await backend.list()) == 1

    async def test_list_most_recent_first(self, backend):
        await backend.put(_doc("map-old", "2024-01-01T00:00:00.000Z"))
        await backend.put(_doc("map-new", "2024-03-01T00:00:00.000Z"))
        await backend.put(_doc("map-mid", "2024-02-01T00:00:00.000Z"))

        assert [d.id for d in await backend.list()] == ["map-new", "map-mid", "map-old"]

    async def test_delete(self, backend):
        await backend.put(_doc("map-a"))
        await backend.delete("map-a")
        await backend.delete("map-a")

        assert await backend.get("map-a") is None
        assert await backend.list() == []

    async def test_returned_documents_are_copies(self, backend):
        doc = _doc("map-a")
        await backend.put(doc)
        doc.metadata.name = "changed after put"

        loaded = await backend.get("map-a")
        loaded.metadata.name = "changed after get"

        assert (await backend.get("map-a")).metadata.name == "Doc"


class TestJsonFileStorage:
    async def test_writes_camel_case_json(self, tmp_path):
        storage = JsonFileStorage(tmp_path)
        await storage.put(_doc("map-a"))

        data = json.loads((tmp_path / "map-a.json").read_text(encoding="utf-8"))

        assert data["metadata"]["updatedAt"] == "2024-01-01T00:00:00.000Z"
        assert data["nodes"][0]["data"]["style"]["bgColor"] == "#fff"
        assert list(tmp_path.glob(".tmp-*")) == []

    async def test_list_without_directory(self, tmp_path):
        assert await JsonFileStorage(tmp_path / "nope").list() == []

    async def test_list_skips_unreadable_files(self, tmp_path, caplog):
        storage = JsonFileStorage(tmp_path)
        await storage.put(_doc("map-good"))
        (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
        (tmp_path / "wrong.json").write_text(json.dumps({"hello": "world"}), encoding="utf-8")

        docs = await storage.list()

        assert [d.id for d in docs] == ["map-good"]
        assert "Skipping unreadable document" in caplog.text

    @pytest.mark.parametrize("bad_id", ["", "../escape", "a/b", ".hidden"])
    async def test_rejects_unsafe_ids(self, tmp_path, bad_id):
        storage = JsonFileStorage(tmp_path)
        with pytest.raises(StorageError):
            await storage.get(bad_id)

    async def test_write_failure_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("", encoding="utf-8")
        storage = JsonFileStorage(blocker / "maps")

        with pytest.raises(StorageError):
            await storage.put(_doc("map-a"))


class TestLastDocumentPointer:
    def test_roundtrip_and_clear(self, tmp_path):
        pointer = LastDocumentPointer(tmp_path / "state" / "last-doc")
        assert pointer.get() is None

        pointer.set("map-a")
        assert pointer.get() == "map-a"

        pointer.clear()
        pointer.clear()
        assert pointer.get() is None


async def test_reset_app_data(tmp_path):
    storage = InMemoryStorage()
    pointer = LastDocumentPointer(tmp_path / "last-doc")
    pointer.set("map-a")
    await storage.put(_doc("map-a"))
    await storage.put(_doc("map-b"))

    removed = await reset_app_data(storage, pointer)

    assert removed == 2
    assert len(storage) == 0
    assert pointer.get() is None
