"""Tests for MemoryBackend and FileBackend."""

from __future__ import annotations

import json

import pytest

from hookguard.storage import FileBackend, MemoryBackend


@pytest.fixture(params=["memory", "file"])
def any_backend(request, tmp_path):
    if request.param == "memory":
        return MemoryBackend()
    return FileBackend(tmp_path / "state" / "state.json")


class TestBackendContract:
    async def test_get_missing_key(self, any_backend):
        assert await any_backend.get("nonexistent") is None

    async def test_set_and_get(self, any_backend):
        await any_backend.set("key1", "value1")
        assert await any_backend.get("key1") == "value1"

    async def test_set_overwrites(self, any_backend):
        await any_backend.set("key1", "v1")
        await any_backend.set("key1", "v2")
        assert await any_backend.get("key1") == "v2"

    async def test_delete(self, any_backend):
        await any_backend.set("key1", "value1")
        await any_backend.delete("key1")
        assert await any_backend.get("key1") is None

    async def test_delete_nonexistent(self, any_backend):
        await any_backend.delete("nonexistent")

    async def test_increment(self, any_backend):
        assert await any_backend.increment("counter") == 1
        assert await any_backend.increment("counter", 2) == 3


class TestFileBackend:
    async def test_state_survives_new_instance(self, tmp_path):
        path = tmp_path / "state.json"
        await FileBackend(path).set("s:abc:last_event", "SessionStart")
        assert await FileBackend(path).get("s:abc:last_event") == "SessionStart"

    async def test_writes_json_document(self, tmp_path):
        path = tmp_path / "state.json"
        backend = FileBackend(path)
        await backend.set("a", "1")
        await backend.increment("n")
        assert json.loads(path.read_text()) == {"a": "1", "n": "1"}
        assert not (tmp_path / "state.json.tmp").exists()

    async def test_corrupt_file_starts_fresh(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        backend = FileBackend(path)
        assert await backend.get("a") is None
        await backend.set("a", "1")
        assert await backend.get("a") == "1"

    async def test_increment_reads_existing_counter(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"n": "4"}))
        assert await FileBackend(path).increment("n") == 5
