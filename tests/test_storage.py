from __future__ import annotations

import json
from pathlib import Path

import pytest

from pybustrack._storage import JsonFileKeyValueStore, MemoryKeyValueStore
from pybustrack.exceptions import StorageError


@pytest.mark.asyncio
async def test_memory_store_round_trip() -> None:
    store = MemoryKeyValueStore({"busId": '"bus_001"'})

    assert await store.get("busId") == '"bus_001"'
    assert await store.get("routeId") is None
    await store.set("routeId", '"route_002"')
    assert store.snapshot() == {"busId": '"bus_001"', "routeId": '"route_002"'}


@pytest.mark.asyncio
async def test_json_file_store_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "state" / "bustrack.json"
    store = JsonFileKeyValueStore(path)

    assert await store.get("busId") is None
    await store.set("busId", '"bus_001"')
    await store.set("activityLog", "[]")

    reopened = JsonFileKeyValueStore(path)
    assert await reopened.get("busId") == '"bus_001"'
    assert json.loads(path.read_text(encoding="utf-8")) == {"activityLog": "[]", "busId": '"bus_001"'}
    assert not path.with_name("bustrack.json.tmp").exists()


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [b"{not json", b"[1, 2]", b"\xff\xfe garbage"])
async def test_json_file_store_starts_empty_on_corrupt_file(tmp_path: Path, content: bytes) -> None:
    path = tmp_path / "bustrack.json"
    path.write_bytes(content)
    store = JsonFileKeyValueStore(path)

    assert await store.get("busId") is None
    await store.set("busId", '"bus_002"')
    assert json.loads(path.read_text(encoding="utf-8")) == {"busId": '"bus_002"'}


@pytest.mark.asyncio
async def test_json_file_store_ignores_non_string_values(tmp_path: Path) -> None:
    path = tmp_path / "bustrack.json"
    path.write_text(json.dumps({"busId": '"bus_001"', "count": 3}), encoding="utf-8")

    store = JsonFileKeyValueStore(path)

    assert await store.get("busId") == '"bus_001"'
    assert await store.get("count") is None


@pytest.mark.asyncio
async def test_json_file_store_write_failure_raises_storage_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    store = JsonFileKeyValueStore(blocker / "bustrack.json")

    with pytest.raises(StorageError):
        await store.set("busId", '"bus_001"')
