from __future__ import annotations

import json
from pathlib import Path

from tastemixer.auth.store_factory import build_state_store
from tastemixer.auth.store_fs import FsStateStore
from tastemixer.auth.store_memory import MemoryStateStore
from tastemixer.config import StorageConfig


def test_memory_store_behaves_like_local_storage() -> None:
    store = MemoryStateStore()

    assert store.get("missing") is None
    store.set("spotify_token", "abc")
    store.set("favorites", "[]")
    store.delete("favorites")
    store.delete("never-set")

    assert store.get("spotify_token") == "abc"
    assert list(store.keys()) == ["spotify_token"]


def test_fs_store_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "state.json"
    first = FsStateStore(path)
    first.set("spotify_token", "abc")
    first.set("spotify_token_expiration", "1700000000000")

    second = FsStateStore(path)

    assert second.get("spotify_token") == "abc"
    assert sorted(second.keys()) == ["spotify_token", "spotify_token_expiration"]
    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["ver"] == 1
    assert document["values"]["spotify_token"] == "abc"


def test_fs_store_leaves_no_temporary_files(tmp_path: Path) -> None:
    store = FsStateStore(tmp_path / "state.json")
    for index in range(5):
        store.set(f"key-{index}", str(index))
    store.delete("key-0")

    assert [entry.name for entry in tmp_path.iterdir()] == ["state.json"]


def test_fs_store_treats_corrupt_document_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    store = FsStateStore(path)

    assert store.get("spotify_token") is None

    store.set("spotify_token", "fresh")
    assert FsStateStore(path).get("spotify_token") == "fresh"


def test_build_state_store_selects_backend(tmp_path: Path) -> None:
    memory = build_state_store(StorageConfig(backend="memory", state_dir=str(tmp_path)))
    fs = build_state_store(StorageConfig(backend="fs", state_dir=str(tmp_path)))

    assert isinstance(memory, MemoryStateStore)
    assert isinstance(fs, FsStateStore)
    assert fs.path == (tmp_path / "state.json").resolve()
