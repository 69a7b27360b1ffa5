"""
Unit tests for hayguard.storage.kv_store.SqliteKVStore.

Uses pytest's ``tmp_path`` so every test gets its own database file.
"""

from __future__ import annotations

from pathlib import Path

from hayguard.storage.kv_store import SqliteKVStore


def test_put_get_roundtrip_and_missing_key(tmp_path: Path) -> None:
    store = SqliteKVStore(str(tmp_path / "kv.db"))
    store.put("sensors", [{"id": "SENS-001", "name": "Barn"}])

    assert store.get("sensors") == [{"id": "SENS-001", "name": "Barn"}]
    assert store.get("missing") is None
    store.close()


def test_put_replaces_whole_record(tmp_path: Path) -> None:
    store = SqliteKVStore(str(tmp_path / "kv.db"))
    store.put("ledger", {"a": 1, "b": 2})
    store.put("ledger", {"c": 3})

    assert store.get("ledger") == {"c": 3}
    store.close()


def test_keys_prefix_delete_and_put_many(tmp_path: Path) -> None:
    store = SqliteKVStore(str(tmp_path / "kv.db"))
    store.put_many({"history:SENS-001": [], "history:SENS-002": [1], "sensors": []})

    assert store.keys("history:") == ["history:SENS-001", "history:SENS-002"]
    store.delete("history:SENS-001")
    assert store.keys("history:") == ["history:SENS-002"]
    assert sorted(store.keys()) == ["history:SENS-002", "sensors"]
    store.close()


def test_data_survives_reopen(tmp_path: Path) -> None:
    path = str(tmp_path / "nested" / "kv.db")
    first = SqliteKVStore(path)
    first.put("temp_id_counter", 4)
    first.close()

    second = SqliteKVStore(path)
    assert second.get("temp_id_counter") == 4
    second.close()


def test_in_memory_store() -> None:
    store = SqliteKVStore(":memory:")
    store.put("k", {"v": True})
    assert store.get("k") == {"v": True}
    store.close()
