"""
Unit tests for hayguard.runtime.persistence_retry_thread.PersistenceRetryThread.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import pytest

from hayguard.domain.errors import PersistenceError
from hayguard.runtime.persistence_retry_thread import PersistenceRetryThread
from hayguard.storage.snapshot_writer import SnapshotWriter


class CountdownStore:
    """KVStore failing the first ``failures`` writes."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self.data.get(key)

    def put(self, key: str, value: Any) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise OSError("locked")
        self.data[key] = value

    def put_many(self, items: Dict[str, Any]) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise OSError("locked")
        self.data.update(items)

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        return [k for k in self.data if k.startswith(prefix)]


def test_pending_write_is_eventually_flushed() -> None:
    store = CountdownStore(failures=3)
    writer = SnapshotWriter(store)
    with pytest.raises(PersistenceError):
        writer.write("alert_resolution_ledger", {"k": {}})

    retry = PersistenceRetryThread(writer, backoff_s=0.01, max_backoff_s=0.05, poll_timeout_s=0.01)
    retry.start()
    try:
        deadline = time.monotonic() + 2.0
        while writer.has_pending.is_set() and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        retry.stop()
        retry.join()

    assert store.data == {"alert_resolution_ledger": {"k": {}}}
    assert writer.pending_keys() == []
