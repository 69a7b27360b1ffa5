from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Mapping

from hayguard.domain.errors import PersistenceError
from hayguard.storage.kv_store import KVStore

logger = logging.getLogger(__name__)

_DELETED = object()


class SnapshotWriter:
    """
    Synchronous writer in front of a :class:`KVStore`.

    Every write goes straight to the store. When the store raises, the records
    are kept in a pending map (latest value per key wins) and
    ``PersistenceError`` is raised to the caller; :meth:`flush_pending` replays
    the pending records and is driven by the persistence retry thread.

    Ordering
    --------
    Direct writes and replays are serialized by one I/O lock, and a record is
    dropped from the pending map by the write that makes it durable. A replay
    therefore never lands after a newer successful write of the same key.

    Parameters
    ----------
    store
        Durable store receiving full-record writes.
    """

    def __init__(self, store: KVStore):
        self._store = store
        self._pending: Dict[str, Any] = {}
        self._io_lock = threading.Lock()
        self._lock = threading.Lock()
        self.has_pending = threading.Event()

    @property
    def store(self) -> KVStore:
        return self._store

    def write(self, key: str, value: Any) -> None:
        """
        Replace the record stored under ``key``.

        Raises
        ------
        PersistenceError
            If the store write fails. The value stays queued for retry.
        """
        self._apply({key: value})

    def write_many(self, items: Mapping[str, Any], deletes: Iterable[str] = ()) -> None:
        """
        Replace several records in one store transaction, then delete ``deletes``.

        A key present in both ``items`` and ``deletes`` is written.

        Raises
        ------
        PersistenceError
            If the transaction fails. Every record stays queued for retry.
        """
        batch: Dict[str, Any] = dict(items)
        batch.update((key, _DELETED) for key in deletes if key not in batch)
        if batch:
            self._apply(batch)

    def delete(self, key: str) -> None:
        """Delete ``key``; failures are queued and raised like :meth:`write`."""
        self._apply({key: _DELETED})

    def pending_keys(self) -> List[str]:
        with self._lock:
            return sorted(self._pending)

    def flush_pending(self) -> bool:
        """
        Retry every pending record once, as one batch.

        Returns
        -------
        bool
            True when nothing is left pending.
        """
        with self._io_lock:
            with self._lock:
                batch = dict(self._pending)
            if batch:
                try:
                    self._send(batch)
                except Exception as e:
                    logger.warning("retry of %s failed: %r", ", ".join(sorted(batch)), e)
                else:
                    self._settle(batch)

            with self._lock:
                if self._pending:
                    return False
                self.has_pending.clear()
                return True

    def _apply(self, batch: Dict[str, Any]) -> None:
        with self._io_lock:
            try:
                self._send(batch)
            except Exception as e:
                with self._lock:
                    self._pending.update(batch)
                    self.has_pending.set()
                keys = ", ".join(sorted(batch))
                logger.error("write of %s failed, queued for retry: %r", keys, e)
                raise PersistenceError(keys, e) from e
            self._settle(batch)

    def _settle(self, batch: Dict[str, Any]) -> None:
        with self._lock:
            for key in batch:
                self._pending.pop(key, None)
            if not self._pending:
                self.has_pending.clear()

    def _send(self, batch: Dict[str, Any]) -> None:
        puts = {k: v for k, v in batch.items() if v is not _DELETED}
        if len(puts) == 1:
            ((key, value),) = puts.items()
            self._store.put(key, value)
        elif puts:
            self._store.put_many(puts)
        for key, value in batch.items():
            if value is _DELETED:
                self._store.delete(key)
