from __future__ import annotations

import logging
import threading
from typing import Optional

from hayguard.storage.snapshot_writer import SnapshotWriter

logger = logging.getLogger(__name__)


class PersistenceRetryThread:
    """
    Background replay of writes that failed.

    The thread sleeps until the writer signals pending records, then calls
    :meth:`SnapshotWriter.flush_pending` with exponential backoff
    (``backoff_s``, doubled per failed round, capped at ``max_backoff_s``)
    until everything is written.

    Parameters
    ----------
    writer
        Snapshot writer holding the pending records.
    backoff_s
        Delay before the second attempt.
    max_backoff_s
        Upper bound on the delay.
    stop_event
        Stop signal; a private one is created when None.
    """

    def __init__(
        self,
        writer: SnapshotWriter,
        backoff_s: float = 1.0,
        max_backoff_s: float = 60.0,
        stop_event: Optional[threading.Event] = None,
        poll_timeout_s: float = 0.5,
    ):
        self._writer = writer
        self._backoff = backoff_s
        self._max_backoff = max_backoff_s
        self._poll = poll_timeout_s
        self._stop = stop_event or threading.Event()
        self._thread = threading.Thread(target=self._run, name="persistence-retry", daemon=True)

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = 2.0) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def _run(self) -> None:
        delay = self._backoff
        while not self._stop.is_set():
            if not self._writer.has_pending.wait(timeout=self._poll):
                delay = self._backoff
                continue

            if self._writer.flush_pending():
                logger.info("pending writes flushed")
                delay = self._backoff
                continue

            logger.warning("pending writes remain %s, retrying in %.1fs", self._writer.pending_keys(), delay)
            self._stop.wait(timeout=delay)
            delay = min(delay * 2, self._max_backoff)
