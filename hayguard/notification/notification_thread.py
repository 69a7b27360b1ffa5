from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import List

from hayguard.notification.base import NotificationEvent, Notifier

logger = logging.getLogger(__name__)

_STOP = NotificationEvent(type="__stop__", payload={})


@dataclass(frozen=True)
class NotificationThreadConfig:
    """
    Delivery queue and retry settings.

    Parameters
    ----------
    max_queue
        Pending events kept before :meth:`NotificationWorkerThread.emit` drops.
    retry_count
        Extra attempts per notifier after the first failure.
    retry_backoff_s, retry_max_backoff_s
        First retry delay, doubled per attempt up to the cap.
    poll_timeout_s
        Queue poll interval; bounds how long a stop can go unnoticed.
    """

    max_queue: int = 2000
    retry_count: int = 3
    retry_backoff_s: float = 0.5
    retry_max_backoff_s: float = 8.0
    poll_timeout_s: float = 0.5


class NotificationWorkerThread:
    """
    Fan notification events out to notifiers on a background thread.

    Backoff waits on the stop event, so :meth:`stop` interrupts a retry
    sequence instead of sleeping it out. Notifiers exposing ``close()`` are
    closed when the loop exits.
    """

    def __init__(self, notifiers: List[Notifier], cfg: NotificationThreadConfig | None = None):
        self._notifiers = list(notifiers)
        self._cfg = cfg or NotificationThreadConfig()
        self._q: "queue.Queue[NotificationEvent]" = queue.Queue(maxsize=self._cfg.max_queue)
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name="notification-worker", daemon=True)
        self.sent = 0
        self.failed = 0

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        try:
            self._q.put_nowait(_STOP)
        except queue.Full:
            # picked up by the stop flag on the next poll
            pass

    def join(self, timeout: float | None = 2.0) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def emit(self, event: NotificationEvent) -> None:
        """Queue ``event``; dropped with a warning when the queue is full."""
        try:
            self._q.put_nowait(event)
        except queue.Full:
            logger.warning("notification queue full, dropping %s from %s", event.type, event.source)

    def _run(self) -> None:
        try:
            while not self._stop.is_set():
                try:
                    event = self._q.get(timeout=self._cfg.poll_timeout_s)
                except queue.Empty:
                    continue
                if event is _STOP:
                    break
                for notifier in self._notifiers:
                    if self._deliver(notifier, event):
                        self.sent += 1
                    else:
                        self.failed += 1
        finally:
            self._close_notifiers()

    def _deliver(self, notifier: Notifier, event: NotificationEvent) -> bool:
        delay = self._cfg.retry_backoff_s
        attempts = self._cfg.retry_count + 1
        for attempt in range(1, attempts + 1):
            try:
                notifier.notify(event)
                return True
            except Exception as e:
                if attempt == attempts or self._stop.is_set():
                    logger.error(
                        "notification %s for %s failed after %d attempt(s): %r",
                        event.type, event.source, attempt, e,
                    )
                    return False
                logger.debug("notification attempt %d failed, retrying in %.2fs", attempt, delay)
                if self._stop.wait(timeout=delay):
                    logger.warning("notification %s for %s abandoned on shutdown", event.type, event.source)
                    return False
                delay = min(delay * 2, self._cfg.retry_max_backoff_s)
        return False

    def _close_notifiers(self) -> None:
        for notifier in self._notifiers:
            close = getattr(notifier, "close", None)
            if callable(close):
                try:
                    close()
                except Exception:
                    logger.exception("closing notifier %r failed", notifier)
