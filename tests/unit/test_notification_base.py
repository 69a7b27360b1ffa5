"""
Unit tests for hayguard.notification.base and the notification worker thread.
"""

from __future__ import annotations

import threading
import time
from dataclasses import FrozenInstanceError
from typing import List

import pytest

from hayguard.notification.base import NotificationEvent
from hayguard.notification.notification_thread import NotificationThreadConfig, NotificationWorkerThread


class FakeNotifier:
    """Records delivered events; fails the first ``fail_times`` calls."""

    def __init__(self, fail_times: int = 0) -> None:
        self.fail_times = fail_times
        self.calls = 0
        self.delivered: List[NotificationEvent] = []
        self.done = threading.Event()

    def notify(self, event: NotificationEvent) -> None:
        self.calls += 1
        if self.calls <= self.fail_times:
            raise ConnectionError("webhook down")
        self.delivered.append(event)
        self.done.set()


def _ev() -> NotificationEvent:
    return NotificationEvent(type="alert_event", payload={"a": 1})


def test_notification_event_is_frozen_with_optional_defaults() -> None:
    ev = _ev()
    assert ev.severity is None and ev.source is None and ev.ts is None
    with pytest.raises(FrozenInstanceError):
        ev.type = "x"  # type: ignore[misc]


def test_worker_delivers_to_every_notifier() -> None:
    a, b = FakeNotifier(), FakeNotifier()
    worker = NotificationWorkerThread([a, b])
    worker.start()
    try:
        worker.emit(_ev())
        assert a.done.wait(2.0) and b.done.wait(2.0)
    finally:
        worker.stop()
        worker.join()

    assert a.delivered == [_ev()] and b.delivered == [_ev()]


def test_worker_retries_failed_delivery() -> None:
    notifier = FakeNotifier(fail_times=2)
    worker = NotificationWorkerThread([notifier], NotificationThreadConfig(retry_count=3, retry_backoff_s=0.0))
    worker.start()
    try:
        worker.emit(_ev())
        assert notifier.done.wait(2.0)
    finally:
        worker.stop()
        worker.join()

    assert notifier.calls == 3
    assert len(notifier.delivered) == 1


def test_worker_gives_up_after_retries() -> None:
    notifier = FakeNotifier(fail_times=10)
    worker = NotificationWorkerThread([notifier], NotificationThreadConfig(retry_count=1, retry_backoff_s=0.0))
    worker.start()
    try:
        worker.emit(_ev())
        deadline = time.monotonic() + 2.0
        while notifier.calls < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        worker.stop()
        worker.join()

    assert notifier.calls == 2
    assert notifier.delivered == []
    assert worker.failed == 1 and worker.sent == 0


class ClosableNotifier(FakeNotifier):
    def __init__(self) -> None:
        super().__init__()
        self.closed = False

    def close(self) -> None:
        self.closed = True


def test_worker_closes_notifiers_on_stop() -> None:
    notifier = ClosableNotifier()
    worker = NotificationWorkerThread([notifier], NotificationThreadConfig(poll_timeout_s=0.01))
    worker.start()
    worker.stop()
    worker.join()

    assert notifier.closed


def test_stop_interrupts_backoff() -> None:
    notifier = FakeNotifier(fail_times=100)
    cfg = NotificationThreadConfig(retry_count=50, retry_backoff_s=5.0, retry_max_backoff_s=5.0)
    worker = NotificationWorkerThread([notifier], cfg)
    worker.start()
    worker.emit(_ev())
    deadline = time.monotonic() + 2.0
    while notifier.calls < 1 and time.monotonic() < deadline:
        time.sleep(0.01)

    started = time.monotonic()
    worker.stop()
    worker.join(timeout=2.0)

    assert time.monotonic() - started < 2.0
    assert notifier.calls == 1
