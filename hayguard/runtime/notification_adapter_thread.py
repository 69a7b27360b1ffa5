from __future__ import annotations

import logging
import threading
from queue import Empty
from typing import Callable, List, Optional

from hayguard.domain.events import AlertEvent
from hayguard.domain.models import AlertRecord
from hayguard.notification.base import NotificationEvent
from hayguard.notification.notification_thread import NotificationWorkerThread
from hayguard.notification.payload import build_alert_webhook_payload
from hayguard.runtime.event_bus import EventBus

logger = logging.getLogger(__name__)


class NotificationAdapterThread:
    """
    Adapter thread bridging ``AlertEvent`` -> ``NotificationWorkerThread``.

    Responsibilities
    ----------------
    - Drain ``EventBus.alert_events_q``.
    - Build a webhook payload with the current alert totals.
    - Hand the resulting ``NotificationEvent`` to the worker thread.

    Parameters
    ----------
    bus
        Event bus providing the alert queue.
    alerts
        Callable returning the live alerts (``TelemetryEngine.current_alerts``).
    notifier
        Worker responsible for delivery.
    stop_event
        Stop signal for the thread.
    """

    def __init__(
        self,
        bus: EventBus,
        alerts: Callable[[], List[AlertRecord]],
        notifier: NotificationWorkerThread,
        stop_event: Optional[threading.Event] = None,
    ):
        self._bus = bus
        self._alerts = alerts
        self._notifier = notifier
        self._stop = stop_event or threading.Event()
        self._thread = threading.Thread(target=self._run, name="notification-adapter", daemon=True)

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = 2.0) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def handle(self, ev: AlertEvent) -> None:
        payload = build_alert_webhook_payload(self._alerts(), ev)
        self._notifier.emit(
            NotificationEvent(
                type="alert_event",
                payload=payload,
                severity=ev.severity.value,
                source=ev.sensor_id,
                ts=ev.timestamp.isoformat(timespec="seconds"),
            )
        )

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                ev = self._bus.alert_events_q.get(timeout=0.5)
            except Empty:
                continue

            try:
                self.handle(ev)
            except Exception:
                logger.exception("failed to forward %s", ev.dedup_key)
