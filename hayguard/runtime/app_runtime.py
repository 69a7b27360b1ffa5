from __future__ import annotations

import logging
import threading
from typing import Optional

from hayguard.notification.notification_thread import NotificationWorkerThread
from hayguard.runtime.event_bus import EventBus
from hayguard.runtime.notification_adapter_thread import NotificationAdapterThread
from hayguard.runtime.persistence_retry_thread import PersistenceRetryThread
from hayguard.runtime.scheduler import GenerationScheduler
from hayguard.services.engine import TelemetryEngine
from hayguard.storage.snapshot_writer import SnapshotWriter

logger = logging.getLogger(__name__)


class AppRuntime:
    """
    Thread supervisor for the engine process.

    Thread Topology
    ---------------
    1) GenerationScheduler (timer)
       - wakes every 30-45 minutes and calls ``TelemetryEngine.generate_now``
       - the engine publishes alert transitions on the EventBus

    2) PersistenceRetryThread
       - replays writes that failed, with exponential backoff

    3) NotificationAdapterThread + NotificationWorkerThread (optional)
       - consume AlertEvents from the bus and deliver them to the webhook

    Notes
    -----
    - All threads are daemon threads; ``stop()`` still stops and joins them.
    - None of the threads touches engine state except through the engine API.
    """

    def __init__(
        self,
        engine: TelemetryEngine,
        writer: SnapshotWriter,
        bus: EventBus,
        scheduler: Optional[GenerationScheduler] = None,
        notifier: Optional[NotificationWorkerThread] = None,
        retry_backoff_s: float = 1.0,
        retry_max_backoff_s: float = 60.0,
    ):
        self._engine = engine
        self._bus = bus
        self._stop = threading.Event()

        self.scheduler = scheduler
        self.notifier = notifier
        self._retry = PersistenceRetryThread(
            writer,
            backoff_s=retry_backoff_s,
            max_backoff_s=retry_max_backoff_s,
            stop_event=self._stop,
        )
        self._notify_adapter = (
            NotificationAdapterThread(
                bus=bus,
                alerts=engine.current_alerts,
                notifier=notifier,
                stop_event=self._stop,
            )
            if notifier is not None
            else None
        )

    def start(self) -> None:
        """
        Start all threads: delivery first, then retries, then the scheduler.
        """
        if self.notifier is not None:
            self.notifier.start()
        if self._notify_adapter is not None:
            self._notify_adapter.start()
        self._retry.start()
        if self.scheduler is not None:
            self.scheduler.start()
        logger.info("runtime started")

    def stop(self) -> None:
        """Stop all threads and wait briefly for them to exit."""
        if self.scheduler is not None:
            self.scheduler.stop()
            self.scheduler.join(timeout=2.0)

        self._stop.set()
        self._retry.join(timeout=2.0)
        if self._notify_adapter is not None:
            self._notify_adapter.join(timeout=2.0)
        if self.notifier is not None:
            self.notifier.stop()
            self.notifier.join(timeout=2.0)
        logger.info("runtime stopped")
