from __future__ import annotations

import logging
import queue
from dataclasses import dataclass, field

from hayguard.domain.events import AlertEvent

logger = logging.getLogger(__name__)


@dataclass
class EventBus:
    """
    In-process event bus for alert lifecycle events.

    - Producers (the telemetry engine) publish via :meth:`publish_alert`.
    - Consumers (the notification adapter thread) drain :attr:`alert_events_q`.

    Backpressure Policy
    -------------------
    If the queue is full, the newest event is dropped. A slow webhook never
    blocks generation or API calls.

    Attributes
    ----------
    alert_events_q
        Bounded queue of alert events.
    """

    alert_events_q: "queue.Queue[AlertEvent]" = field(default_factory=lambda: queue.Queue(maxsize=5000))

    def publish_alert(self, ev: AlertEvent) -> None:
        """Publish ``ev`` without blocking; dropped when the queue is full."""
        try:
            self.alert_events_q.put_nowait(ev)
        except queue.Full:
            logger.warning("event bus full, dropping %s for %s", ev.transition.value, ev.dedup_key)
