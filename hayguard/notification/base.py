from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol


@dataclass(frozen=True)
class NotificationEvent:
    """
    Message handed to notifiers.

    A ``NotificationEvent`` describes *what should be communicated*, not how it
    is delivered.

    Parameters
    ----------
    type
        Event type identifier (e.g. ``"alert_event"``).
    payload
        JSON-serializable body sent by the notifiers.
    severity
        Optional severity label (``"warning"`` / ``"critical"``).
    source
        Optional sensor ID.
    ts
        Optional ISO timestamp of the underlying transition.
    """

    type: str
    payload: Dict[str, Any]
    severity: Optional[str] = None
    source: Optional[str] = None
    ts: Optional[str] = None


class Notifier(Protocol):
    """
    Protocol for notification delivery.

    Implementations raise on failure so the worker thread can retry.
    """

    def notify(self, event: NotificationEvent) -> None:
        ...
