"""
Alert event domain models.

An ``AlertEvent`` represents *what happened* to an alert at a specific time,
while ``AlertRecord`` (in models.py) represents *what is currently true*.

Events are used for:
- log lines
- notification delivery (event bus -> webhook)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from hayguard.domain.models import AlertSeverity, AlertType


class AlertTransition(str, Enum):
    """
    Alert lifecycle transition.

    Members
    -------
    RAISED : str
        A dedup key fired that was not live in the previous pass.
    CLEARED : str
        A previously live dedup key no longer fires.
    RESOLVED : str
        An operator marked the alert as resolved.
    """

    RAISED = "RAISED"
    CLEARED = "CLEARED"
    RESOLVED = "RESOLVED"


@dataclass(frozen=True)
class AlertEvent:
    """
    Alert event emitted when an alert transitions.

    Parameters
    ----------
    dedup_key
        Key of the alert that transitioned.
    sensor_id
        Sensor the alert belongs to.
    alert_type
        Rule family.
    severity
        Severity at the time of the transition.
    transition
        Lifecycle transition.
    timestamp
        When the transition occurred.
    message
        Human-readable description.
    value
        Measured value associated with the alert.
    """

    dedup_key: str
    sensor_id: str
    alert_type: AlertType
    severity: AlertSeverity
    transition: AlertTransition
    timestamp: datetime
    message: str
    value: Optional[float] = None
