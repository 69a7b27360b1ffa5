"""
Alert evaluation contracts (context, dedup keys, and decisions).

This module defines the core data structures that form the contract between:

- Alert criteria (stateless evaluators) producing -> class:`AlertDecision`
- The alert engine (stateful reconciler) turning decisions into AlertRecords,
  ledger lookups and lifecycle events

The objects here are immutable and hashable so they can be used safely as
dictionary keys and passed across threads.

Notes
-----

- `DedupKey` is designed to be stable and uniquely identify one logical alert
across evaluation passes, as long as the threshold is unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, Sequence

from hayguard.domain.models import AlertSeverity, AlertType, SensorView


@dataclass(frozen=True)
class AlertContext:
    """
    Context passed into alert evaluation.

    Parameters
    ----------
    now
        Evaluation timestamp for the current pass.
    """

    now: datetime


@dataclass(frozen=True)
class DedupKey:
    """
    Identity of one logical alert.

    An alert is uniquely identified by sensor, rule type, severity and the
    threshold it was compared against. Re-evaluating an unchanged snapshot
    yields equal keys; editing the optimal range yields a new key.

    Parameters
    ----------
    sensor_id
        Sensor the alert belongs to.
    alert_type
        Rule family.
    severity
        Severity of the firing rule.
    threshold
        Threshold the value was compared against.
    """

    sensor_id: str
    alert_type: AlertType
    severity: AlertSeverity
    threshold: float

    def __str__(self) -> str:
        return f"{self.sensor_id}|{self.alert_type.value}|{self.severity.value}|{self.threshold:g}"


@dataclass(frozen=True)
class AlertDecision:
    """
    A rule that fired for one sensor in this pass.

    Invariants
    ----------
    - At most one decision per (sensor, alert_type) per pass.
    - ``key.severity`` is the highest severity whose condition holds.

    Parameters
    ----------
    key
        Dedup key of the firing rule.
    sensor_name
        Display name of the sensor.
    value
        Measured value that triggered the rule.
    unit
        Unit of ``value`` and of the threshold.
    message
        Human-readable message describing the condition.
    """

    key: DedupKey
    sensor_name: str
    value: float
    unit: str
    message: str


class AlertCriteria(Protocol):
    """
    Protocol interface for alert criteria evaluation.

    Criteria are **stateless**: they derive everything from the fleet
    snapshot and the context.

    Methods
    -------
    evaluate(views, ctx)
        Evaluate the snapshot and return zero or more decisions.
    """

    def evaluate(self, views: Sequence[SensorView], ctx: AlertContext) -> Sequence[AlertDecision]:
        """
        Evaluate alert conditions and return decisions.

        Parameters
        ----------
        views
            Current per-sensor snapshot (registry + power + latest reading).
        ctx
            Evaluation context for the current pass.

        Returns
        -------
        Sequence[AlertDecision]
            Decisions for the rules that fired.
        """
        ...
