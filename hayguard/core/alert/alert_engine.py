"""
Alert reconciliation engine.

This module contains the stateful part of alerting. It turns stateless
`AlertDecision` outputs (from `AlertCriteria`) into:
- The live list of `AlertRecord` objects (rebuilt on every pass), with the
  resolved flag reconciled from the `ResolutionLedger`
- Discrete `AlertEvent` transitions (RAISED / CLEARED / RESOLVED)

The engine does not implement rule logic itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from hayguard.core.alert.alert_base import AlertContext, AlertCriteria, AlertDecision
from hayguard.core.state.resolution_ledger import ResolutionLedger
from hayguard.domain.errors import NotFoundError
from hayguard.domain.events import AlertEvent, AlertTransition
from hayguard.domain.models import AlertRecord, SensorView


def _event(record: AlertRecord, transition: AlertTransition, ts: datetime) -> AlertEvent:
    return AlertEvent(
        dedup_key=record.dedup_key,
        sensor_id=record.sensor_id,
        alert_type=record.alert_type,
        severity=record.severity,
        transition=transition,
        timestamp=ts,
        message=record.message,
        value=record.value,
    )


@dataclass
class AlertEngine:
    """
    Alert lifecycle manager.

    Lifecycle Model
    ---------------
    For each dedup key the engine tracks whether it fired in the previous pass:

    - RAISED:   key fires now and did not fire in the previous pass
    - CLEARED:  key fired in the previous pass and does not fire now
    - RESOLVED: an operator resolved a live key (see :meth:`mark_resolved`)

    A resolved key that keeps firing stays in the live list with
    ``resolved=True`` until its ledger entry expires.

    Notes
    -----
    - Not thread-safe; the ``TelemetryEngine`` serializes access.

    Parameters
    ----------
    criteria
        Sequence of criteria evaluators producing alert decisions.
    """

    criteria: Sequence[AlertCriteria]
    _live: Dict[str, AlertRecord] = field(default_factory=dict)

    def evaluate(
        self,
        views: Sequence[SensorView],
        ledger: ResolutionLedger,
        now: datetime,
    ) -> List[AlertEvent]:
        """
        Run every criterion over ``views`` and replace the live alert set.

        Parameters
        ----------
        views
            Current fleet snapshot.
        ledger
            Resolution ledger used to reconcile ``resolved`` / ``resolved_at``.
        now
            Generation timestamp for this pass.

        Returns
        -------
        list of AlertEvent
            RAISED / CLEARED transitions produced by this pass.
        """
        ctx = AlertContext(now=now)

        decisions: List[AlertDecision] = []
        for c in self.criteria:
            decisions.extend(list(c.evaluate(views, ctx)))

        live: Dict[str, AlertRecord] = {}
        for d in decisions:
            record = self._to_record(d, ledger, now)
            live[record.dedup_key] = record

        events: List[AlertEvent] = []
        for key, record in live.items():
            if key not in self._live:
                events.append(_event(record, AlertTransition.RAISED, now))
        for key, record in self._live.items():
            if key not in live:
                events.append(_event(record, AlertTransition.CLEARED, now))

        self._live = live
        return events

    def alerts(self) -> List[AlertRecord]:
        """Live alerts of the last pass, critical first, then by sensor."""
        return sorted(
            self._live.values(),
            key=lambda r: (r.severity.value != "critical", r.sensor_id, r.alert_type.value),
        )

    def get(self, alert_id: str) -> Optional[AlertRecord]:
        return self._live.get(alert_id)

    def mark_resolved(self, alert_id: str, ledger: ResolutionLedger, now: datetime) -> AlertEvent:
        """
        Resolve a live alert and record it in ``ledger``.

        Raises
        ------
        NotFoundError
            If ``alert_id`` is not in the live set.
        """
        record = self._live.get(alert_id)
        if record is None:
            raise NotFoundError(f"unknown alert {alert_id!r}")

        entry = ledger.mark_resolved(record.dedup_key, now)
        resolved = replace(record, resolved=True, resolved_at=entry.resolved_at)
        self._live[alert_id] = resolved
        return _event(resolved, AlertTransition.RESOLVED, now)

    def forget_sensor(self, sensor_id: str) -> None:
        """Drop live alerts of a deleted sensor without emitting events."""
        self._live = {k: r for k, r in self._live.items() if r.sensor_id != sensor_id}

    def reset(self) -> None:
        self._live = {}

    @staticmethod
    def _to_record(d: AlertDecision, ledger: ResolutionLedger, now: datetime) -> AlertRecord:
        key = str(d.key)
        entry = ledger.get(key)
        return AlertRecord(
            alert_id=key,
            dedup_key=key,
            sensor_id=d.key.sensor_id,
            sensor_name=d.sensor_name,
            alert_type=d.key.alert_type,
            severity=d.key.severity,
            value=d.value,
            threshold=d.key.threshold,
            unit=d.unit,
            message=d.message,
            timestamp=now,
            resolved=bool(entry and entry.resolved),
            resolved_at=entry.resolved_at if entry else None,
        )
