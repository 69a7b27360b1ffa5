from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from hayguard.core.alert.alert_base import AlertContext, AlertCriteria, AlertDecision, DedupKey
from hayguard.domain.models import AlertSeverity, AlertType, Quantity, SensorStatus, SensorView


def _fmt(v: float) -> str:
    return f"{v:g}"


@dataclass(frozen=True)
class RangeHighCriteria(AlertCriteria):
    """
    Over-range rule for one monitored quantity.

    For each sensor monitoring ``quantity`` with a current value:
    - ``value > max + critical_offset``            -> CRITICAL
    - ``max < value <= max + critical_offset``     -> WARNING (only if ``warn``)

    The threshold recorded in the dedup key is the configured ``max``.

    Parameters
    ----------
    quantity
        Quantity the rule applies to.
    alert_type
        Rule family reported on the alert.
    critical_offset
        Absolute offset above ``max`` that makes the excursion critical.
    warn
        Whether values between ``max`` and ``max + critical_offset`` raise a warning.
    label
        Word used in messages.
    """

    quantity: Quantity
    alert_type: AlertType
    critical_offset: float
    warn: bool = True
    label: str = ""

    def evaluate(self, views: Sequence[SensorView], ctx: AlertContext) -> Sequence[AlertDecision]:
        decisions: List[AlertDecision] = []
        label = self.label or self.quantity.value.capitalize()
        unit = self.quantity.unit

        for view in views:
            if view.status is SensorStatus.UNPAIRED:
                continue
            value = view.current.get(self.quantity)
            rng = view.sensor.optimal_ranges.get(self.quantity)
            if value is None or rng is None:
                continue

            severity: Optional[AlertSeverity] = None
            if value > rng.max + self.critical_offset:
                severity = AlertSeverity.CRITICAL
                text = f"{label} critically high"
            elif self.warn and value > rng.max:
                severity = AlertSeverity.WARNING
                text = f"{label} above optimal"
            if severity is None:
                continue

            decisions.append(
                AlertDecision(
                    key=DedupKey(view.sensor_id, self.alert_type, severity, rng.max),
                    sensor_name=view.sensor.name,
                    value=value,
                    unit=unit,
                    message=f"{text}: {_fmt(value)}{unit} (optimal: {_fmt(rng.min)}-{_fmt(rng.max)}{unit})",
                )
            )

        return decisions


@dataclass(frozen=True)
class BatteryCriteria(AlertCriteria):
    """
    Low-battery rule.

    Sensors that are charging never fire (their level is a display value).
    - ``level < critical_level`` -> CRITICAL (threshold ``critical_level``)
    - ``level < warning_level``  -> WARNING  (threshold ``warning_level``)
    """

    warning_level: float = 20.0
    critical_level: float = 10.0

    def evaluate(self, views: Sequence[SensorView], ctx: AlertContext) -> Sequence[AlertDecision]:
        decisions: List[AlertDecision] = []

        for view in views:
            if view.status is SensorStatus.UNPAIRED or view.is_charging:
                continue
            level = view.battery_level
            if level < self.critical_level:
                severity, threshold = AlertSeverity.CRITICAL, self.critical_level
            elif level < self.warning_level:
                severity, threshold = AlertSeverity.WARNING, self.warning_level
            else:
                continue

            decisions.append(
                AlertDecision(
                    key=DedupKey(view.sensor_id, AlertType.BATTERY, severity, threshold),
                    sensor_name=view.sensor.name,
                    value=level,
                    unit="%",
                    message=f"Low battery: {_fmt(level)}%",
                )
            )

        return decisions
