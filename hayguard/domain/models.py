"""
Domain models and enums.

This module defines the core domain-level types used across the engine:
- Monitored quantities, sensor statuses, power phases, alert types and severities
- Sensor records with their optimal ranges (owned by the registry)
- Immutable readings produced by the synthesizer
- PowerState, the per-sensor battery cycle snapshot
- AlertRecord and SensorView, the derived views consumed by the UI/API layer

Readings, ranges and views are frozen dataclasses so they can be shared across
layers and threads. Sensor and PowerState are replaced wholesale on mutation
(``dataclasses.replace``) rather than patched in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional


class Quantity(str, Enum):
    """
    Physical quantity a sensor can monitor.

    Members
    -------
    TEMPERATURE : str
        Bale core temperature in degrees Celsius.
    MOISTURE : str
        Bale moisture content in percent.
    """

    TEMPERATURE = "temperature"
    MOISTURE = "moisture"

    @property
    def unit(self) -> str:
        return "°C" if self is Quantity.TEMPERATURE else "%"


class SensorStatus(str, Enum):
    """
    Derived connectivity status shown to the UI.

    Members
    -------
    UNPAIRED : str
        The sensor still carries a temporary identity.
    ONLINE : str
        Paired, and at least one reading is in the historical store.
    OFFLINE : str
        Paired, but no reading is available.
    """

    UNPAIRED = "unpaired"
    ONLINE = "online"
    OFFLINE = "offline"


class PowerPhase(str, Enum):
    """
    Phase of the battery cycle.

    Members
    -------
    DEPLETING : str
        Level decreases linearly with elapsed time.
    CHARGING : str
        Sensor is recharging; no readings are produced.
    """

    DEPLETING = "depleting"
    CHARGING = "charging"


class AlertType(str, Enum):
    """
    Rule family that produced an alert.
    """

    TEMPERATURE = "temperature"
    MOISTURE = "moisture"
    BATTERY = "battery"


class AlertSeverity(str, Enum):
    """
    Severity level for alerts.

    Members
    -------
    WARNING : str
        Abnormal condition requiring attention.
    CRITICAL : str
        Severe condition requiring immediate intervention.
    """

    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class OptimalRange:
    """
    Optimal operating range for one quantity.

    Parameters
    ----------
    min
        Lower bound of the range.
    max
        Upper bound of the range. Must be strictly greater than ``min``.
    """

    min: float
    max: float

    @property
    def span(self) -> float:
        return self.max - self.min

    @property
    def midpoint(self) -> float:
        return (self.min + self.max) / 2.0

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


@dataclass(frozen=True)
class Sensor:
    """
    Sensor record owned by the entity registry.

    Parameters
    ----------
    id
        ``TEMP-NNN`` before pairing, ``SENS-NNN`` after pairing.
    name
        Display name.
    quantities
        Set of monitored quantities.
    optimal_ranges
        Optimal range per monitored quantity.
    bales_monitored
        Number of bales the sensor covers.
    location, description
        Free text.
    pairing_code
        QR code scanned during pairing (None while unpaired).
    initial_battery
        Battery level at pairing time, used to reconstruct history.
    created_at, paired_at
        Lifecycle timestamps.
    """

    id: str
    name: str
    quantities: FrozenSet[Quantity]
    optimal_ranges: Dict[Quantity, OptimalRange]
    created_at: datetime
    bales_monitored: int = 0
    location: str = ""
    description: str = ""
    pairing_code: Optional[str] = None
    initial_battery: float = 100.0
    paired_at: Optional[datetime] = None

    @property
    def is_paired(self) -> bool:
        return is_permanent_id(self.id)


@dataclass(frozen=True)
class PowerState:
    """
    Battery cycle snapshot for one paired sensor.

    The stored fields describe the current phase only; the level at any later
    instant is derived from ``phase_started_at`` by the power state machine.

    Parameters
    ----------
    phase
        Current phase of the cycle.
    phase_started_at
        Instant the current phase began.
    start_level
        Level at ``phase_started_at`` (for DEPLETING).
    depletion_rate
        Percent lost per hour while depleting.
    last_charge_at
        Instant of the last completed charge (or pairing).
    charge_hours
        Charge window drawn on entering CHARGING (None while depleting).
    charging_level
        Low level displayed while charging, drawn in [2, 6) on entry.
    """

    phase: PowerPhase
    phase_started_at: datetime
    start_level: float
    depletion_rate: float
    last_charge_at: datetime
    charge_hours: Optional[float] = None
    charging_level: Optional[float] = None

    @property
    def is_charging(self) -> bool:
        return self.phase is PowerPhase.CHARGING


@dataclass(frozen=True)
class Reading:
    """
    Immutable telemetry sample.

    Parameters
    ----------
    timestamp
        Capture time.
    sensor_id
        Permanent sensor ID.
    battery
        Battery level at capture time.
    temperature, moisture
        Values for the monitored quantities; None when not monitored.
    """

    timestamp: datetime
    sensor_id: str
    battery: float
    temperature: Optional[float] = None
    moisture: Optional[float] = None

    def value_of(self, quantity: Quantity) -> Optional[float]:
        return self.temperature if quantity is Quantity.TEMPERATURE else self.moisture


@dataclass(frozen=True)
class SensorView:
    """
    Registry + power state + latest reading joined for one sensor.

    This is the snapshot handed to the UI layer and to alert criteria.
    """

    sensor: Sensor
    status: SensorStatus
    battery_level: float
    is_charging: bool
    current: Dict[Quantity, Optional[float]] = field(default_factory=dict)
    last_update: Optional[datetime] = None

    @property
    def sensor_id(self) -> str:
        return self.sensor.id

    @property
    def current_temperature(self) -> Optional[float]:
        return self.current.get(Quantity.TEMPERATURE)

    @property
    def current_moisture(self) -> Optional[float]:
        return self.current.get(Quantity.MOISTURE)


@dataclass(frozen=True)
class AlertRecord:
    """
    Alert derived from one evaluation pass.

    AlertRecords are not primary state: they are rebuilt on every pass and the
    ``resolved`` flag is reconciled in from the resolution ledger.

    Parameters
    ----------
    alert_id
        Identifier used by ``resolve_alert``; equal to ``dedup_key``.
    dedup_key
        ``sensor|rule|severity|threshold``; stable while the threshold is unchanged.
    sensor_id, sensor_name
        Sensor the alert belongs to.
    alert_type, severity
        Rule family and severity.
    value, threshold, unit
        Measured value, the configured threshold and its unit.
    message
        Human-readable description.
    timestamp
        Generation time of this pass.
    resolved, resolved_at
        Resolution status reconciled from the ledger.
    """

    alert_id: str
    dedup_key: str
    sensor_id: str
    sensor_name: str
    alert_type: AlertType
    severity: AlertSeverity
    value: float
    threshold: float
    unit: str
    message: str
    timestamp: datetime
    resolved: bool = False
    resolved_at: Optional[datetime] = None


TEMP_ID_PREFIX = "TEMP-"
PERMANENT_ID_PREFIX = "SENS-"


def is_permanent_id(sensor_id: str) -> bool:
    return bool(sensor_id) and sensor_id.startswith(PERMANENT_ID_PREFIX)


def format_id(prefix: str, number: int) -> str:
    return f"{prefix}{number:03d}"
