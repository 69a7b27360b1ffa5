from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from hayguard.domain.errors import AlreadyPairedError, InvalidConfigError, NotFoundError
from hayguard.domain.models import (
    PERMANENT_ID_PREFIX,
    TEMP_ID_PREFIX,
    OptimalRange,
    Quantity,
    Sensor,
    format_id,
    is_permanent_id,
)

PATCHABLE_FIELDS = frozenset(
    {"name", "location", "description", "bales_monitored", "quantities", "optimal_ranges"}
)


@dataclass(frozen=True)
class SensorDraft:
    """
    Configuration supplied when adding a sensor.

    Parameters
    ----------
    name
        Display name.
    quantities
        Monitored quantities; must not be empty.
    optimal_ranges
        Range per monitored quantity. Values may be ``OptimalRange``,
        ``{"min": .., "max": ..}`` mappings or ``(min, max)`` pairs, keyed by
        ``Quantity`` or its string value.
    """

    name: str
    quantities: Iterable[Any]
    optimal_ranges: Mapping[Any, Any]
    bales_monitored: int = 0
    location: str = ""
    description: str = ""


def _coerce_quantities(raw: Iterable[Any]) -> frozenset:
    try:
        qs = frozenset(Quantity(q) for q in raw)
    except ValueError as e:
        raise InvalidConfigError(str(e)) from e
    if not qs:
        raise InvalidConfigError("a sensor must monitor at least one quantity")
    return qs


def _coerce_range(raw: Any) -> OptimalRange:
    if isinstance(raw, OptimalRange):
        rng = raw
    elif isinstance(raw, Mapping):
        rng = OptimalRange(min=float(raw["min"]), max=float(raw["max"]))
    else:
        lo, hi = raw
        rng = OptimalRange(min=float(lo), max=float(hi))
    if rng.min >= rng.max:
        raise InvalidConfigError(f"optimal range min ({rng.min}) must be below max ({rng.max})")
    return rng


def _coerce_ranges(raw: Mapping[Any, Any]) -> Dict[Quantity, OptimalRange]:
    out: Dict[Quantity, OptimalRange] = {}
    for key, value in raw.items():
        try:
            q = Quantity(key)
            out[q] = _coerce_range(value)
        except InvalidConfigError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidConfigError(f"malformed optimal range for {key!r}: {value!r}") from e
    return out


def _validate(quantities: frozenset, ranges: Dict[Quantity, OptimalRange]) -> None:
    missing = [q.value for q in quantities if q not in ranges]
    if missing:
        raise InvalidConfigError(f"missing optimal range for: {', '.join(sorted(missing))}")


def _id_number(sensor_id: str) -> Optional[int]:
    try:
        return int(sensor_id.split("-", 1)[1])
    except (IndexError, ValueError):
        return None


@dataclass
class SensorRegistry:
    """
    Registry owning every sensor record.

    The registry maintains an in-memory mapping from sensor ID to
    class: 'Sensor' plus the temporary-ID counter. All validation happens
    before a record is replaced, so a failed call leaves the registry untouched.

    Notes
    -----
    - Thread-safety is not handled here; the enclosing ``TelemetryEngine`` is
      responsible for synchronization and for persisting snapshots.
    - Temporary IDs (``TEMP-NNN``) come from a counter that never goes back;
      permanent IDs (``SENS-NNN``) are ``max existing + 1``.

    Attributes
    ----------
    _sensors
        Internal mapping of sensor ID to Sensor, in insertion order.
    next_temp_number
        Number used for the next ``TEMP-NNN`` identity.
    """

    _sensors: Dict[str, Sensor] = field(default_factory=dict)
    next_temp_number: int = 1

    def load(self, sensors: Iterable[Sensor], next_temp_number: Optional[int] = None) -> None:
        """
        Replace the registry content with ``sensors``.

        Parameters
        ----------
        sensors
            Sensor records to index by ID.
        next_temp_number
            Stored temporary-ID counter, if any.
        """
        self._sensors = {s.id: s for s in sensors}
        if next_temp_number is not None:
            self.next_temp_number = max(1, int(next_temp_number))

    def find(self, sensor_id: str) -> Optional[Sensor]:
        return self._sensors.get(sensor_id)

    def get(self, sensor_id: str) -> Sensor:
        """
        Retrieve the sensor with ``sensor_id``.

        Raises
        ------
        NotFoundError
            If the sensor is not registered.
        """
        sensor = self._sensors.get(sensor_id)
        if sensor is None:
            raise NotFoundError(f"sensor {sensor_id!r} not found")
        return sensor

    def all(self) -> List[Sensor]:
        return list(self._sensors.values())

    def paired(self) -> List[Sensor]:
        return [s for s in self._sensors.values() if s.is_paired]

    def add(self, draft: SensorDraft, now: datetime) -> Sensor:
        """
        Register a new unpaired sensor under the next temporary ID.

        Raises
        ------
        InvalidConfigError
            If quantities or ranges are malformed.
        """
        quantities = _coerce_quantities(draft.quantities)
        ranges = _coerce_ranges(draft.optimal_ranges)
        _validate(quantities, ranges)

        temp_id = format_id(TEMP_ID_PREFIX, self.next_temp_number)
        while temp_id in self._sensors:
            self.next_temp_number += 1
            temp_id = format_id(TEMP_ID_PREFIX, self.next_temp_number)
        self.next_temp_number += 1

        sensor = Sensor(
            id=temp_id,
            name=draft.name,
            quantities=quantities,
            optimal_ranges=ranges,
            created_at=now,
            bales_monitored=int(draft.bales_monitored),
            location=draft.location,
            description=draft.description,
        )
        self._sensors[temp_id] = sensor
        return sensor

    def next_permanent_id(self) -> str:
        numbers = [n for n in (_id_number(i) for i in self._sensors if is_permanent_id(i)) if n is not None]
        return format_id(PERMANENT_ID_PREFIX, (max(numbers) if numbers else 0) + 1)

    def pair(self, temp_id: str, pairing_code: str, now: datetime) -> Tuple[Sensor, Sensor]:
        """
        Promote an unpaired sensor to a permanent identity.

        Returns
        -------
        tuple of Sensor
            ``(previous, paired)`` records; the previous one is kept so the caller
            can restore it if initialization fails.

        Raises
        ------
        NotFoundError
            If ``temp_id`` is unknown.
        AlreadyPairedError
            If the sensor already has a permanent ID.
        """
        previous = self.get(temp_id)
        if previous.is_paired:
            raise AlreadyPairedError(f"sensor {temp_id!r} is already paired")

        paired = replace(
            previous,
            id=self.next_permanent_id(),
            pairing_code=pairing_code,
            initial_battery=100.0,
            paired_at=now,
        )
        # Rebuild to keep insertion order with the new key in place of the old one.
        self._sensors = {(paired.id if k == temp_id else k): (paired if k == temp_id else v)
                         for k, v in self._sensors.items()}
        return previous, paired

    def restore(self, current_id: str, previous: Sensor) -> None:
        """Undo a pairing by putting ``previous`` back under its temporary ID."""
        self._sensors = {(previous.id if k == current_id else k): (previous if k == current_id else v)
                         for k, v in self._sensors.items()}

    def update(self, sensor_id: str, patch: Mapping[str, Any]) -> Sensor:
        """
        Merge ``patch`` into the sensor configuration.

        Raises
        ------
        NotFoundError
            If the sensor is unknown.
        InvalidConfigError
            If the patch touches identity fields or yields an invalid configuration.
        """
        current = self.get(sensor_id)

        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise InvalidConfigError(f"fields cannot be patched: {', '.join(sorted(unknown))}")

        quantities = (
            _coerce_quantities(patch["quantities"]) if "quantities" in patch else current.quantities
        )
        ranges = dict(current.optimal_ranges)
        if "optimal_ranges" in patch:
            ranges.update(_coerce_ranges(patch["optimal_ranges"]))
        _validate(quantities, ranges)

        try:
            bales = int(patch.get("bales_monitored", current.bales_monitored))
        except (TypeError, ValueError) as e:
            raise InvalidConfigError(f"bales_monitored must be an integer: {e}") from e

        updated = replace(
            current,
            name=str(patch.get("name", current.name)),
            location=str(patch.get("location", current.location)),
            description=str(patch.get("description", current.description)),
            bales_monitored=bales,
            quantities=quantities,
            optimal_ranges={q: r for q, r in ranges.items() if q in quantities},
        )
        self._sensors[sensor_id] = updated
        return updated

    def remove(self, sensor_id: str) -> Sensor:
        """
        Remove and return the sensor.

        Raises
        ------
        NotFoundError
            If the sensor is unknown.
        """
        sensor = self.get(sensor_id)
        del self._sensors[sensor_id]
        return sensor
