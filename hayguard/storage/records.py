from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from hayguard.domain.models import OptimalRange, PowerPhase, PowerState, Quantity, Reading, Sensor


def _dt_to_str(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


def _str_to_dt(s: Optional[str]) -> Optional[datetime]:
    """
    Convert an ISO-8601 datetime string to a datetime object.

    Parameters
    ----------
    s
        Datetime string in ISO format (e.g., "2026-01-01T10:00:00"), or None.

    Returns
    -------
    datetime or None
        Parsed datetime instance.

    Raises
    ------
    ValueError
        If the input is not a valid ISO formatted datetime string.
    """
    if s is None:
        return None
    return datetime.fromisoformat(s)


def _opt_float(v: Any) -> Optional[float]:
    return float(v) if v is not None else None


def sensor_to_record(sensor: Sensor) -> Dict[str, Any]:
    return {
        "id": sensor.id,
        "name": sensor.name,
        "quantities": sorted(q.value for q in sensor.quantities),
        "optimalRanges": {
            q.value: {"min": r.min, "max": r.max} for q, r in sensor.optimal_ranges.items()
        },
        "balesMonitored": sensor.bales_monitored,
        "location": sensor.location,
        "description": sensor.description,
        "qrCode": sensor.pairing_code,
        "initialBattery": sensor.initial_battery,
        "createdAt": _dt_to_str(sensor.created_at),
        "pairedAt": _dt_to_str(sensor.paired_at),
    }


def sensor_from_record(obj: Dict[str, Any]) -> Sensor:
    """
    Decode a stored sensor record.

    Raises
    ------
    KeyError
        If a required field is missing.
    ValueError
        If a quantity name or timestamp cannot be parsed.
    """
    ranges = {
        Quantity(name): OptimalRange(min=float(r["min"]), max=float(r["max"]))
        for name, r in obj.get("optimalRanges", {}).items()
    }
    return Sensor(
        id=str(obj["id"]),
        name=str(obj.get("name", "")),
        quantities=frozenset(Quantity(q) for q in obj["quantities"]),
        optimal_ranges=ranges,
        created_at=_str_to_dt(obj["createdAt"]),  # type: ignore[arg-type]
        bales_monitored=int(obj.get("balesMonitored", 0)),
        location=str(obj.get("location", "")),
        description=str(obj.get("description", "")),
        pairing_code=obj.get("qrCode"),
        initial_battery=float(obj.get("initialBattery", 100.0)),
        paired_at=_str_to_dt(obj.get("pairedAt")),
    )


def reading_to_record(reading: Reading) -> Dict[str, Any]:
    return {
        "timestamp": _dt_to_str(reading.timestamp),
        "sensorId": reading.sensor_id,
        "temperature": reading.temperature,
        "moisture": reading.moisture,
        "battery": reading.battery,
    }


def reading_from_record(obj: Dict[str, Any]) -> Reading:
    return Reading(
        timestamp=_str_to_dt(str(obj["timestamp"])),  # type: ignore[arg-type]
        sensor_id=str(obj["sensorId"]),
        battery=float(obj["battery"]),
        temperature=_opt_float(obj.get("temperature")),
        moisture=_opt_float(obj.get("moisture")),
    )


def power_state_to_record(state: PowerState) -> Dict[str, Any]:
    return {
        "phase": state.phase.value,
        "phaseStartedAt": _dt_to_str(state.phase_started_at),
        "startLevel": state.start_level,
        "depletionRate": state.depletion_rate,
        "lastChargeAt": _dt_to_str(state.last_charge_at),
        "chargeHours": state.charge_hours,
        "chargingLevel": state.charging_level,
    }


def power_state_from_record(obj: Dict[str, Any]) -> PowerState:
    return PowerState(
        phase=PowerPhase(obj["phase"]),
        phase_started_at=_str_to_dt(str(obj["phaseStartedAt"])),  # type: ignore[arg-type]
        start_level=float(obj["startLevel"]),
        depletion_rate=float(obj["depletionRate"]),
        last_charge_at=_str_to_dt(str(obj["lastChargeAt"])),  # type: ignore[arg-type]
        charge_hours=_opt_float(obj.get("chargeHours")),
        charging_level=_opt_float(obj.get("chargingLevel")),
    )
