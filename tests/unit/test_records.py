"""
Unit tests for hayguard.storage.records (JSON record codecs).
"""

from __future__ import annotations

from datetime import datetime

import pytest

from hayguard.domain.models import OptimalRange, PowerPhase, PowerState, Quantity, Reading, Sensor
from hayguard.storage.records import (
    power_state_from_record,
    power_state_to_record,
    reading_from_record,
    reading_to_record,
    sensor_from_record,
    sensor_to_record,
)

TS = datetime(2026, 3, 1, 12, 0, 0)


def test_sensor_record_uses_camel_case_and_restores_sensor() -> None:
    sensor = Sensor(
        id="SENS-001",
        name="Barn A",
        quantities=frozenset({Quantity.MOISTURE, Quantity.TEMPERATURE}),
        optimal_ranges={Quantity.TEMPERATURE: OptimalRange(0.0, 30.0), Quantity.MOISTURE: OptimalRange(12.0, 18.0)},
        created_at=TS,
        bales_monitored=45,
        pairing_code="QR-BARN-A-001",
        initial_battery=85.0,
        paired_at=TS,
    )

    record = sensor_to_record(sensor)

    assert record["quantities"] == ["moisture", "temperature"]
    assert record["optimalRanges"]["moisture"] == {"min": 12.0, "max": 18.0}
    assert record["qrCode"] == "QR-BARN-A-001"
    assert record["pairedAt"] == "2026-03-01T12:00:00"
    assert sensor_from_record(record) == sensor


def test_unpaired_sensor_record_has_null_pairing_fields() -> None:
    sensor = Sensor(
        id="TEMP-001",
        name="New",
        quantities=frozenset({Quantity.TEMPERATURE}),
        optimal_ranges={Quantity.TEMPERATURE: OptimalRange(18.0, 25.0)},
        created_at=TS,
    )
    record = sensor_to_record(sensor)
    assert record["qrCode"] is None and record["pairedAt"] is None
    assert sensor_from_record(record) == sensor


def test_sensor_record_with_unknown_quantity_is_rejected() -> None:
    record = {"id": "SENS-001", "quantities": ["humidity"], "createdAt": TS.isoformat()}
    with pytest.raises(ValueError):
        sensor_from_record(record)


def test_reading_and_power_state_records() -> None:
    reading = Reading(timestamp=TS, sensor_id="SENS-003", battery=92.0, temperature=22.4)
    state = PowerState(
        phase=PowerPhase.CHARGING,
        phase_started_at=TS,
        start_level=6.0,
        depletion_rate=100.0 / 240.0,
        last_charge_at=TS,
        charge_hours=5.5,
        charging_level=3.2,
    )

    assert reading_to_record(reading)["moisture"] is None
    assert reading_from_record(reading_to_record(reading)) == reading
    assert power_state_to_record(state)["phase"] == "charging"
    assert power_state_from_record(power_state_to_record(state)) == state
