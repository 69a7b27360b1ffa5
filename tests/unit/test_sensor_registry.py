"""
Unit tests for hayguard.core.config.sensor_registry.SensorRegistry.

Covers temporary/permanent ID allocation, pairing, all-or-nothing updates and
removal.
"""

from __future__ import annotations

from datetime import datetime

import pytest

from hayguard.core.config.sensor_registry import SensorDraft, SensorRegistry
from hayguard.domain.errors import AlreadyPairedError, InvalidConfigError, NotFoundError
from hayguard.domain.models import OptimalRange, Quantity, Sensor

NOW = datetime(2026, 3, 1, 12, 0, 0)


def _draft(name: str = "Barn C", lo: float = 18.0, hi: float = 25.0) -> SensorDraft:
    return SensorDraft(
        name=name,
        quantities=["temperature"],
        optimal_ranges={"temperature": {"min": lo, "max": hi}},
        bales_monitored=10,
    )


def _paired(sensor_id: str) -> Sensor:
    return Sensor(
        id=sensor_id,
        name=sensor_id,
        quantities=frozenset({Quantity.MOISTURE}),
        optimal_ranges={Quantity.MOISTURE: OptimalRange(10.0, 16.0)},
        created_at=NOW,
        pairing_code=f"QR-{sensor_id}",
        paired_at=NOW,
    )


def test_add_assigns_sequential_temporary_ids() -> None:
    """Each add gets the next TEMP-NNN and bumps the counter."""
    reg = SensorRegistry()

    a = reg.add(_draft("A"), NOW)
    b = reg.add(_draft("B"), NOW)

    assert (a.id, b.id) == ("TEMP-001", "TEMP-002")
    assert not a.is_paired
    assert reg.next_temp_number == 3
    assert a.optimal_ranges[Quantity.TEMPERATURE] == OptimalRange(18.0, 25.0)


def test_add_rejects_inverted_range_without_side_effects() -> None:
    """min >= max is invalid; nothing is registered and the counter is unchanged."""
    reg = SensorRegistry()

    with pytest.raises(InvalidConfigError):
        reg.add(_draft(lo=25.0, hi=25.0), NOW)

    assert reg.all() == []
    assert reg.next_temp_number == 1


def test_add_requires_a_range_per_quantity() -> None:
    """Every monitored quantity needs an optimal range."""
    reg = SensorRegistry()
    draft = SensorDraft(
        name="X",
        quantities=["temperature", "moisture"],
        optimal_ranges={"temperature": (0, 30)},
    )
    with pytest.raises(InvalidConfigError):
        reg.add(draft, NOW)


def test_pair_allocates_next_permanent_id() -> None:
    """Pairing TEMP-001 with three paired sensors present yields SENS-004."""
    reg = SensorRegistry()
    reg.load([_paired("SENS-001"), _paired("SENS-002"), _paired("SENS-003")])
    reg.add(_draft(), NOW)

    previous, paired = reg.pair("TEMP-001", "QR-X", NOW)

    assert previous.id == "TEMP-001"
    assert paired.id == "SENS-004"
    assert paired.pairing_code == "QR-X"
    assert paired.initial_battery == 100.0
    assert paired.paired_at == NOW
    assert reg.find("TEMP-001") is None
    assert [s.id for s in reg.all()] == ["SENS-001", "SENS-002", "SENS-003", "SENS-004"]


def test_pair_errors() -> None:
    """Unknown IDs raise NotFoundError, paired ones AlreadyPairedError."""
    reg = SensorRegistry()
    reg.load([_paired("SENS-001")])

    with pytest.raises(NotFoundError):
        reg.pair("TEMP-404", "QR", NOW)
    with pytest.raises(AlreadyPairedError):
        reg.pair("SENS-001", "QR", NOW)


def test_restore_undoes_pairing() -> None:
    """restore() puts the temporary record back in place."""
    reg = SensorRegistry()
    reg.add(_draft(), NOW)
    previous, paired = reg.pair("TEMP-001", "QR-X", NOW)

    reg.restore(paired.id, previous)

    assert reg.find(paired.id) is None
    assert reg.get("TEMP-001") == previous


def test_update_merges_patch() -> None:
    """Patchable fields are merged; ranges for dropped quantities go away."""
    reg = SensorRegistry()
    s = reg.add(
        SensorDraft(
            name="Barn",
            quantities=["temperature", "moisture"],
            optimal_ranges={"temperature": (0, 30), "moisture": (12, 18)},
        ),
        NOW,
    )

    updated = reg.update(
        s.id,
        {"name": "Barn 2", "quantities": ["moisture"], "optimal_ranges": {"moisture": {"min": 10, "max": 16}}},
    )

    assert updated.name == "Barn 2"
    assert updated.quantities == frozenset({Quantity.MOISTURE})
    assert updated.optimal_ranges == {Quantity.MOISTURE: OptimalRange(10.0, 16.0)}


def test_update_is_all_or_nothing() -> None:
    """A patch with one invalid part leaves the sensor untouched."""
    reg = SensorRegistry()
    s = reg.add(_draft(), NOW)

    with pytest.raises(InvalidConfigError):
        reg.update(s.id, {"name": "renamed", "optimal_ranges": {"temperature": (30, 20)}})
    with pytest.raises(InvalidConfigError):
        reg.update(s.id, {"id": "SENS-999"})
    with pytest.raises(InvalidConfigError):
        reg.update(s.id, {"bales_monitored": "many"})

    assert reg.get(s.id) == s


def test_update_and_remove_unknown_sensor() -> None:
    """Unknown IDs raise NotFoundError."""
    reg = SensorRegistry()
    with pytest.raises(NotFoundError):
        reg.update("SENS-404", {"name": "x"})
    with pytest.raises(NotFoundError):
        reg.remove("SENS-404")
