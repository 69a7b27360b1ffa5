"""
Unit tests for hayguard.simulator.power.PowerStateMachine.

Randomness is injected through a fixed sequence so charge windows and
charging display levels are deterministic.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List

import pytest

from hayguard.core.config.yaml_config import PowerConfig
from hayguard.domain.errors import NotFoundError
from hayguard.domain.models import PowerPhase, PowerState
from hayguard.simulator.power import PowerStateMachine

T0 = datetime(2026, 3, 1, 0, 0, 0)
RATE = 100.0 / 240.0


class FixedRandom:
    """Random source replaying ``values`` in a loop."""

    def __init__(self, values: List[float]):
        self._values = values
        self._i = 0

    def random(self) -> float:
        v = self._values[self._i % len(self._values)]
        self._i += 1
        return v


def _machine(*values: float) -> PowerStateMachine:
    return PowerStateMachine(cfg=PowerConfig(), rng=FixedRandom(list(values) or [0.5]))


def _depleting(start_level: float, at: datetime = T0) -> PowerState:
    return PowerState(
        phase=PowerPhase.DEPLETING,
        phase_started_at=at,
        start_level=start_level,
        depletion_rate=RATE,
        last_charge_at=at,
    )


def test_linear_depletion_and_idempotent_reads() -> None:
    """Level drops 100/240 % per hour; equal ``now`` gives equal level."""
    pm = _machine()
    pm.initialize("S", paired_at=T0, initial_level=100.0, now=T0)
    now = T0 + timedelta(hours=10)

    first = pm.current_level("S", now)
    second = pm.current_level("S", now)

    assert first == pytest.approx(100.0 - 10 * RATE)
    assert first == second
    assert not pm.advance("S", now).is_charging


def test_threshold_crossing_enters_charging_at_crossing_instant() -> None:
    """From 10 %, the 6 % threshold is reached after 9.6 h."""
    pm = _machine(0.5, 0.5)
    pm.set("S", _depleting(10.0))

    state = pm.advance("S", T0 + timedelta(hours=10))

    assert state.phase is PowerPhase.CHARGING
    assert state.phase_started_at == T0 + timedelta(hours=9.6)
    assert state.charge_hours == pytest.approx(6.0)
    assert state.charging_level == pytest.approx(4.0)
    assert pm.current_level("S", T0 + timedelta(hours=10)) == pytest.approx(4.0)


def test_charging_level_stays_in_low_band() -> None:
    """Charging display level is drawn in [2, 6)."""
    pm = _machine(0.999, 0.999)
    pm.set("S", _depleting(6.5))

    state = pm.advance("S", T0 + timedelta(hours=2))

    assert state.is_charging
    assert 2.0 <= state.charging_level < 6.0


def test_charge_window_elapsed_resets_to_full() -> None:
    """4 % charging for 6.5 h with a 6 h window -> 100 % and depleting."""
    pm = _machine()
    pm.set(
        "S",
        PowerState(
            phase=PowerPhase.CHARGING,
            phase_started_at=T0,
            start_level=6.0,
            depletion_rate=RATE,
            last_charge_at=T0 - timedelta(days=10),
            charge_hours=6.0,
            charging_level=4.0,
        ),
    )
    now = T0 + timedelta(hours=6.5)

    assert pm.current_level("S", now) == 100.0
    assert not pm.advance("S", now).is_charging
    state = pm.get("S")
    assert state is not None
    assert state.last_charge_at == now
    assert state.phase_started_at == now


def test_charging_state_without_window_is_rejected() -> None:
    """A charging state missing its drawn window is reported as corrupt."""
    pm = _machine()
    pm.set(
        "S",
        PowerState(
            phase=PowerPhase.CHARGING,
            phase_started_at=T0,
            start_level=6.0,
            depletion_rate=RATE,
            last_charge_at=T0,
        ),
    )
    with pytest.raises(ValueError):
        pm.advance("S", T0 + timedelta(hours=1))


def test_unknown_sensor_raises_not_found() -> None:
    """Sensors without a state are not silently created."""
    with pytest.raises(NotFoundError):
        _machine().current_level("missing", T0)


def test_level_is_clamped_to_minimum() -> None:
    """Reported level never drops below min_level."""
    pm = _machine()
    assert pm.level_at(_depleting(3.0), T0 + timedelta(hours=10)) == 2.0


def test_reconstruct_places_initial_level_inside_cycle() -> None:
    """Reconstruction is anchored on the pairing level and repeats every cycle."""
    pm = _machine(0.5)

    assert pm.reconstruct(T0, 100.0, T0) == (PowerPhase.DEPLETING, 100.0)
    phase, level = pm.reconstruct(T0, 50.0, T0)
    assert phase is PowerPhase.DEPLETING and level == pytest.approx(50.0)

    phase, level = pm.reconstruct(T0, 100.0, T0 + timedelta(hours=10))
    assert phase is PowerPhase.DEPLETING and level == pytest.approx(100.0 - 10 * RATE)

    phase, level = pm.reconstruct(T0, 100.0, T0 + timedelta(hours=pm.deplete_hours + 1))
    assert phase is PowerPhase.CHARGING and 2.0 <= level < 6.0

    phase, level = pm.reconstruct(T0, 100.0, T0 + timedelta(hours=pm.cycle_hours + 1))
    assert phase is PowerPhase.DEPLETING and level == pytest.approx(100.0 - RATE)


def test_initialize_mid_charge_starts_charging_now() -> None:
    """A sensor whose reconstructed phase is charging starts a fresh window."""
    pm = _machine(0.5)
    now = T0 + timedelta(hours=pm.deplete_hours + 1)

    state = pm.initialize("S", paired_at=T0, initial_level=100.0, now=now)

    assert state.is_charging
    assert state.phase_started_at == now
    assert state.last_charge_at == T0
