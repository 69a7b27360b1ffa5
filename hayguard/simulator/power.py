from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from hayguard.core.config.yaml_config import PowerConfig
from hayguard.domain.errors import NotFoundError
from hayguard.domain.models import PowerPhase, PowerState
from hayguard.simulator.synthesizer import RandomSource

logger = logging.getLogger(__name__)

FULL_LEVEL = 100.0


def _hours(a: datetime, b: datetime) -> float:
    return (b - a).total_seconds() / 3600.0


@dataclass
class PowerStateMachine:
    """
    Per-sensor battery cycle: linear depletion, then a randomized charge window.

    State is advanced lazily. Nothing ticks in the background; every query
    recomputes the level from the stored phase start and the requested instant,
    committing phase transitions that have happened by then.

    Lifecycle
    ---------
    - DEPLETING: level = start_level - rate * hours since phase start
    - DEPLETING -> CHARGING at the instant the level reaches ``charge_threshold``;
      a charge window and a low display level in [min_level, charge_threshold)
      are drawn at that point
    - CHARGING -> DEPLETING once the window has elapsed; the level resets to
      exactly 100 at the observation time, which also becomes the last charge time

    Parameters
    ----------
    cfg
        Cycle constants.
    rng
        Random source for charge windows and charging display levels.
    """

    cfg: PowerConfig = field(default_factory=PowerConfig)
    rng: RandomSource = field(default_factory=random.Random)

    _states: Dict[str, PowerState] = field(default_factory=dict, init=False, repr=False)

    @property
    def depletion_rate(self) -> float:
        """Percent per hour."""
        return FULL_LEVEL / self.cfg.depletion_hours

    @property
    def deplete_hours(self) -> float:
        """Hours from a full battery to the charge threshold."""
        return (FULL_LEVEL - self.cfg.charge_threshold) / self.depletion_rate

    @property
    def cycle_hours(self) -> float:
        return self.deplete_hours + self.cfg.nominal_charge_hours

    # --------------------------
    # Registry of states
    # --------------------------
    def load(self, states: Dict[str, PowerState]) -> None:
        self._states = dict(states)

    def snapshot(self) -> Dict[str, PowerState]:
        return dict(self._states)

    def get(self, sensor_id: str) -> Optional[PowerState]:
        return self._states.get(sensor_id)

    def set(self, sensor_id: str, state: PowerState) -> None:
        """Install ``state`` as is. Test seam for starting from a known phase."""
        self._states[sensor_id] = state

    def drop(self, sensor_id: str) -> None:
        self._states.pop(sensor_id, None)

    def initialize(self, sensor_id: str, paired_at: datetime, initial_level: float, now: datetime) -> PowerState:
        """
        Create the live state for a freshly paired (or reloaded) sensor.

        The phase and level at ``now`` are reconstructed from the pairing time,
        so a sensor paired weeks ago starts mid-cycle.
        """
        phase, level = self.reconstruct(paired_at, initial_level, now)
        if phase is PowerPhase.CHARGING:
            state = self._enter_charging(now, last_charge_at=paired_at)
        else:
            state = PowerState(
                phase=PowerPhase.DEPLETING,
                phase_started_at=now,
                start_level=level,
                depletion_rate=self.depletion_rate,
                last_charge_at=paired_at,
            )
        self._states[sensor_id] = state
        return state

    # --------------------------
    # Lazy evaluation
    # --------------------------
    def advance(self, sensor_id: str, now: datetime) -> PowerState:
        """
        Commit every transition that has happened by ``now`` and return the state.

        Raises
        ------
        NotFoundError
            If the sensor has no power state.
        ValueError
            If the stored state is inconsistent (e.g. charging without a window).
        """
        state = self._states.get(sensor_id)
        if state is None:
            raise NotFoundError(f"no power state for {sensor_id!r}")

        new_state = self.step(state, now)
        if new_state is not state:
            if new_state.is_charging and not state.is_charging:
                logger.info(
                    "sensor %s started charging (%.0f%%, window %.1fh)",
                    sensor_id, new_state.charging_level, new_state.charge_hours,
                )
            elif state.is_charging and not new_state.is_charging:
                logger.info("sensor %s finished charging: 100%%", sensor_id)
            self._states[sensor_id] = new_state
        return new_state

    def step(self, state: PowerState, now: datetime) -> PowerState:
        """
        Return the state that applies at ``now`` starting from ``state``.

        Draws from the random source only when a charge phase is entered.
        """
        if state.phase is PowerPhase.DEPLETING:
            if self._depleting_level(state, now) > self.cfg.charge_threshold:
                return state
            over = max(0.0, state.start_level - self.cfg.charge_threshold)
            crossing_h = over / state.depletion_rate if state.depletion_rate > 0 else 0.0
            crossing = state.phase_started_at + timedelta(hours=crossing_h)
            state = self._enter_charging(crossing, last_charge_at=state.last_charge_at)

        if state.charge_hours is None or state.charging_level is None:
            raise ValueError("charging state without a drawn charge window")

        if _hours(state.phase_started_at, now) >= state.charge_hours:
            return PowerState(
                phase=PowerPhase.DEPLETING,
                phase_started_at=now,
                start_level=FULL_LEVEL,
                depletion_rate=state.depletion_rate,
                last_charge_at=now,
            )
        return state

    def level_at(self, state: PowerState, now: datetime) -> float:
        """Level reported for ``state`` at ``now``, clamped to [min_level, 100]."""
        if state.is_charging:
            if state.charging_level is None:
                raise ValueError("charging state without a display level")
            return state.charging_level
        return self._clamp(self._depleting_level(state, now))

    def current_level(self, sensor_id: str, now: datetime) -> float:
        """
        Battery level of ``sensor_id`` at ``now``.

        Idempotent: repeated calls with the same ``now`` return the same value.
        """
        return self.level_at(self.advance(sensor_id, now), now)

    # --------------------------
    # Historical reconstruction
    # --------------------------
    def reconstruct(self, paired_at: datetime, initial_level: float, at: datetime) -> Tuple[PowerPhase, float]:
        """
        Phase and level at a past instant, treating deplete + charge as one repeating cycle.

        One cycle is the time to deplete from 100 % to the charge threshold plus
        the nominal charge window. ``initial_level`` places the pairing instant
        inside the first cycle. Charging instants report a low level drawn in
        [min_level, charge_threshold).

        Parameters
        ----------
        paired_at
            Pairing time (cycle origin).
        initial_level
            Level at pairing.
        at
            Instant to reconstruct.
        """
        # A sensor paired at L% is (100 - L) / rate hours into a full cycle.
        offset = max(0.0, FULL_LEVEL - initial_level) / self.depletion_rate
        elapsed = max(0.0, _hours(paired_at, at)) + offset
        in_cycle = elapsed % self.cycle_hours

        if in_cycle < self.deplete_hours:
            return PowerPhase.DEPLETING, self._clamp(FULL_LEVEL - in_cycle * self.depletion_rate)
        return PowerPhase.CHARGING, self._draw_charging_level()

    # --------------------------
    # Helpers
    # --------------------------
    def _enter_charging(self, at: datetime, last_charge_at: datetime) -> PowerState:
        span = self.cfg.charge_hours_max - self.cfg.charge_hours_min
        return PowerState(
            phase=PowerPhase.CHARGING,
            phase_started_at=at,
            start_level=self.cfg.charge_threshold,
            depletion_rate=self.depletion_rate,
            last_charge_at=last_charge_at,
            charge_hours=self.cfg.charge_hours_min + self.rng.random() * span,
            charging_level=self._draw_charging_level(),
        )

    def _draw_charging_level(self) -> float:
        span = self.cfg.charge_threshold - self.cfg.min_level
        return self.cfg.min_level + self.rng.random() * span

    def _depleting_level(self, state: PowerState, now: datetime) -> float:
        return state.start_level - state.depletion_rate * max(0.0, _hours(state.phase_started_at, now))

    def _clamp(self, level: float) -> float:
        return max(self.cfg.min_level, min(FULL_LEVEL, level))
