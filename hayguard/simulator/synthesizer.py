"""
Reading synthesizer.

Produces bounded, mean-reverting series for each monitored quantity. The step
logic lives in the pure function :func:`next_value`, which takes its random
draws as an argument; :class:`ReadingSynthesizer` only pulls draws from an
injected random source and remembers the previous value per sensor.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Protocol

from hayguard.core.config.yaml_config import SynthConfig
from hayguard.domain.models import OptimalRange, Quantity, Reading, Sensor


class RandomSource(Protocol):
    """Anything exposing ``random() -> float`` in [0, 1); ``random.Random`` qualifies."""

    def random(self) -> float:
        ...


@dataclass(frozen=True)
class StepDraws:
    """
    Uniform [0, 1) draws consumed by one call to :func:`next_value`.

    Parameters
    ----------
    bias
        Compared to the profile's in-range probability to pick the branch.
    direction
        Up/down choice when an in-range value is pushed out (< 0.5 moves up).
    magnitude
        Fraction of the allowed step actually taken.
    """

    bias: float
    direction: float
    magnitude: float

    @classmethod
    def draw(cls, rng: RandomSource) -> "StepDraws":
        return cls(bias=rng.random(), direction=rng.random(), magnitude=rng.random())


@dataclass(frozen=True)
class QuantityProfile:
    """
    Per-quantity walk parameters.

    Parameters
    ----------
    in_range_probability
        Probability that a step moves toward (or stays within) the optimal range.
    ceiling
        Physical upper bound, or None when unbounded.
    floor
        Physical lower bound.
    step_fraction
        Maximum step as a fraction of the previous value's magnitude.
    """

    in_range_probability: float
    ceiling: Optional[float] = None
    floor: float = 0.0
    step_fraction: float = 0.15


def default_profiles(cfg: SynthConfig) -> Dict[Quantity, QuantityProfile]:
    return {
        Quantity.TEMPERATURE: QuantityProfile(
            in_range_probability=cfg.temperature_in_range_probability,
            step_fraction=cfg.step_fraction,
        ),
        Quantity.MOISTURE: QuantityProfile(
            in_range_probability=cfg.moisture_in_range_probability,
            ceiling=100.0,
            step_fraction=cfg.step_fraction,
        ),
    }


def next_value(
    previous: Optional[float],
    optimal: OptimalRange,
    draws: StepDraws,
    profile: QuantityProfile,
) -> float:
    """
    Compute the next sample of a bounded random walk drifting toward ``optimal``.

    Parameters
    ----------
    previous
        Previous sample, or None for the first one.
    optimal
        Configured optimal range.
    draws
        Random draws for this step.
    profile
        Walk parameters for the quantity.

    Returns
    -------
    float
        Next value, clamped to the profile's physical bounds and rounded to one decimal.

    Notes
    -----
    With probability ``in_range_probability`` the walk moves back toward the
    range (full step) or wanders inside it (half-amplitude step, clamped to the
    range). Otherwise it makes an excursion: a full step in either direction
    from inside the range, or a half step further away from outside it.
    """
    if previous is None:
        value = optimal.midpoint + (draws.magnitude - 0.5) * optimal.span * 0.6
        return _clamp(value, profile)

    max_step = abs(previous * profile.step_fraction)
    step = draws.magnitude * max_step

    if draws.bias < profile.in_range_probability:
        if previous < optimal.min:
            value = previous + step
        elif previous > optimal.max:
            value = previous - step
        else:
            value = previous + (draws.magnitude - 0.5) * max_step * 0.5
            value = min(optimal.max, max(optimal.min, value))
    elif optimal.contains(previous):
        value = previous + step if draws.direction < 0.5 else previous - step
    elif previous > optimal.max:
        value = previous + step * 0.5
    else:
        value = previous - step * 0.5

    return _clamp(value, profile)


def _clamp(value: float, profile: QuantityProfile) -> float:
    value = max(profile.floor, value)
    if profile.ceiling is not None:
        value = min(profile.ceiling, value)
    return round(value, 1)


@dataclass
class ReadingSynthesizer:
    """
    Stateful wrapper around :func:`next_value`.

    Keeps the last emitted value per (sensor, quantity) so consecutive samples
    form one continuous series. Thread-safety is handled by the engine.

    Parameters
    ----------
    profiles
        Walk parameters per quantity.
    rng
        Random source; seeded ``random.Random`` by default.
    """

    profiles: Dict[Quantity, QuantityProfile]
    rng: RandomSource = field(default_factory=random.Random)

    _last: Dict[str, Dict[Quantity, float]] = field(default_factory=dict, init=False, repr=False)

    def last_values(self, sensor_id: str) -> Dict[Quantity, float]:
        """Previous value per quantity for ``sensor_id``. Test seam for the walk state."""
        return dict(self._last.get(sensor_id, {}))

    def remember(self, reading: Reading) -> None:
        """Continue the walk from an existing reading (e.g. after a restart)."""
        last = self._last.setdefault(reading.sensor_id, {})
        for q in Quantity:
            v = reading.value_of(q)
            if v is not None:
                last[q] = v

    def forget(self, sensor_id: str) -> None:
        self._last.pop(sensor_id, None)

    def sample(self, sensor: Sensor, battery: float, now: datetime) -> Reading:
        """
        Produce the next reading for every quantity the sensor monitors.

        Parameters
        ----------
        sensor
            Paired sensor with its optimal ranges.
        battery
            Battery level to stamp on the reading.
        now
            Capture time.
        """
        last = self._last.setdefault(sensor.id, {})
        values: Dict[Quantity, float] = {}
        # Sorted so the draw order (and thus seeded output) is stable.
        for q in sorted(sensor.quantities, key=lambda x: x.value):
            v = next_value(last.get(q), sensor.optimal_ranges[q], StepDraws.draw(self.rng), self.profiles[q])
            last[q] = v
            values[q] = v

        return Reading(
            timestamp=now,
            sensor_id=sensor.id,
            battery=float(round(battery)),
            temperature=values.get(Quantity.TEMPERATURE),
            moisture=values.get(Quantity.MOISTURE),
        )

    def backfill(
        self,
        sensor: Sensor,
        start: datetime,
        end: datetime,
        battery_at: Callable[[datetime], float],
        min_gap_minutes: float = 30.0,
        max_gap_minutes: float = 45.0,
    ) -> List[Reading]:
        """
        Generate a synthetic history between ``start`` and ``end``.

        Readings are spaced by random gaps in ``[min_gap_minutes, max_gap_minutes]``
        (about 38 per day with the defaults) and chain into the live series:
        the last backfilled values become the walk's previous values.

        Parameters
        ----------
        sensor
            Paired sensor to backfill.
        start, end
            Time window; an empty list is returned when ``start >= end``.
        battery_at
            Callable returning the reconstructed battery level at an instant.
        """
        out: List[Reading] = []
        self.forget(sensor.id)
        t = start
        while t <= end:
            out.append(self.sample(sensor, battery_at(t), t))
            gap = min_gap_minutes + self.rng.random() * (max_gap_minutes - min_gap_minutes)
            t = t + timedelta(minutes=gap)
        return out
