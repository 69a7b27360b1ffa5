from __future__ import annotations

import bisect
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from hayguard.domain.models import Quantity, Reading


@dataclass
class HistoryStore:
    """
    In-memory per-sensor time series with a rolling retention window.

    Each series is kept sorted by timestamp and never holds two readings with
    the same timestamp: appending at an existing timestamp replaces that entry
    ("last write wins").

    Notes
    -----
    - Thread-safety is not handled here; the enclosing ``TelemetryEngine`` is
      responsible for synchronization and persistence.
    - Eviction runs on every append, relative to the ``now`` of that append.

    Attributes
    ----------
    retention_days
        Width of the retention window.
    series
        Mapping from sensor ID -> ascending list of readings.
    """

    retention_days: int = 30
    series: Dict[str, List[Reading]] = field(default_factory=dict)

    def load(self, sensor_id: str, readings: Iterable[Reading]) -> None:
        """Replace the series of ``sensor_id`` with ``readings`` (sorted, de-duplicated)."""
        by_ts = {r.timestamp: r for r in readings}
        self.series[sensor_id] = [by_ts[ts] for ts in sorted(by_ts)]

    def append(self, sensor_id: str, reading: Reading, now: Optional[datetime] = None) -> None:
        """
        Insert ``reading`` in timestamp order, then evict expired entries.

        Parameters
        ----------
        sensor_id
            Series key.
        reading
            Reading to insert.
        now
            Reference time for eviction; defaults to the reading's timestamp.
        """
        s = self.series.setdefault(sensor_id, [])
        keys = [r.timestamp for r in s]
        i = bisect.bisect_left(keys, reading.timestamp)
        if i < len(s) and s[i].timestamp == reading.timestamp:
            s[i] = reading
        else:
            s.insert(i, reading)
        self.evict(sensor_id, now or reading.timestamp)

    def evict(self, sensor_id: str, now: datetime) -> int:
        """
        Drop readings older than ``now - retention_days``.

        Returns
        -------
        int
            Number of readings removed.
        """
        s = self.series.get(sensor_id)
        if not s:
            return 0
        cutoff = now - timedelta(days=self.retention_days)
        i = bisect.bisect_left([r.timestamp for r in s], cutoff)
        if i:
            del s[:i]
        return i

    def query(self, sensor_id: str, days: float, now: datetime) -> List[Reading]:
        """
        Return readings with ``timestamp >= now - days`` in ascending order.

        Unknown sensors yield an empty list. The result is a new list, so
        repeated calls return equal, independent sequences.
        """
        s = self.series.get(sensor_id, [])
        cutoff = now - timedelta(days=days)
        i = bisect.bisect_left([r.timestamp for r in s], cutoff)
        return list(s[i:])

    def latest(self, sensor_id: str) -> Optional[Reading]:
        s = self.series.get(sensor_id)
        return s[-1] if s else None

    def get_series(self, sensor_id: str) -> List[Reading]:
        return list(self.series.get(sensor_id, []))

    def drop(self, sensor_id: str) -> None:
        self.series.pop(sensor_id, None)


def _triangular_weights(n: int) -> List[float]:
    """
    Weights peaking at the chunk center and decaying linearly toward the edges.

    The decay reaches zero half a sample beyond each edge, so every sample in
    the chunk keeps a positive weight (a single-sample chunk has weight 1).
    """
    center = (n - 1) / 2.0
    half = (n + 1) / 2.0
    return [1.0 - abs(i - center) / half for i in range(n)]


def _weighted(values: Sequence[Optional[float]], weights: Sequence[float]) -> Optional[float]:
    pairs = [(v, w) for v, w in zip(values, weights) if v is not None]
    total = sum(w for _, w in pairs)
    if not pairs or total <= 0:
        return None
    return sum(v * w for v, w in pairs) / total


def downsample(series: Sequence[Reading], target_points: int) -> List[Reading]:
    """
    Reduce ``series`` to at most ``target_points`` readings for charting.

    Parameters
    ----------
    series
        Ascending readings of one sensor.
    target_points
        Maximum number of output points.

    Returns
    -------
    list of Reading
        ``series`` unchanged when it already fits; otherwise one reading per
        chunk of ``ceil(len / target_points)`` inputs, carrying the chunk's
        middle timestamp, triangular-weighted quantity averages and the first
        reading's battery level.
    """
    if target_points <= 0:
        raise ValueError("target_points must be positive")
    if len(series) <= target_points:
        return list(series)

    size = math.ceil(len(series) / target_points)
    out: List[Reading] = []
    for start in range(0, len(series), size):
        chunk = series[start:start + size]
        weights = _triangular_weights(len(chunk))
        out.append(
            Reading(
                timestamp=chunk[len(chunk) // 2].timestamp,
                sensor_id=chunk[0].sensor_id,
                battery=chunk[0].battery,
                temperature=_weighted([r.value_of(Quantity.TEMPERATURE) for r in chunk], weights),
                moisture=_weighted([r.value_of(Quantity.MOISTURE) for r in chunk], weights),
            )
        )
    return out
