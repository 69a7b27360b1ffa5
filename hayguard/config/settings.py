from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List

from hayguard.domain.models import OptimalRange, Quantity, Sensor

T = Quantity.TEMPERATURE
M = Quantity.MOISTURE


@dataclass(frozen=True)
class Settings:
    """
    Central place for the demo fleet seeded into an empty registry.
    """

    def default_sensors(self, now: datetime) -> List[Sensor]:
        """
        Return the four paired sensors used when no registry snapshot is stored.

        Pairing dates are relative to ``now`` so a fresh install always shows
        several weeks of history.
        """
        return [
            Sensor(
                id="SENS-001",
                name="Barn A Temperature & Moisture",
                location="Barn A - Section 1",
                quantities=frozenset({T, M}),
                optimal_ranges={T: OptimalRange(0.0, 30.0), M: OptimalRange(12.0, 18.0)},
                bales_monitored=45,
                description="Main barn storage monitoring system",
                initial_battery=85.0,
                pairing_code="QR-BARN-A-001",
                created_at=now - timedelta(days=30),
                paired_at=now - timedelta(days=30),
            ),
            Sensor(
                id="SENS-002",
                name="Storage Unit C Climate Monitor",
                location="Storage Unit C",
                quantities=frozenset({T, M}),
                optimal_ranges={T: OptimalRange(0.0, 25.0), M: OptimalRange(10.0, 16.0)},
                bales_monitored=62,
                description="Secondary storage facility monitoring",
                initial_battery=45.0,
                pairing_code="QR-STORAGE-C-002",
                created_at=now - timedelta(days=25),
                paired_at=now - timedelta(days=25),
            ),
            Sensor(
                id="SENS-003",
                name="Greenhouse A Temperature",
                location="Greenhouse A - Zone 1",
                quantities=frozenset({T}),
                optimal_ranges={T: OptimalRange(18.0, 28.0)},
                bales_monitored=15,
                description="Greenhouse climate control system",
                initial_battery=92.0,
                pairing_code="QR-GREENHOUSE-A-003",
                created_at=now - timedelta(days=20),
                paired_at=now - timedelta(days=20),
            ),
            Sensor(
                id="SENS-004",
                name="Field B Moisture Monitor",
                location="Field B - Section 2",
                quantities=frozenset({M}),
                optimal_ranges={M: OptimalRange(40.0, 65.0)},
                bales_monitored=28,
                description="Field moisture monitoring for optimal storage",
                initial_battery=30.0,
                pairing_code="QR-FIELD-B-004",
                created_at=now - timedelta(days=15),
                paired_at=now - timedelta(days=15),
            ),
        ]
