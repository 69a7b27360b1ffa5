"""
Stress tests for TelemetryEngine concurrency.

Generation passes, API reads and mutations run from several threads at once.
The engine serializes them with one re-entrant lock; these tests look for
iteration hazards and lost updates.

Notes
-----
Threading tests are probabilistic: they increase confidence but do not prove
the absence of races.
"""

from __future__ import annotations

import random
import threading
from datetime import datetime, timedelta
from typing import List

import pytest

from hayguard.core.config.yaml_config import AppConfig
from hayguard.domain.errors import NotFoundError
from hayguard.services.engine import TelemetryEngine
from hayguard.storage.kv_store import SqliteKVStore
from hayguard.storage.snapshot_writer import SnapshotWriter

BASE = datetime(2026, 3, 1, 12, 0, 0)


def _engine() -> TelemetryEngine:
    engine = TelemetryEngine(
        AppConfig(),
        SnapshotWriter(SqliteKVStore(":memory:")),
        rng=random.Random(3),
        clock=lambda: BASE,
    )
    engine.load_or_seed(BASE)
    return engine


@pytest.mark.stress
def test_concurrent_generation_and_reads_no_exceptions() -> None:
    engine = _engine()
    start = threading.Barrier(6)
    errors: List[BaseException] = []

    def generator(tid: int) -> None:
        try:
            start.wait()
            for k in range(30):
                engine.generate_now(BASE + timedelta(minutes=tid * 1000 + k * 35))
        except BaseException as e:
            errors.append(e)

    def reader() -> None:
        try:
            start.wait()
            for _ in range(100):
                for view in engine.list_sensors_with_current_data(BASE):
                    engine.downsample(engine.get_history(view.sensor_id, 30, BASE))
                engine.get_alerts(BASE)
        except BaseException as e:
            errors.append(e)

    threads = [threading.Thread(target=generator, args=(t,)) for t in range(3)]
    threads += [threading.Thread(target=reader) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60.0)

    assert errors == []
    assert all(not t.is_alive() for t in threads)


@pytest.mark.stress
def test_concurrent_add_pair_delete_keeps_ids_unique() -> None:
    """Parallel onboarding never hands out the same ID twice."""
    engine = _engine()
    start = threading.Barrier(5)
    errors: List[BaseException] = []
    paired: List[str] = []
    lock = threading.Lock()
    config = {
        "name": "Stack",
        "quantities": ["moisture"],
        "optimal_ranges": {"moisture": {"min": 12, "max": 18}},
    }

    def onboard() -> None:
        try:
            start.wait()
            for _ in range(10):
                temp = engine.add_sensor(config, BASE)
                sensor = engine.pair_sensor(temp.id, f"QR-{temp.id}", BASE)
                with lock:
                    paired.append(sensor.id)
        except BaseException as e:
            errors.append(e)

    def churn() -> None:
        try:
            start.wait()
            for k in range(50):
                engine.generate_now(BASE + timedelta(minutes=k))
                try:
                    engine.delete_sensor("SENS-001")
                except NotFoundError:
                    pass
        except BaseException as e:
            errors.append(e)

    threads = [threading.Thread(target=onboard) for _ in range(4)] + [threading.Thread(target=churn)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60.0)

    assert errors == []
    assert len(paired) == len(set(paired)) == 40
