"""
Unit tests for hayguard.runtime.scheduler.GenerationScheduler.

Intervals are shrunk to milliseconds so the timer loop can be observed.
"""

from __future__ import annotations

import threading
import time

import pytest

from hayguard.runtime.scheduler import GenerationScheduler


class CountingGenerator:
    """Callable counting passes; optionally raises on the first one."""

    def __init__(self, fail_first: bool = False) -> None:
        self.calls = 0
        self.fail_first = fail_first
        self.reached = threading.Event()
        self.target = 2

    def __call__(self) -> int:
        self.calls += 1
        if self.calls >= self.target:
            self.reached.set()
        if self.fail_first and self.calls == 1:
            raise RuntimeError("boom")
        return 4


def test_runs_passes_on_randomized_interval() -> None:
    gen = CountingGenerator()
    sched = GenerationScheduler(gen, min_interval_s=0.01, max_interval_s=0.03)
    sched.start()
    try:
        assert gen.reached.wait(2.0)
    finally:
        sched.stop()
        sched.join()


def test_next_interval_within_bounds() -> None:
    sched = GenerationScheduler(lambda: 0, min_interval_s=1800, max_interval_s=2700)
    for _ in range(200):
        assert 1800 <= sched.next_interval() <= 2700


def test_failed_pass_does_not_kill_thread() -> None:
    gen = CountingGenerator(fail_first=True)
    sched = GenerationScheduler(gen, min_interval_s=0.01, max_interval_s=0.01)
    sched.start()
    try:
        assert gen.reached.wait(2.0)
    finally:
        sched.stop()
        sched.join()


def test_generate_now_keeps_deadline_and_start_is_idempotent() -> None:
    gen = CountingGenerator()
    sched = GenerationScheduler(gen, min_interval_s=60, max_interval_s=60)
    sched.start()
    sched.start()
    try:
        deadline = sched.deadline
        assert sched.generate_now() == 4
        assert sched.deadline == deadline
        assert gen.calls == 1
    finally:
        sched.stop()
        sched.join()


def test_stop_wakes_sleeping_thread() -> None:
    sched = GenerationScheduler(lambda: 0, min_interval_s=60, max_interval_s=60)
    sched.start()
    t0 = time.monotonic()
    sched.stop()
    sched.join(timeout=2.0)
    assert time.monotonic() - t0 < 2.0


def test_rejects_inverted_bounds() -> None:
    with pytest.raises(ValueError):
        GenerationScheduler(lambda: 0, min_interval_s=10, max_interval_s=5)
