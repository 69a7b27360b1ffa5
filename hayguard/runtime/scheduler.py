from __future__ import annotations

import logging
import random
import threading
import time
from typing import Callable, Optional

from hayguard.simulator.synthesizer import RandomSource

logger = logging.getLogger(__name__)


class GenerationScheduler:
    """
    Timer thread driving periodic generation passes.

    Responsibilities
    ----------------
    - Sleep until a randomized deadline in ``[min_interval_s, max_interval_s]``.
    - Call ``generate`` (normally ``TelemetryEngine.generate_now``) and re-arm
      with a fresh interval.

    Concurrency Model
    -----------------
    - One thread per scheduler; :meth:`start` is idempotent.
    - The loop waits on the stop event so :meth:`stop` wakes it immediately.
    - :meth:`generate_now` runs a pass on the caller's thread and leaves the
      armed deadline untouched.
    - Exceptions from ``generate`` are logged and never kill the thread.

    Parameters
    ----------
    generate
        Callable running one pass; returns the number of readings produced.
    min_interval_s, max_interval_s
        Bounds of the randomized interval.
    rng
        Random source for the intervals.
    stop_event
        Shared stop signal; a private one is created when None.
    """

    def __init__(
        self,
        generate: Callable[[], int],
        min_interval_s: float = 30 * 60.0,
        max_interval_s: float = 45 * 60.0,
        rng: Optional[RandomSource] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        if min_interval_s > max_interval_s:
            raise ValueError("min_interval_s must not exceed max_interval_s")
        self._generate = generate
        self._min = min_interval_s
        self._max = max_interval_s
        self._rng = rng or random.Random()
        self._stop = stop_event or threading.Event()
        self._deadline: Optional[float] = None
        self._deadline_lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, name="generation-scheduler", daemon=True)

    @property
    def deadline(self) -> Optional[float]:
        """Monotonic time of the next scheduled pass (None until armed)."""
        with self._deadline_lock:
            return self._deadline

    def next_interval(self) -> float:
        return self._min + self._rng.random() * (self._max - self._min)

    def start(self) -> None:
        """Start the timer thread if it is not already running."""
        if not self._thread.is_alive() and not self._stop.is_set():
            self._arm()
            self._thread.start()
            logger.info("generation scheduler started (%.0f-%.0fs)", self._min, self._max)

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = 2.0) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def generate_now(self) -> int:
        """Run one pass immediately; the armed deadline is not changed."""
        return self._generate()

    def _arm(self) -> None:
        with self._deadline_lock:
            self._deadline = time.monotonic() + self.next_interval()

    def _run(self) -> None:
        while not self._stop.is_set():
            deadline = self.deadline or time.monotonic()
            remaining = deadline - time.monotonic()
            if remaining > 0:
                self._stop.wait(timeout=remaining)
                continue

            try:
                produced = self._generate()
                logger.debug("scheduled pass produced %d readings", produced)
            except Exception:
                logger.exception("scheduled generation pass failed")
            self._arm()
