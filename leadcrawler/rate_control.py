"""
Adaptive Rate Control
=====================
Inter-request delay policy for one job.

- Relay mode starts at the floor; direct mode starts at the mode's
  ``direct_start`` (no relay means the target sees our own address, so we
  go slower from the first request).
- Every wait adds a uniform random jitter.
- A run of ``success_streak`` successes decays the delay toward the floor.
- A connectivity error multiplies the delay toward the ceiling.

The effective delay (jitter included) is always clamped to
``[floor, ceiling]``.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RateController:
    """Adaptive delay with floor/ceiling, jitter, decay and increase."""

    def __init__(
        self,
        floor: float = 1.0,
        ceiling: float = 90.0,
        direct_start: float = 5.0,
        jitter: float = 1.0,
        success_streak: int = 5,
        decay_factor: float = 0.8,
        increase_factor: float = 2.0,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            floor:           Minimum delay in seconds.
            ceiling:         Maximum delay in seconds.
            direct_start:    Initial delay when running without a relay.
            jitter:          Upper bound of the uniform random addend.
            success_streak:  Consecutive successes before one decay step.
            decay_factor:    Multiplier applied on decay (< 1).
            increase_factor: Multiplier applied on a connectivity error (> 1).
        """
        if ceiling < floor:
            raise ValueError("ceiling must be >= floor")
        self.floor = float(floor)
        self.ceiling = float(ceiling)
        self.direct_start = float(direct_start)
        self.jitter = max(0.0, float(jitter))
        self.success_streak = max(1, int(success_streak))
        self.decay_factor = decay_factor
        self.increase_factor = increase_factor
        self._rng = rng or random.Random()

        self.using_relay = True
        self.current = self.floor
        self.consecutive_errors = 0
        self._successes = 0

    def _clamp(self, value: float) -> float:
        return min(self.ceiling, max(self.floor, value))

    def on_relay_mode(self, using_relay: bool) -> None:
        """Reset the base delay when switching between relay and direct mode."""
        self.using_relay = using_relay
        self.current = self.floor if using_relay else self._clamp(self.direct_start)
        self._successes = 0
        self.consecutive_errors = 0
        logger.debug(
            f"[RATE] {'relay' if using_relay else 'direct'} mode, base delay {self.current:.2f}s"
        )

    def record_success(self) -> None:
        self.consecutive_errors = 0
        self._successes += 1
        if self._successes >= self.success_streak:
            self._successes = 0
            previous = self.current
            self.current = self._clamp(self.current * self.decay_factor)
            if self.current != previous:
                logger.debug(f"[RATE] Decay {previous:.2f}s -> {self.current:.2f}s")

    def record_error(self) -> None:
        """Connectivity-class error: push the delay toward the ceiling."""
        self._successes = 0
        self.consecutive_errors += 1
        base = self.current if self.current > 0 else max(self.direct_start, 1.0)
        previous = self.current
        self.current = self._clamp(base * self.increase_factor)
        logger.debug(f"[RATE] Increase {previous:.2f}s -> {self.current:.2f}s")

    def next_delay(self) -> float:
        """Current delay plus jitter, clamped."""
        addend = self._rng.uniform(0.0, self.jitter) if self.jitter else 0.0
        return self._clamp(self.current + addend)

    async def wait(
        self,
        should_abort: Optional[Callable[[], bool]] = None,
        slice_s: float = 0.25,
    ) -> float:
        """Sleep for ``next_delay()`` seconds.

        Sleeps in short slices so a long backoff can be interrupted by the
        ``should_abort`` predicate (the job's cancel flag).
        """
        delay = self.next_delay()
        remaining = delay
        while remaining > 0:
            if should_abort and should_abort():
                break
            step = min(slice_s, remaining)
            await asyncio.sleep(step)
            remaining -= step
        return delay
