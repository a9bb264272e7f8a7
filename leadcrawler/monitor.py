"""
Job Monitor
===========
Per-job throughput tracking and ETA estimation.

Tracks:
- Items per minute (rolling 60s window + overall)
- Per-item timing (extract, investigate)
- Queue size and peak
- Outcome counts (ok / skipped / failed)

ETA blends a fixed per-item prior with the observed average, weighted by
the completion ratio: early in a job the prior dominates (a couple of fast
or slow first items would otherwise swing the estimate wildly), near the
end the observed average does.

All mutating methods take an ``asyncio.Lock`` since both lanes report here.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

_ROLLING_WINDOW_SEC = 60.0
_REPORT_INTERVAL_SEC = 10.0

# Assumed seconds per lead before any has been observed
DEFAULT_PRIOR_S_PER_ITEM = 20.0


@dataclass
class ItemTiming:
    """Timing breakdown for a single work unit."""
    target: str = ""
    extract_ms: float = 0.0
    investigate_ms: float = 0.0
    total_ms: float = 0.0
    status: str = "ok"   # ok | skipped | failed


@dataclass
class JobMetrics:
    """Snapshot of one job's metrics."""
    items_ok: int = 0
    items_skipped: int = 0
    items_failed: int = 0
    items_per_min_rolling: float = 0.0
    items_per_min_overall: float = 0.0
    queue_size: int = 0
    queue_peak: int = 0
    avg_item_ms: float = 0.0
    avg_extract_ms: float = 0.0
    avg_investigate_ms: float = 0.0
    elapsed_sec: float = 0.0
    stop_reason: str = ""


def blended_eta(
    completed: int,
    total: int,
    elapsed_s: float,
    prior_s_per_item: float = DEFAULT_PRIOR_S_PER_ITEM,
) -> Optional[int]:
    """Seconds remaining, or None when *total* is unknown.

    ``per_item = (1 - w) * prior + w * observed`` with ``w = completed / total``.
    """
    if total <= 0:
        return None
    remaining = max(0, total - completed)
    if remaining == 0:
        return 0
    weight = min(1.0, completed / total)
    observed = elapsed_s / completed if completed > 0 else prior_s_per_item
    per_item = (1.0 - weight) * prior_s_per_item + weight * observed
    return int(math.ceil(per_item * remaining))


class JobMonitor:
    """
    Async-safe monitor for one job.

    Usage::

        monitor = JobMonitor(job_id)
        await monitor.start()
        await monitor.record_item(ItemTiming(target=url, total_ms=...))
        progress.eta_seconds = monitor.eta(progress.success_count, progress.total)
        await monitor.stop("completed")
    """

    def __init__(
        self,
        job_id: str = "",
        prior_s_per_item: float = DEFAULT_PRIOR_S_PER_ITEM,
        report_interval_s: float = _REPORT_INTERVAL_SEC,
    ):
        self.job_id = job_id
        self.prior_s_per_item = prior_s_per_item
        self.report_interval_s = report_interval_s
        self._lock = asyncio.Lock()
        self._start_time: float = 0.0

        self._ok = 0
        self._skipped = 0
        self._failed = 0
        self._queue_size = 0
        self._queue_peak = 0

        self._recent_timestamps: deque = deque()
        self._timings: deque = deque(maxlen=500)

        self._progress_callback: Optional[Callable[[JobMetrics], None]] = None
        self._reporter_task: Optional[asyncio.Task] = None
        self._running = False
        self._stop_reason = ""

    def set_progress_callback(self, callback: Callable[[JobMetrics], None]) -> None:
        self._progress_callback = callback

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._start_time if self._start_time else 0.0

    async def start(self) -> None:
        self._start_time = time.monotonic()
        self._running = True
        self._reporter_task = asyncio.create_task(self._reporter_loop())

    async def stop(self, reason: str = "completed") -> None:
        self._running = False
        self._stop_reason = reason
        if self._reporter_task:
            self._reporter_task.cancel()
            try:
                await self._reporter_task
            except asyncio.CancelledError:
                pass
            self._reporter_task = None

    async def record_item(self, timing: ItemTiming) -> None:
        now = time.monotonic()
        async with self._lock:
            if timing.status == "ok":
                self._ok += 1
                self._recent_timestamps.append(now)
            elif timing.status == "skipped":
                self._skipped += 1
            else:
                self._failed += 1
            self._timings.append(timing)
            self._prune(now)

    async def update_queue_size(self, size: int) -> None:
        async with self._lock:
            self._queue_size = size
            self._queue_peak = max(self._queue_peak, size)

    def eta(self, completed: int, total: int) -> Optional[int]:
        return blended_eta(completed, total, self.elapsed, self.prior_s_per_item)

    def _prune(self, now: float) -> None:
        cutoff = now - _ROLLING_WINDOW_SEC
        while self._recent_timestamps and self._recent_timestamps[0] < cutoff:
            self._recent_timestamps.popleft()

    async def snapshot(self) -> JobMetrics:
        now = time.monotonic()
        async with self._lock:
            self._prune(now)
            elapsed = self.elapsed
            rolling = len(self._recent_timestamps) * 60.0 / _ROLLING_WINDOW_SEC
            overall = self._ok * 60.0 / elapsed if elapsed > 0 else 0.0

            def _avg(values):
                values = [v for v in values if v > 0]
                return sum(values) / len(values) if values else 0.0

            return JobMetrics(
                items_ok=self._ok,
                items_skipped=self._skipped,
                items_failed=self._failed,
                items_per_min_rolling=round(rolling, 2),
                items_per_min_overall=round(overall, 2),
                queue_size=self._queue_size,
                queue_peak=self._queue_peak,
                avg_item_ms=round(_avg(t.total_ms for t in self._timings), 1),
                avg_extract_ms=round(_avg(t.extract_ms for t in self._timings), 1),
                avg_investigate_ms=round(_avg(t.investigate_ms for t in self._timings), 1),
                elapsed_sec=round(elapsed, 2),
                stop_reason=self._stop_reason,
            )

    async def _reporter_loop(self) -> None:
        """Periodically log metrics."""
        while self._running:
            await asyncio.sleep(self.report_interval_s)
            if not self._running:
                break
            try:
                m = await self.snapshot()
                logger.info(
                    f"[MONITOR] job={self.job_id} "
                    f"ok={m.items_ok} skip={m.items_skipped} fail={m.items_failed} "
                    f"queue={m.queue_size} "
                    f"speed={m.items_per_min_rolling:.1f}/min (rolling) "
                    f"{m.items_per_min_overall:.1f}/min (overall) "
                    f"avg={m.avg_item_ms:.0f}ms elapsed={m.elapsed_sec:.0f}s"
                )
                if self._progress_callback:
                    try:
                        self._progress_callback(m)
                    except Exception as e:
                        logger.debug(f"[MONITOR] Progress callback error: {e}")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.debug(f"[MONITOR] Reporter error: {e}")

    def format_summary(self, metrics: JobMetrics) -> str:
        lines = [
            "=" * 60,
            f"  JOB SUMMARY {self.job_id}",
            "=" * 60,
            f"  Leads extracted:     {metrics.items_ok}",
            f"  Leads skipped:       {metrics.items_skipped} (missing required fields)",
            f"  Leads failed:        {metrics.items_failed}",
            "-" * 60,
            f"  Overall speed:       {metrics.items_per_min_overall:.2f} leads/min",
            f"  Avg lead time:       {metrics.avg_item_ms:.0f} ms",
            f"  Avg extract time:    {metrics.avg_extract_ms:.0f} ms",
            f"  Avg investigate:     {metrics.avg_investigate_ms:.0f} ms",
            f"  Queue peak:          {metrics.queue_peak}",
            "-" * 60,
            f"  Elapsed time:        {metrics.elapsed_sec:.1f} s",
            f"  Stop reason:         {metrics.stop_reason}",
            "=" * 60,
        ]
        return "\n".join(lines)
