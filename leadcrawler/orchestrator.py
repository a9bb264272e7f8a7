"""
Job Orchestrator
================
Runs one lead-collection job end to end.

Architecture:
- Two page sessions on the same relay: ``primary`` (producer lane) drives the
  source's search / listing, ``secondary`` (worker lane) extracts details.
  If the secondary cannot be opened the worker shares the primary.
- asyncio.Queue between the lanes, fed by collection passes capped at
  ``ceil(remaining * margin)`` units and deduplicated per job
- Connectivity failures in either lane rotate the relay once: the lane that
  saw the failure rotates, the other lane notices the epoch moved on and
  simply retries
- Pause / cancel are polled flags checked at every lane checkpoint
- ``AuthRequiredError`` parks the job in ``paused_for_auth`` until
  ``supply_credentials()`` is called or ``auth_timeout_s`` runs out
- Results are persisted exactly once, on the way into a terminal state,
  and only when there is something to persist

State machine::

    idle -> initializing -> running <-> paused
                               |  <-> paused_for_auth
                               v
                 completed | cancelled | failed
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
import uuid
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Set

from .auth import CookieStore, Credentials
from .errors import (
    AuthTimeout,
    ConnectivityError,
    ErrorKind,
    JobCancelled,
    LeadCrawlerError,
    OperationTimeout,
    PoolExhausted,
    classify_error,
)
from .events import LOG, PROGRESS, RESULT, SCREENSHOT, STATUS_CHANGE, EventBus
from .extractors.base import Extractor, LeadSource
from .models import JobConfig, JobOutcome, JobProgress, JobState, LogEntry, RelayCandidate, WorkUnit
from .monitor import ItemTiming, JobMonitor
from .providers import RelayProvider
from .relay_pool import ProbeFn, RelayPool
from .run_config import LeadRunConfig
from .session import PageSession, SessionFactory
from .storage import ResultStore

logger = logging.getLogger(__name__)

PRIMARY = "primary"
SECONDARY = "secondary"


class JobOrchestrator:
    """Drives one job through its state machine.

    A single instance runs once.  ``pause``, ``resume``, ``cancel`` and
    ``supply_credentials`` may be called from any coroutine on the same loop
    while ``run()`` is in progress.
    """

    def __init__(
        self,
        job: JobConfig,
        source: LeadSource,
        extractor: Extractor,
        session_factory: SessionFactory,
        *,
        providers: Optional[Iterable[RelayProvider]] = None,
        pool: Optional[RelayPool] = None,
        store: Optional[ResultStore] = None,
        run_config: Optional[LeadRunConfig] = None,
        bus: Optional[EventBus] = None,
        job_id: Optional[str] = None,
        probe: Optional[ProbeFn] = None,
        cookie_store: Optional[CookieStore] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            job:             Immutable job parameters.
            source:          Producer plug-in (search + collect).
            extractor:       Worker plug-in (one record per unit).
            session_factory: ``(relay, role) -> PageSession``.
            providers:       Relay providers; ignored when *pool* is given.
            pool:            Pre-built relay pool (tests inject one).
            store:           Where results land on the terminal transition.
            run_config:      Timeouts, retry budgets, delays.
            bus:             Event fan-out shared with the manager.
            probe:           Relay probe override for the pool.
            cookie_store:    Saved session cookies applied to new sessions.
        """
        self.job = job
        self.source = source
        self.extractor = extractor
        self.job_id = job_id or uuid.uuid4().hex[:12]
        self.config = run_config or LeadRunConfig.for_mode(job.mode)
        self.store = store
        self._factory = session_factory
        self._bus = bus or EventBus()
        self._pool = pool or RelayPool(
            providers or [],
            probe=probe,
            probe_timeout_s=self.config.probe_timeout_s,
            probe_target=self.config.probe_target,
            max_probes_per_acquire=self.config.max_probes_per_acquire,
        )
        if cookie_store is None and self.config.cookie_state_path:
            cookie_store = CookieStore(self.config.cookie_state_path)
        self._cookie_store = cookie_store
        self._rate = self.config.to_rate_controller(rng)
        self._monitor = JobMonitor(self.job_id, prior_s_per_item=self.config.eta_prior_s_per_item)

        self.progress = JobProgress(total=job.target)
        self._state = JobState.IDLE
        self._results: List[Dict[str, Any]] = []
        self._logs: List[LogEntry] = []
        self._processed: Set[str] = set()
        self._queue: Optional[asyncio.Queue] = None

        # Sessions and relay
        self._primary: Optional[PageSession] = None
        self._secondary: Optional[PageSession] = None
        self._relay: Optional[RelayCandidate] = None
        self._relay_mode_set = False
        self._epoch = 0
        self._search_epoch: Optional[int] = None
        self._rotation_lock = asyncio.Lock()

        # Control flags
        self._started = False
        self._paused = False
        self._cancelled = False
        self._producer_done = False
        self._worker_busy = False
        self._persisted = False
        self._save_failed = False
        self._location: Optional[str] = None
        self._error: Optional[str] = None

        # Authentication hand-off
        self._credentials: Optional[Credentials] = None
        self._credentials_event = asyncio.Event()
        self._auth_lock = asyncio.Lock()
        self._auth_epoch = 0

    # ── Read-only views ──────────────────────────────────────────

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def results(self) -> List[Dict[str, Any]]:
        return list(self._results)

    @property
    def logs(self) -> List[LogEntry]:
        return list(self._logs)

    @property
    def relay(self) -> Optional[RelayCandidate]:
        return self._relay

    @property
    def pool(self) -> RelayPool:
        return self._pool

    @property
    def location(self) -> Optional[str]:
        return self._location

    def outcome(self) -> JobOutcome:
        return JobOutcome(
            job_id=self.job_id,
            state=self._state,
            results=self.results,
            progress=self.progress.to_dict(),
            location=self._location,
            error=self._error,
        )

    # ── Control API ──────────────────────────────────────────────

    def pause(self) -> bool:
        if self._state.is_terminal or self._paused:
            return False
        self._paused = True
        if self._state == JobState.RUNNING:
            self._set_state(JobState.PAUSED)
        self._log("Pause requested")
        return True

    def resume(self) -> bool:
        if not self._paused:
            return False
        self._paused = False
        if self._state == JobState.PAUSED:
            self._set_state(JobState.RUNNING)
        self._log("Resumed")
        return True

    def cancel(self) -> bool:
        if self._state.is_terminal or self._cancelled:
            return False
        self._cancelled = True
        self._log("Cancellation requested")
        return True

    def supply_credentials(self, credentials: Credentials) -> None:
        """Hand credentials to a job parked in ``paused_for_auth``.

        Supplying them earlier is allowed; they are applied to every session
        opened from then on.
        """
        self._credentials = credentials
        self._credentials_event.set()
        self._log("Credentials supplied")

    def _is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def _target_met(self) -> bool:
        return self.progress.success_count >= self.job.target

    # ── Entry point ──────────────────────────────────────────────

    async def run(self) -> JobOutcome:
        if self._started:
            raise RuntimeError(f"job {self.job_id} has already run")
        self._started = True

        self.progress.reset(self.job.target)
        self._processed.clear()
        self._results.clear()
        self._log(
            f"Job started: target={self.job.target}, mode={self.job.mode}, "
            f"relay={'on' if self.job.use_relay else 'off'}, "
            f"investigate={'on' if self.job.investigate else 'off'}"
        )
        await self._monitor.start()

        final = JobState.COMPLETED
        interrupted: Optional[BaseException] = None
        try:
            self._set_state(JobState.INITIALIZING)
            await self._initialize()
            self._set_state(JobState.PAUSED if self._paused else JobState.RUNNING)
            self.extractor.bind_job(self._is_cancelled, self._log)
            await self._run_lanes()
            if self._cancelled:
                final = JobState.CANCELLED
        except JobCancelled:
            final = JobState.CANCELLED
        except asyncio.CancelledError as e:
            # The task itself was cancelled (manager shutdown); still persist
            self._cancelled = True
            final = JobState.CANCELLED
            interrupted = e
        except Exception as e:
            final = JobState.FAILED
            self._error = f"{type(e).__name__}: {e}"
            self._log(f"Job failed: {self._error}", logging.ERROR)

        await self._finalize(final)
        if interrupted is not None:
            raise interrupted
        return self.outcome()

    async def _finalize(self, final: JobState) -> None:
        self._sync_investigated()
        try:
            if self._results and not self._persisted:
                self._persisted = True
                self._location = self._persist()
                if self._save_failed and final == JobState.COMPLETED:
                    final = JobState.FAILED
        finally:
            await self._close_sessions()
            await self._monitor.stop(final.value)
        metrics = await self._monitor.snapshot()
        logger.info("\n" + self._monitor.format_summary(metrics))

        self.progress.message = (
            f"Job {final.value}: {self.progress.success_count}/{self.job.target} leads, "
            f"{self.progress.skipped_count} skipped, {self.progress.error_count} errors"
        )
        self._log(self.progress.message)
        self._emit_progress()
        self._set_state(final, self._error)

    def _persist(self) -> Optional[str]:
        if self.store is None:
            return None
        try:
            location = self.store.save_results(
                self.job_id,
                self.job.to_dict(),
                self.progress.to_dict(),
                [entry.to_dict() for entry in self._logs],
                self._results,
            )
        except Exception as e:
            self._save_failed = True
            reason = f"Could not save results: {type(e).__name__}: {e}"
            self._error = self._error or reason
            self._log(reason, logging.ERROR)
            return None
        if location:
            self._log(f"Results saved to {location}")
        return location

    # ── Initialization ───────────────────────────────────────────

    async def _initialize(self) -> None:
        relay = await self._acquire_relay()
        attempts = 0
        while True:
            self._check_cancel()
            try:
                await self._open_sessions(relay)
                break
            except Exception as e:
                kind = classify_error(e)
                if kind == ErrorKind.CANCELLED:
                    raise
                if relay is None or kind != ErrorKind.CONNECTIVITY:
                    raise
                attempts += 1
                self._pool.mark_failed(relay)
                self._log(
                    f"Relay {relay} could not open a session ({e}); "
                    f"attempt {attempts}/{self.config.init_attempts}",
                    logging.WARNING,
                )
                if attempts < self.config.init_attempts:
                    relay = await self._acquire_relay()
                    continue
                if not self.config.allow_direct:
                    raise PoolExhausted(
                        f"No relay could open a session after {attempts} attempts"
                    ) from e
                self._log("Relay attempts exhausted; falling back to direct mode", logging.WARNING)
                relay = None
        self._set_relay(relay)

    async def _acquire_relay(self) -> Optional[RelayCandidate]:
        if not self.job.use_relay:
            return None
        return await self._pool.acquire(allow_direct=self.config.allow_direct)

    def _set_relay(self, relay: Optional[RelayCandidate]) -> None:
        changed = not self._relay_mode_set or (relay is None) != (self._relay is None)
        self._relay = relay
        self._relay_mode_set = True
        if changed:
            self._rate.on_relay_mode(relay is not None)
        self._log(f"Using relay {relay}" if relay else "Running in direct mode")

    async def _open_sessions(self, relay: Optional[RelayCandidate]) -> None:
        primary = await self._factory(relay, PRIMARY)
        try:
            secondary = await self._factory(relay, SECONDARY)
        except Exception as e:
            if classify_error(e) in (ErrorKind.CONNECTIVITY, ErrorKind.CANCELLED):
                await primary.close()
                raise
            self._log(
                f"Worker session unavailable ({e}); sharing the producer session",
                logging.WARNING,
            )
            secondary = primary
        self._primary, self._secondary = primary, secondary

        cookies = self._session_cookies()
        if cookies:
            for session in self._distinct_sessions():
                await session.set_cookies(cookies)

    def _session_cookies(self) -> List[Dict[str, Any]]:
        if self._credentials is not None and self._credentials.has_cookies:
            return list(self._credentials.cookies)
        if self._cookie_store is not None:
            return self._cookie_store.load()
        return []

    def _distinct_sessions(self) -> List[PageSession]:
        sessions = []
        for session in (self._primary, self._secondary):
            if session is not None and session not in sessions:
                sessions.append(session)
        return sessions

    async def _close_sessions(self) -> None:
        for session in self._distinct_sessions():
            try:
                await session.close()
            except Exception as e:
                logger.debug(f"[JOB {self.job_id}] Session close error: {e}")
        self._primary = self._secondary = None

    def _session(self, role: str) -> PageSession:
        session = self._primary if role == PRIMARY else self._secondary
        if session is None:
            raise ConnectivityError("Session closed")
        return session

    # ── Relay rotation ───────────────────────────────────────────

    async def _rotate(self, seen_epoch: int, reason: str) -> None:
        """Replace the relay and reopen both sessions.

        Only the first lane to report a failure for a given epoch rotates;
        a lane arriving with a stale epoch returns at once and retries on
        the sessions the other lane already reopened.
        """
        async with self._rotation_lock:
            if seen_epoch != self._epoch:
                return
            self._check_cancel()
            self.progress.rotations += 1
            if self._relay is not None:
                self._pool.mark_failed(self._relay)
            self._log(f"Rotating relay ({reason})", logging.WARNING)
            await self._close_sessions()

            for attempt in range(1, self.config.max_rotation_attempts + 1):
                self._check_cancel()
                relay = await self._acquire_relay()
                try:
                    await self._open_sessions(relay)
                except Exception as e:
                    if classify_error(e) == ErrorKind.CANCELLED:
                        raise
                    if relay is None:
                        raise LeadCrawlerError(
                            f"Could not open a session in direct mode: {e}"
                        ) from e
                    self._pool.mark_failed(relay)
                    self._log(
                        f"Rotation attempt {attempt}/{self.config.max_rotation_attempts}: "
                        f"relay {relay} failed ({e})",
                        logging.WARNING,
                    )
                    continue
                self._set_relay(relay)
                self._epoch += 1
                return

            if not self.config.allow_direct:
                raise PoolExhausted(
                    f"No relay could be opened after {self.config.max_rotation_attempts} rotations"
                )
            self._log("Rotation attempts exhausted; falling back to direct mode", logging.WARNING)
            try:
                await self._open_sessions(None)
            except Exception as e:
                if classify_error(e) == ErrorKind.CANCELLED:
                    raise
                raise LeadCrawlerError(f"Could not open a session in direct mode: {e}") from e
            self._set_relay(None)
            self._epoch += 1

    # ── Checkpoints ──────────────────────────────────────────────

    def _check_cancel(self) -> None:
        if self._cancelled:
            raise JobCancelled(f"Job {self.job_id} cancelled")

    async def _checkpoint(self) -> None:
        """Cancel check, pause wait, and wait out an in-flight rotation."""
        self._check_cancel()
        while self._paused:
            await asyncio.sleep(self.config.poll_interval_s)
            self._check_cancel()
        if self._rotation_lock.locked():
            async with self._rotation_lock:
                pass
        self._check_cancel()

    async def _wait_if_paused(self) -> None:
        while self._paused and not self._cancelled:
            await asyncio.sleep(self.config.poll_interval_s)

    async def _bounded(self, coro, timeout_s: float, what: str):
        try:
            return await asyncio.wait_for(coro, timeout=timeout_s)
        except asyncio.TimeoutError as e:
            raise OperationTimeout(f"{what} exceeded {timeout_s:.0f}s") from e

    # ── Authentication ───────────────────────────────────────────

    async def _await_credentials(self, exc: BaseException, seen_epoch: int) -> None:
        async with self._auth_lock:
            if seen_epoch != self._auth_epoch:
                return
            timeout_s = self.config.auth_timeout_s
            self._credentials_event.clear()
            self._set_state(JobState.PAUSED_FOR_AUTH)
            self._log(
                f"Authentication required ({exc}); waiting up to {timeout_s:.0f}s for credentials",
                logging.WARNING,
            )
            deadline = time.monotonic() + timeout_s
            while not self._credentials_event.is_set():
                self._check_cancel()
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise AuthTimeout(f"No credentials supplied within {timeout_s:.0f}s")
                try:
                    await asyncio.wait_for(
                        self._credentials_event.wait(),
                        timeout=min(self.config.poll_interval_s, remaining),
                    )
                except asyncio.TimeoutError:
                    continue

            await self._apply_credentials()
            self._auth_epoch += 1
            self._set_state(JobState.PAUSED if self._paused else JobState.RUNNING)

    async def _apply_credentials(self) -> None:
        creds = self._credentials
        if creds is None or not creds.has_cookies:
            return
        for session in self._distinct_sessions():
            await session.set_cookies(creds.cookies)
        if self._cookie_store is not None:
            self._cookie_store.save(creds.cookies)
        self._log(f"Applied {len(creds.cookies)} cookies")

    # ── Lanes ────────────────────────────────────────────────────

    async def _run_lanes(self) -> None:
        self._queue = asyncio.Queue()
        self._producer_done = False
        lanes = [
            asyncio.create_task(self._producer_lane(), name=f"{self.job_id}-producer"),
            asyncio.create_task(self._worker_lane(), name=f"{self.job_id}-worker"),
        ]
        try:
            pending = set(lanes)
            while pending:
                done, pending = await asyncio.wait(
                    pending,
                    timeout=self.config.poll_interval_s,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                for task in done:
                    if not task.cancelled() and task.exception() is not None:
                        raise task.exception()
                self._check_cancel()
        finally:
            for task in lanes:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*lanes, return_exceptions=True)
            dropped = self._drain_queue()
            if dropped:
                self._log(f"{dropped} queued units left unprocessed")

    def _drain_queue(self) -> int:
        count = 0
        if self._queue is None:
            return count
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return count
            self._queue.task_done()
            count += 1

    # Producer

    async def _producer_lane(self) -> None:
        try:
            passes = 0
            while passes < self.config.max_collection_passes:
                await self._checkpoint()
                if self._target_met:
                    break
                passes += 1
                need = self.job.target - self.progress.success_count
                limit = max(0, math.ceil(round(need * self.config.margin, 6)) - self._queue.qsize())

                units = await self._collect(limit)
                added = self._enqueue(units, limit)
                self._emit_progress(f"Pass {passes}: {added} new items queued")
                self._log(f"[PRODUCER] Pass {passes}: {added} new units queued ({len(units)} collected)")
                if added == 0:
                    break

                await self._wait_for_drain()
                if self._target_met or self.source.exhausted:
                    break
                if passes < self.config.max_collection_passes:
                    self._log(
                        f"[PRODUCER] Short of target "
                        f"({self.progress.success_count}/{self.job.target}); collecting more"
                    )
        finally:
            self._producer_done = True
            self._log("[PRODUCER] Done")

    async def _collect(self, limit: int) -> List[WorkUnit]:
        attempts = 0
        while True:
            await self._checkpoint()
            epoch, auth_epoch = self._epoch, self._auth_epoch
            searching = self._search_epoch != epoch
            try:
                if searching:
                    await self._bounded(
                        self.source.search(self._session(PRIMARY), self.job),
                        self.config.search_timeout, "Search",
                    )
                    self._search_epoch = epoch
                    await self._screenshot("SEARCH_COMPLETE", PRIMARY)
                return list(await self._bounded(
                    self.source.collect(self._session(PRIMARY), self.job, limit),
                    self.config.search_timeout, "Collection",
                ))
            except Exception as e:
                attempts += 1
                budget = self.config.search_attempts if searching else self.config.collection_attempts
                await self._recover_producer(e, epoch, auth_epoch, attempts, budget)

    async def _recover_producer(
        self, exc: Exception, epoch: int, auth_epoch: int, attempts: int, budget: int,
    ) -> None:
        """Return to retry, raise to fail the job."""
        kind = classify_error(exc)
        if kind == ErrorKind.CANCELLED:
            raise exc
        if attempts >= budget:
            self._log(f"[PRODUCER] Giving up after {attempts} attempts: {exc}", logging.ERROR)
            raise exc
        self._log(
            f"[PRODUCER] Attempt {attempts}/{budget} failed ({kind.value}): {exc}",
            logging.WARNING,
        )
        await self._screenshot(f"PRODUCER_ERROR_{attempts}", PRIMARY)
        if kind == ErrorKind.CONNECTIVITY:
            self._rate.record_error()
            await self._rotate(epoch, str(exc))
            if self._relay is None:
                await self._rate.wait(self._is_cancelled)
        elif kind == ErrorKind.AUTH_REQUIRED:
            await self._await_credentials(exc, auth_epoch)
        else:
            await self._rate.wait(self._is_cancelled)

    def _enqueue(self, units: Iterable[WorkUnit], limit: int) -> int:
        added = 0
        for unit in units:
            if added >= limit or self._target_met:
                break
            if unit.dedup_key in self._processed:
                logger.debug(f"[PRODUCER] Duplicate skipped: {unit.dedup_key}")
                continue
            self._processed.add(unit.dedup_key)
            self._queue.put_nowait(unit)
            added += 1
        self.progress.queued += added
        return added

    async def _wait_for_drain(self) -> None:
        while not self._queue.empty() or self._worker_busy:
            if self._target_met:
                return
            await self._checkpoint()
            await asyncio.sleep(self.config.poll_interval_s)

    # Worker

    async def _worker_lane(self) -> None:
        while True:
            await self._checkpoint()
            if self._target_met:
                dropped = self._drain_queue()
                if dropped:
                    self._log(f"[WORKER] Target reached; dropping {dropped} queued units")
                break
            try:
                unit = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                if self._producer_done:
                    break
                await asyncio.sleep(self.config.poll_interval_s)
                continue

            self._worker_busy = True
            try:
                await self._process_unit(unit)
            finally:
                self._worker_busy = False
                self._queue.task_done()
            await self._monitor.update_queue_size(self._queue.qsize())
            if not self._target_met:
                await self._rate.wait(self._is_cancelled)
        self._log("[WORKER] Done")

    async def _process_unit(self, unit: WorkUnit) -> None:
        started = time.monotonic()
        while True:
            await self._checkpoint()
            epoch, auth_epoch = self._epoch, self._auth_epoch
            try:
                record = await self._extract(unit)
                break
            except Exception as e:
                kind = classify_error(e)
                if kind == ErrorKind.CANCELLED:
                    raise
                retryable = kind in (ErrorKind.CONNECTIVITY, ErrorKind.AUTH_REQUIRED)
                if retryable and unit.attempts < self.config.max_unit_retries:
                    unit = replace(unit, attempts=unit.attempts + 1)
                    self.progress.retried_count += 1
                    self._log(
                        f"[WORKER] {kind.value} on {unit.target}: {e}; "
                        f"retry {unit.attempts}/{self.config.max_unit_retries}",
                        logging.WARNING,
                    )
                    if kind == ErrorKind.CONNECTIVITY:
                        self._rate.record_error()
                        await self._rotate(epoch, str(e))
                        if self._relay is None:
                            await self._rate.wait(self._is_cancelled)
                    else:
                        await self._await_credentials(e, auth_epoch)
                    continue

                await self._wait_if_paused()
                self.progress.error_count += 1
                self.progress.current += 1
                self._log(f"[WORKER] Failed {unit.target} ({kind.value}): {e}", logging.WARNING)
                await self._screenshot(f"ERROR_{self.progress.error_count}", SECONDARY)
                await self._monitor.record_item(ItemTiming(
                    target=unit.target,
                    total_ms=(time.monotonic() - started) * 1000,
                    status="failed",
                ))
                self._emit_progress()
                return

        self._sync_investigated()
        total_ms = (time.monotonic() - started) * 1000
        investigate_ms = float(record.get("investigate_ms") or 0.0)
        missing = [f for f in self.job.required_fields if not record.get(f)]

        await self._wait_if_paused()
        if self._target_met:
            logger.debug(f"[WORKER] Target already met; dropping {unit.target}")
            return
        self.progress.current += 1
        if missing:
            self.progress.skipped_count += 1
            self._log(f"[WORKER] Skipped {unit.target}: missing {', '.join(missing)}")
            await self._monitor.record_item(ItemTiming(
                target=unit.target, total_ms=total_ms, status="skipped",
            ))
            self._emit_progress()
            return

        record = dict(record)
        record.setdefault("uid", unit.dedup_key)
        self._results.append(record)
        self.progress.success_count += 1
        self._rate.record_success()
        self._bus.emit(self.job_id, RESULT, record)
        self._log(
            f"[WORKER] Lead {self.progress.success_count}/{self.job.target}: "
            f"{record.get('name') or unit.target}"
        )
        await self._monitor.record_item(ItemTiming(
            target=unit.target,
            extract_ms=total_ms - investigate_ms,
            investigate_ms=investigate_ms,
            total_ms=total_ms,
        ))
        self._emit_progress()

    async def _extract(self, unit: WorkUnit) -> Dict[str, Any]:
        session = self._session(SECONDARY)
        if getattr(self.extractor, "handles_timeouts", False):
            return await self.extractor.extract(session, unit)
        return await self._bounded(
            self.extractor.extract(session, unit),
            self.config.extraction_timeout,
            f"Extraction of {unit.target}",
        )

    def _sync_investigated(self) -> None:
        count = getattr(self.extractor, "sites_investigated", None)
        if isinstance(count, int):
            self.progress.sites_investigated = count

    # ── Events ───────────────────────────────────────────────────

    def _log(self, message: str, level: int = logging.INFO) -> None:
        logger.log(level, f"[JOB {self.job_id}] {message}")
        entry = LogEntry.now(message)
        self._logs.append(entry)
        self._bus.emit(self.job_id, LOG, entry.to_dict())

    def _emit_progress(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.progress.message = message
        self.progress.eta_seconds = self._monitor.eta(self.progress.success_count, self.job.target)
        self._bus.emit(self.job_id, PROGRESS, self.progress.to_dict())

    def _set_state(self, state: JobState, error: Optional[str] = None) -> None:
        previous = self._state
        if previous == state:
            return
        self._state = state
        payload = {"state": state.value, "previous": previous.value}
        if error:
            payload["error"] = error
        logger.info(f"[JOB {self.job_id}] {previous.value} -> {state.value}")
        self._bus.emit(self.job_id, STATUS_CHANGE, payload)

    async def _screenshot(self, label: str, role: str) -> None:
        if not self.config.capture_screenshots:
            return
        session = self._primary if role == PRIMARY else self._secondary
        if session is None:
            return
        png = await session.screenshot()
        if png:
            self._bus.emit(self.job_id, SCREENSHOT, {"label": label, "role": role, "png": png})
