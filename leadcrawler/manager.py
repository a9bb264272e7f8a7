"""
Job Manager
===========
Keeps up to ``max_concurrent`` jobs running side by side on one event loop.

Each submitted job gets its own ``JobOrchestrator`` and therefore its own
relay pool and session pair; nothing is shared between jobs except the
stateless relay providers, the result store and the event bus.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from .auth import Credentials
from .errors import JobLimitReached
from .events import EventBus, Observer
from .extractors.base import Extractor, LeadSource
from .models import JobConfig, JobOutcome
from .orchestrator import JobOrchestrator
from .providers import RelayProvider
from .relay_pool import ProbeFn
from .run_config import LeadRunConfig
from .session import SessionFactory
from .storage import ResultStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 3


class JobManager:
    """Submits, tracks and controls jobs.

    Must be used from inside a running event loop: ``submit`` schedules the
    job as an ``asyncio.Task`` and returns immediately.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        providers: Optional[Iterable[RelayProvider]] = None,
        store: Optional[ResultStore] = None,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        observers: Optional[Iterable[Observer]] = None,
        run_config: Optional[LeadRunConfig] = None,
        probe: Optional[ProbeFn] = None,
    ):
        self.session_factory = session_factory
        self.providers = list(providers or [])
        self.store = store
        self.max_concurrent = max(1, max_concurrent)
        self.bus = EventBus(observers)
        self.run_config = run_config
        self._probe = probe

        self._jobs: Dict[str, JobOrchestrator] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._finished: Dict[str, JobOutcome] = {}

    # ── Submission ───────────────────────────────────────────────

    def submit(
        self,
        job: JobConfig,
        source: LeadSource,
        extractor: Extractor,
        run_config: Optional[LeadRunConfig] = None,
        job_id: Optional[str] = None,
    ) -> str:
        """Start *job* and return its id.

        Raises:
            JobLimitReached: ``max_concurrent`` jobs are already running.
        """
        if len(self._jobs) >= self.max_concurrent:
            raise JobLimitReached(
                f"{len(self._jobs)} jobs running (limit {self.max_concurrent})"
            )
        if job_id and (job_id in self._jobs or job_id in self._finished):
            raise ValueError(f"job id {job_id!r} already used")

        orchestrator = JobOrchestrator(
            job,
            source,
            extractor,
            self.session_factory,
            providers=self.providers,
            store=self.store,
            run_config=run_config or self._config_for(job),
            bus=self.bus,
            job_id=job_id,
            probe=self._probe,
        )
        job_id = orchestrator.job_id
        self._jobs[job_id] = orchestrator
        self._tasks[job_id] = asyncio.create_task(self._run(orchestrator), name=f"job-{job_id}")
        logger.info(
            f"[MANAGER] Submitted job {job_id} "
            f"({len(self._jobs)}/{self.max_concurrent} slots in use)"
        )
        return job_id

    def _config_for(self, job: JobConfig) -> LeadRunConfig:
        if self.run_config is not None and self.run_config.mode == job.mode:
            return self.run_config
        return LeadRunConfig.for_mode(job.mode)

    async def _run(self, orchestrator: JobOrchestrator) -> JobOutcome:
        try:
            return await orchestrator.run()
        finally:
            self._finished[orchestrator.job_id] = orchestrator.outcome()
            self._jobs.pop(orchestrator.job_id, None)
            logger.info(
                f"[MANAGER] Job {orchestrator.job_id} finished: {orchestrator.state.value}"
            )

    # ── Control ──────────────────────────────────────────────────

    def _get(self, job_id: str) -> JobOrchestrator:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise KeyError(f"no active job {job_id!r}") from None

    def pause(self, job_id: str) -> bool:
        return self._get(job_id).pause()

    def resume(self, job_id: str) -> bool:
        return self._get(job_id).resume()

    def cancel(self, job_id: str) -> bool:
        return self._get(job_id).cancel()

    def supply_credentials(self, job_id: str, credentials: Credentials) -> None:
        self._get(job_id).supply_credentials(credentials)

    def cancel_all(self) -> int:
        return sum(1 for orchestrator in list(self._jobs.values()) if orchestrator.cancel())

    # ── Queries ──────────────────────────────────────────────────

    def status(self, job_id: str) -> Dict[str, Any]:
        if job_id in self._jobs:
            orchestrator = self._jobs[job_id]
            relay = orchestrator.relay
            return {
                "job_id": job_id,
                "state": orchestrator.state.value,
                "progress": orchestrator.progress.to_dict(),
                "relay": relay.address if relay else None,
                "config": orchestrator.job.to_dict(),
            }
        if job_id in self._finished:
            outcome = self._finished[job_id]
            return {
                "job_id": job_id,
                "state": outcome.state.value,
                "progress": outcome.progress,
                "location": outcome.location,
                "error": outcome.error,
            }
        raise KeyError(f"unknown job {job_id!r}")

    def active_jobs(self) -> List[str]:
        return list(self._jobs)

    def history(self) -> List[JobOutcome]:
        return list(self._finished.values())

    async def wait(self, job_id: str) -> JobOutcome:
        """Block until *job_id* reaches a terminal state."""
        if job_id in self._tasks:
            return await asyncio.shield(self._tasks[job_id])
        if job_id in self._finished:
            return self._finished[job_id]
        raise KeyError(f"unknown job {job_id!r}")

    async def shutdown(self) -> None:
        """Cancel every running job and wait for each to persist and close."""
        self.cancel_all()
        tasks = [t for t in self._tasks.values() if not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
