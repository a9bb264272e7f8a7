"""
Extractor Contracts
===================
Site-specific plug-ins consumed by the orchestrator.

- ``LeadSource`` runs the search and hands out work units (producer lane,
  primary session).
- ``Extractor`` turns one work unit into a lead record (worker lane,
  secondary session).

Both raise the tagged errors of ``errors.py``: ``ConnectivityError`` makes
the orchestrator rotate the relay and retry, ``AuthRequiredError`` pauses the
job for credentials, anything else is counted against the unit.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from ..models import JobConfig, WorkUnit
from ..session import PageSession


class LeadSource(ABC):
    """Search + collection of work units."""

    @abstractmethod
    async def search(self, session: PageSession, config: JobConfig) -> None:
        """Run the search (navigate to results, apply filters, ...)."""
        ...

    @abstractmethod
    async def collect(self, session: PageSession, config: JobConfig, limit: int) -> List[WorkUnit]:
        """Return up to *limit* further units.  May return units already
        seen; the orchestrator dedups them."""
        ...

    @property
    def exhausted(self) -> bool:
        """True once no further collection pass can yield anything new."""
        return False


class Extractor(ABC):
    """One work unit → one lead record."""

    # When True the extractor bounds its own work and the orchestrator does
    # not wrap ``extract`` in the job's extraction timeout.
    handles_timeouts: bool = False

    @abstractmethod
    async def extract(self, session: PageSession, unit: WorkUnit) -> Dict[str, Any]:
        ...

    def bind_job(
        self,
        should_abort: Optional[Callable[[], bool]] = None,
        on_log: Optional[Callable[[str], None]] = None,
    ) -> None:
        """Receive the owning job's cancel predicate and log sink."""
        return None
