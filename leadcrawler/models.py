"""
Data Model
==========
Plain dataclasses shared by the relay pool, the orchestrator and the
investigator.  Nothing here performs I/O.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple
from urllib.parse import urlparse

MAX_TARGET = 5000

# Fields a lead may be required to carry (``JobConfig.required_fields``)
KNOWN_FIELDS = frozenset([
    "email", "phone", "website", "messaging", "handle", "registry_id",
])


# ---------------------------------------------------------------------------
# Relays
# ---------------------------------------------------------------------------

@dataclass
class RelayCandidate:
    """One relay (proxy) endpoint as reported by a provider."""
    address: str                     # scheme://host:port
    source_id: str = ""
    score: float = 0.0
    uptime: float = 0.0              # 0-100 as reported by the provider
    latency_ms: float = 0.0
    protocol: str = "http"

    @property
    def host(self) -> str:
        return urlparse(self.address).hostname or ""

    @property
    def port(self) -> int:
        try:
            return urlparse(self.address).port or 0
        except ValueError:
            return 0

    @property
    def is_socks(self) -> bool:
        return self.protocol.lower().startswith("socks")

    def __str__(self) -> str:
        return self.address


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

class JobState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    PAUSED = "paused"
    PAUSED_FOR_AUTH = "paused_for_auth"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.CANCELLED, JobState.FAILED)


@dataclass(frozen=True)
class JobConfig:
    """Immutable per-job parameters, fixed at submission."""
    search_term: str = ""
    target: int = 10
    location: str = ""
    required_fields: Tuple[str, ...] = ()
    use_relay: bool = True
    investigate: bool = True
    mode: str = "default"
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.target, int) or self.target < 1:
            raise ValueError("target must be a positive integer")
        if self.target > MAX_TARGET:
            raise ValueError(f"target may not exceed {MAX_TARGET}")
        # Lists are accepted for convenience but stored as a tuple
        object.__setattr__(self, "required_fields", tuple(self.required_fields))
        unknown = set(self.required_fields) - KNOWN_FIELDS
        if unknown:
            raise ValueError(f"unknown required fields: {sorted(unknown)}")

    def to_dict(self) -> dict:
        return {
            "search_term": self.search_term,
            "target": self.target,
            "location": self.location,
            "required_fields": list(self.required_fields),
            "use_relay": self.use_relay,
            "investigate": self.investigate,
            "mode": self.mode,
            "params": dict(self.params),
        }


@dataclass
class JobProgress:
    """Counters for one job.  Only the owning orchestrator mutates these."""
    queued: int = 0
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    retried_count: int = 0
    rotations: int = 0
    sites_investigated: int = 0
    current: int = 0
    total: int = 0
    message: str = ""
    started_at: Optional[float] = None
    eta_seconds: Optional[int] = None

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 0.0
        return round(min(100.0, 100.0 * self.success_count / self.total), 1)

    @property
    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return time.monotonic() - self.started_at

    def reset(self, total: int) -> None:
        self.queued = 0
        self.success_count = 0
        self.error_count = 0
        self.skipped_count = 0
        self.retried_count = 0
        self.rotations = 0
        self.sites_investigated = 0
        self.current = 0
        self.total = total
        self.message = ""
        self.started_at = time.monotonic()
        self.eta_seconds = None

    def to_dict(self) -> dict:
        return {
            "queued": self.queued,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "skipped_count": self.skipped_count,
            "retried_count": self.retried_count,
            "rotations": self.rotations,
            "sites_investigated": self.sites_investigated,
            "current": self.current,
            "total": self.total,
            "percent": self.percent,
            "eta_seconds": self.eta_seconds,
            "message": self.message,
        }


@dataclass(frozen=True)
class WorkUnit:
    """Smallest schedulable item on the producer/worker queue."""
    target: str
    dedup_key: str = ""
    payload: Mapping[str, Any] = field(default_factory=dict)
    attempts: int = 0

    def __post_init__(self):
        if not self.dedup_key:
            name = str(self.payload.get("name", "")) if self.payload else ""
            object.__setattr__(self, "dedup_key", f"{self.target}{name}")


@dataclass
class LogEntry:
    timestamp: str
    message: str

    @classmethod
    def now(cls, message: str) -> "LogEntry":
        return cls(datetime.now(timezone.utc).isoformat(), message)

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "message": self.message}


@dataclass
class JobOutcome:
    """What ``JobOrchestrator.run()`` hands back."""
    job_id: str
    state: JobState
    results: List[Dict[str, Any]] = field(default_factory=list)
    progress: Dict[str, Any] = field(default_factory=dict)
    location: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state == JobState.COMPLETED


# ---------------------------------------------------------------------------
# Investigation
# ---------------------------------------------------------------------------

# Scalar fields the investigator can fill, in the order they are reported
INVESTIGATION_FIELDS = ("email", "phone", "handle", "registry_id")


@dataclass
class InvestigationResult:
    """Partial contact record built up during one investigation tree."""
    email: str = ""
    phone: str = ""
    handle: str = ""
    registry_id: str = ""
    messaging: str = ""
    phone_list: List[str] = field(default_factory=list)
    messaging_list: List[str] = field(default_factory=list)
    link_list: List[str] = field(default_factory=list)

    def has(self, name: str) -> bool:
        if name == "phone":
            return bool(self.phone or self.phone_list or self.messaging or self.messaging_list)
        if name == "messaging":
            return bool(self.messaging or self.messaging_list)
        return bool(getattr(self, name, ""))

    def missing_fields(self, tracked) -> List[str]:
        return [f for f in tracked if not self.has(f)]

    def merge(self, other: "InvestigationResult") -> None:
        """First-found-wins for scalars, ordered union for lists."""
        for name in ("email", "phone", "handle", "registry_id", "messaging"):
            if not getattr(self, name) and getattr(other, name):
                setattr(self, name, getattr(other, name))
        for name in ("phone_list", "messaging_list", "link_list"):
            mine = getattr(self, name)
            for item in getattr(other, name):
                if item not in mine:
                    mine.append(item)

    def to_dict(self) -> dict:
        return {
            "email": self.email,
            "phone": self.phone,
            "handle": self.handle,
            "registry_id": self.registry_id,
            "messaging": self.messaging,
            "phone_list": list(self.phone_list),
            "messaging_list": list(self.messaging_list),
            "link_list": list(self.link_list),
        }


@dataclass
class TraversalContext:
    """State shared by reference across one ``investigate`` call tree."""
    tracked: Tuple[str, ...] = INVESTIGATION_FIELDS
    visited: Set[str] = field(default_factory=set)
    navigations: int = 0
    max_depth: int = 5
    home_url: str = ""
