"""
Relay Pool
==========
Acquisition, health-probing, scoring and rotation of relay candidates.

One ``RelayPool`` belongs to one job.  Providers may be shared between pools
(they are read-only), but the ranked list and failure set are per-pool.

Invariants:
    - The pool is ordered by descending score, stable on ties (provider
      arrival order).
    - Addresses are unique within one generation; the first arrival wins.
    - The failure set only grows within a generation; ``refresh()`` and
      ``reset()`` are the only things that clear it.
    - ``acquire()`` never hands out an address from the failure set.

Usage::

    pool = RelayPool(default_providers())
    relay = await pool.acquire(allow_direct=True)   # None → direct mode
    ...
    pool.mark_failed(relay)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List, Optional, Set, Union

from .errors import PoolExhausted
from .models import RelayCandidate
from .providers import RelayProvider

logger = logging.getLogger(__name__)

ProbeFn = Callable[[RelayCandidate], Awaitable[bool]]


# ---------------------------------------------------------------------------
# Reachability probe
# ---------------------------------------------------------------------------

async def probe_relay(
    candidate: RelayCandidate,
    timeout_s: float = 3.0,
    target: str = "www.google.com:443",
) -> bool:
    """Short-timeout reachability check.

    SOCKS relays: a TCP connect is enough.  HTTP(S) relays: connect, then ask
    for a ``CONNECT`` tunnel to *target* and require a 2xx status line.
    """
    host, port = candidate.host, candidate.port
    if not host or not port:
        return False

    writer = None
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=timeout_s
        )
        if candidate.is_socks:
            return True
        request = f"CONNECT {target} HTTP/1.1\r\nHost: {target}\r\n\r\n"
        writer.write(request.encode("ascii"))
        await asyncio.wait_for(writer.drain(), timeout=timeout_s)
        status_line = await asyncio.wait_for(reader.readline(), timeout=timeout_s)
        parts = status_line.decode("latin-1", "replace").split()
        return len(parts) >= 2 and parts[1].startswith("2")
    except (OSError, asyncio.TimeoutError, ValueError) as e:
        logger.debug(f"[RELAY] Probe failed for {candidate.address}: {type(e).__name__}")
        return False
    finally:
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except (OSError, asyncio.TimeoutError):
                pass


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------

class RelayPool:
    """Ranked, probed, rotating pool of relay candidates for one job."""

    def __init__(
        self,
        providers: Iterable[RelayProvider],
        *,
        probe: Optional[ProbeFn] = None,
        probe_timeout_s: float = 3.0,
        probe_target: str = "www.google.com:443",
        max_probes_per_acquire: int = 15,
    ):
        self.providers: List[RelayProvider] = list(providers)
        self._probe = probe
        self.probe_timeout_s = probe_timeout_s
        self.probe_target = probe_target
        self.max_probes_per_acquire = max(1, max_probes_per_acquire)

        self._candidates: List[RelayCandidate] = []
        self._failed: Set[str] = set()
        self._refresh_lock = asyncio.Lock()
        self.generation = 0

    # ── Read-only views ──────────────────────────────────────────

    @property
    def candidates(self) -> List[RelayCandidate]:
        return list(self._candidates)

    @property
    def failed(self) -> Set[str]:
        return set(self._failed)

    def is_failed(self, candidate: Union[RelayCandidate, str]) -> bool:
        address = candidate.address if isinstance(candidate, RelayCandidate) else candidate
        return address in self._failed

    def stats(self) -> dict:
        total = len(self._candidates)
        failed = sum(1 for c in self._candidates if c.address in self._failed)
        return {
            "total": total,
            "failed": failed,
            "available": total - failed,
            "generation": self.generation,
        }

    # ── Refresh ──────────────────────────────────────────────────

    async def refresh(self) -> List[RelayCandidate]:
        """Re-query every provider concurrently and rebuild the ranking.

        Never raises.  Concurrent callers share the in-flight refresh.
        """
        if self._refresh_lock.locked():
            logger.info("[RELAY] Refresh already running, waiting for it")
            async with self._refresh_lock:
                return self.candidates

        async with self._refresh_lock:
            results = await asyncio.gather(
                *(self._fetch_one(p) for p in self.providers)
            )

            merged: List[RelayCandidate] = []
            seen: Set[str] = set()
            for batch in results:
                for candidate in batch:
                    if candidate.address in seen:
                        continue
                    seen.add(candidate.address)
                    merged.append(candidate)

            # sorted() is stable, so ties keep provider-arrival order
            self._candidates = sorted(merged, key=lambda c: c.score, reverse=True)
            self._failed.clear()
            self.generation += 1

            if self._candidates:
                top = ", ".join(c.address for c in self._candidates[:3])
                socks = sum(1 for c in self._candidates if c.is_socks)
                logger.info(
                    f"[RELAY] Pool generation {self.generation}: "
                    f"{len(self._candidates)} candidates "
                    f"({len(self._candidates) - socks} HTTP, {socks} SOCKS); top: {top}"
                )
            else:
                logger.warning("[RELAY] No provider returned candidates")
            return self.candidates

    async def _fetch_one(self, provider: RelayProvider) -> List[RelayCandidate]:
        try:
            return list(await provider.fetch_candidates())
        except Exception as e:
            # Contract violation by the provider; isolate it anyway
            source = getattr(provider, "source_id", type(provider).__name__)
            logger.warning(f"[RELAY] Provider {source} raised: {type(e).__name__}: {e}")
            return []

    def reset(self) -> None:
        """Forget failures without refetching."""
        self._failed.clear()

    # ── Acquire ──────────────────────────────────────────────────

    async def acquire(self, allow_direct: bool = True) -> Optional[RelayCandidate]:
        """Return the best reachable candidate.

        Walks the ranking, skipping failed addresses and probing each
        candidate; a failed probe marks it failed.  When the walk comes up
        empty, refreshes once and walks again.  Still nothing: ``None`` when
        *allow_direct*, else ``PoolExhausted``.
        """
        relay = await self._walk()
        if relay is not None:
            return relay

        logger.info("[RELAY] Pool exhausted, refreshing candidates")
        await self.refresh()
        relay = await self._walk()
        if relay is not None:
            return relay

        if allow_direct:
            logger.warning("[RELAY] No working relay, switching to direct mode")
            return None
        raise PoolExhausted(
            f"No working relay after refresh ({len(self._candidates)} candidates, "
            f"{len(self._failed)} failed)"
        )

    async def _walk(self) -> Optional[RelayCandidate]:
        probes = 0
        for candidate in list(self._candidates):
            if candidate.address in self._failed:
                continue
            if probes >= self.max_probes_per_acquire:
                logger.info(f"[RELAY] Probe budget ({self.max_probes_per_acquire}) spent")
                break
            probes += 1
            logger.info(
                f"[RELAY] Probing {probes}/{self.max_probes_per_acquire}: "
                f"{candidate.address} (score {candidate.score:.0f})"
            )
            if await self._run_probe(candidate):
                logger.info(f"[RELAY] Using relay {candidate.address}")
                return candidate
            self.mark_failed(candidate)
        return None

    async def _run_probe(self, candidate: RelayCandidate) -> bool:
        if self._probe is not None:
            try:
                return bool(await self._probe(candidate))
            except Exception as e:
                logger.debug(f"[RELAY] Probe error for {candidate.address}: {e}")
                return False
        return await probe_relay(
            candidate, timeout_s=self.probe_timeout_s, target=self.probe_target
        )

    # ── Failure tracking ─────────────────────────────────────────

    def mark_failed(self, candidate: Union[RelayCandidate, str]) -> None:
        address = candidate.address if isinstance(candidate, RelayCandidate) else candidate
        if address in self._failed:
            return
        self._failed.add(address)
        logger.info(
            f"[RELAY] Marked failed: {address} "
            f"({len(self._failed)}/{len(self._candidates)})"
        )
