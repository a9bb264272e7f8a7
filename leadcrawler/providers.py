"""
Relay Providers
===============
Sources of relay (proxy) candidates.

Contract: ``fetch_candidates()`` never raises.  A provider that cannot reach
its API, gets a malformed body, or times out logs the reason and returns an
empty list, so one bad source never takes the others down with it.

Built-in providers:
    - ``ProxyScrapeProvider``  — free list, plain-text ``protocol://ip:port``
    - ``LitportProvider``      — free list with uptime/response-time ratings
    - ``GeonodeProvider``      — free list with uptime/speed/latency
    - ``StaticRelayProvider``  — configured list (e.g. paid relays), scored
                                 low so it is tried only after free ones
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

import aiohttp

from .models import RelayCandidate

logger = logging.getLogger(__name__)

_HTTP_BONUS = 40.0
# Paid / fallback relays score below zero, the floor of every free candidate
PAID_SCORE_CEILING = -1.0


def score_candidate(
    uptime: float = 50.0,
    latency_ms: float = 1000.0,
    protocol: str = "http",
    speed: float = 1.0,
) -> float:
    """Combine provider metrics into a score (higher is better).

    Uptime counts directly, latency counts against, speed for, and HTTP(S)
    relays get a flat bonus because they tunnel far more reliably than SOCKS.
    """
    score = float(uptime)
    score += float(speed) * 10
    score -= float(latency_ms) / 10
    if protocol in ("http", "https"):
        score += _HTTP_BONUS
    return max(0.0, score)


class RelayProvider(ABC):
    """Supplies relay candidates.  Implementations must never raise."""

    source_id: str = "unknown"

    @abstractmethod
    async def fetch_candidates(self) -> List[RelayCandidate]:
        ...


class HttpRelayProvider(RelayProvider):
    """Base for providers that GET a JSON/text document over HTTP."""

    url: str = ""

    def __init__(self, timeout_s: float = 5.0, session: Optional[aiohttp.ClientSession] = None):
        self.timeout_s = timeout_s
        self._session = session

    async def _get_text(self) -> str:
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)
        if self._session is not None:
            async with self._session.get(self.url, timeout=timeout) as resp:
                resp.raise_for_status()
                return await resp.text()
        async with aiohttp.ClientSession() as session:
            async with session.get(self.url, timeout=timeout) as resp:
                resp.raise_for_status()
                return await resp.text()

    async def fetch_candidates(self) -> List[RelayCandidate]:
        logger.info(f"[RELAY] Fetching candidates from {self.source_id}...")
        try:
            body = await self._get_text()
            candidates = self.parse(body)
        except Exception as e:
            logger.warning(f"[RELAY] {self.source_id} failed: {type(e).__name__}: {e}")
            return []
        logger.info(f"[RELAY] {self.source_id}: {len(candidates)} candidates")
        return candidates

    @abstractmethod
    def parse(self, body: str) -> List[RelayCandidate]:
        ...


class ProxyScrapeProvider(HttpRelayProvider):
    source_id = "proxyscrape"

    def __init__(self, country: str = "br", **kwargs):
        super().__init__(**kwargs)
        self.url = (
            "https://api.proxyscrape.com/v4/free-proxy-list/get"
            f"?request=display_proxies&country={country}"
            "&proxy_format=protocolipport&format=text&timeout=20000&limit=50"
        )

    def parse(self, body: str) -> List[RelayCandidate]:
        candidates = []
        for line in body.strip().splitlines():
            line = line.strip()
            # Only HTTP lines; the list also carries SOCKS entries
            if not line.startswith("http://"):
                continue
            candidates.append(RelayCandidate(
                address=line, source_id=self.source_id,
                score=80.0, uptime=50.0, latency_ms=0.0, protocol="http",
            ))
        return candidates


class LitportProvider(HttpRelayProvider):
    source_id = "litport"

    def __init__(self, country: str = "br", **kwargs):
        super().__init__(**kwargs)
        self.url = (
            f"https://litport.net/api/free-proxy?country={country}"
            "&uptimeRating=75&limit=50&sortBy=pingAt_asc&page=1&format=json"
        )

    def parse(self, body: str) -> List[RelayCandidate]:
        data = json.loads(body)
        if not isinstance(data, list):
            return []
        candidates = []
        for item in data:
            protocol = (item.get("protocol") or "http").lower()
            uptime = item.get("uptimeRating") or 50
            response_rating = item.get("responseTimeRating") or 50
            score = uptime + (100 - response_rating)
            if protocol in ("http", "https"):
                score += _HTTP_BONUS
            candidates.append(RelayCandidate(
                address=f"{protocol}://{item['host']}:{item['port']}",
                source_id=self.source_id,
                score=max(0.0, float(score)),
                uptime=float(item.get("uptimeRating") or 0),
                latency_ms=float(item.get("responseTimeMs") or 999),
                protocol=protocol,
            ))
        return candidates


class GeonodeProvider(HttpRelayProvider):
    source_id = "geonode"

    def __init__(self, country: str = "br", **kwargs):
        super().__init__(**kwargs)
        self.url = (
            f"https://proxylist.geonode.com/api/proxy-list?country={country.upper()}"
            "&filterUpTime=90&filterLastChecked=30&speed=fast&limit=50&page=1"
            "&sort_by=lastChecked&sort_type=desc"
        )

    def parse(self, body: str) -> List[RelayCandidate]:
        data = json.loads(body)
        rows = data.get("data") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            return []
        candidates = []
        for item in rows:
            protocols = item.get("protocols") or ["http"]
            protocol = str(protocols[0]).lower()
            latency = item.get("latency") or 1000
            candidates.append(RelayCandidate(
                address=f"{protocol}://{item['ip']}:{item['port']}",
                source_id=self.source_id,
                score=score_candidate(
                    uptime=item.get("upTime") or 50,
                    latency_ms=latency,
                    protocol=protocol,
                    speed=item.get("speed") or 1,
                ),
                uptime=float(item.get("upTime") or 0),
                latency_ms=float(latency),
                protocol=protocol,
            ))
        return candidates


class StaticRelayProvider(RelayProvider):
    """A fixed list of relay addresses.

    With ``paid=True`` every candidate is scored at or below
    ``PAID_SCORE_CEILING`` so the pool reaches it only once every free
    candidate has failed.
    """

    def __init__(self, addresses: Iterable[str], source_id: str = "static", paid: bool = False):
        self.addresses = [a.strip() for a in addresses if a and a.strip()]
        self.source_id = source_id
        self.paid = paid

    async def fetch_candidates(self) -> List[RelayCandidate]:
        candidates = []
        for index, address in enumerate(self.addresses):
            protocol = address.split("://", 1)[0].lower() if "://" in address else "http"
            if "://" not in address:
                address = f"http://{address}"
            if self.paid:
                # Keep configured order among paid relays
                score = PAID_SCORE_CEILING - index * 0.001
            else:
                score = score_candidate(protocol=protocol, latency_ms=0.0)
            candidates.append(RelayCandidate(
                address=address, source_id=self.source_id,
                score=score, protocol=protocol,
            ))
        return candidates


def default_providers(
    country: str = "br",
    timeout_s: float = 5.0,
    paid_relays: Optional[List[str]] = None,
) -> List[RelayProvider]:
    """The standard provider set: three free lists plus optional paid relays."""
    providers: List[RelayProvider] = [
        ProxyScrapeProvider(country=country, timeout_s=timeout_s),
        LitportProvider(country=country, timeout_s=timeout_s),
        GeonodeProvider(country=country, timeout_s=timeout_s),
    ]
    if paid_relays:
        providers.append(StaticRelayProvider(paid_relays, source_id="paid", paid=True))
    return providers
