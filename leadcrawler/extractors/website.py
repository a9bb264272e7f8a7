"""
Website Leads
=============
Generic lead plug-ins that need no site-specific knowledge:

- ``WebsiteListSource``      — seed URLs (iterable or file) as work units
- ``WebsiteContactExtractor``— title + contacts from the seed's landing page
- ``InvestigatingExtractor`` — wraps any extractor and completes missing
                               contact fields with a ``CrawlInvestigator``
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..errors import OperationTimeout
from ..investigator import CrawlInvestigator
from ..models import INVESTIGATION_FIELDS, JobConfig, WorkUnit
from ..patterns import dedupe_phones, is_mobile_number, scan_page
from ..session import PageSession, page_snapshot
from ..utils import URLNormalizer, clean_text
from .base import Extractor, LeadSource

logger = logging.getLogger(__name__)


def read_url_file(path) -> List[str]:
    """One URL per line; blank lines and ``#`` comments are skipped."""
    lines = Path(path).read_text(encoding="utf-8").splitlines()
    return [l.strip() for l in lines if l.strip() and not l.strip().startswith("#")]


class WebsiteListSource(LeadSource):
    """Hands out seed URLs in input order, deduped by normalized URL."""

    def __init__(self, urls: Iterable[str], normalizer: Optional[URLNormalizer] = None):
        self.normalizer = normalizer or URLNormalizer()
        self._units: List[WorkUnit] = []
        seen = set()
        for raw in urls:
            url = self.normalizer.normalize(raw)
            if url is None:
                if raw and raw.strip():
                    logger.warning(f"[SOURCE] Ignoring invalid URL: {raw.strip()}")
                continue
            if url in seen:
                continue
            seen.add(url)
            self._units.append(WorkUnit(target=url, dedup_key=url, payload={"website": url}))
        self._cursor = 0

    @classmethod
    def from_file(cls, path, **kwargs) -> "WebsiteListSource":
        return cls(read_url_file(path), **kwargs)

    def __len__(self) -> int:
        return len(self._units)

    async def search(self, session: PageSession, config: JobConfig) -> None:
        logger.info(f"[SOURCE] {len(self._units)} seed websites")

    async def collect(self, session: PageSession, config: JobConfig, limit: int) -> List[WorkUnit]:
        batch = self._units[self._cursor:self._cursor + max(0, limit)]
        self._cursor += len(batch)
        return batch

    @property
    def exhausted(self) -> bool:
        return self._cursor >= len(self._units)


class WebsiteContactExtractor(Extractor):
    """Loads the unit's URL and reads title + contacts from the page."""

    def __init__(self, nav_timeout_s: float = 30.0, normalizer: Optional[URLNormalizer] = None):
        self.nav_timeout_s = nav_timeout_s
        self.normalizer = normalizer or URLNormalizer()

    async def extract(self, session: PageSession, unit: WorkUnit) -> Dict[str, Any]:
        await session.navigate(unit.target, timeout_ms=int(self.nav_timeout_s * 1000))
        snapshot = await page_snapshot(session)
        scan = scan_page(snapshot)

        phones = dedupe_phones(scan.phones)
        messaging = scan.messaging[0] if scan.messaging else ""
        if not messaging:
            messaging = next((p for p in phones if is_mobile_number(p)), "")

        name = unit.payload.get("name") or clean_text(snapshot.title)
        website = self.normalizer.normalize(session.current_url or unit.target) or unit.target
        return {
            "name": name,
            "website": website,
            "email": scan.email,
            "phone": phones[0] if phones else "",
            "messaging": messaging,
            "handle": scan.handle,
            "registry_id": scan.registry_id,
            "phones": phones,
        }


class InvestigatingExtractor(Extractor):
    """Runs *inner*, then investigates the record's website for whatever
    contact fields are still empty."""

    handles_timeouts = True

    def __init__(
        self,
        inner: Extractor,
        config,
        enabled: bool = True,
        tracked=INVESTIGATION_FIELDS,
    ):
        """
        Args:
            inner:   The site-specific extractor.
            config:  ``LeadRunConfig`` (timeouts, depth, links per depth).
            enabled: Investigation on/off (``JobConfig.investigate``).
            tracked: Fields the investigator tries to fill.
        """
        self.inner = inner
        self.config = config
        self.enabled = enabled
        self.tracked = tuple(tracked)
        self.sites_investigated = 0
        self._should_abort: Optional[Callable[[], bool]] = None
        self._on_log: Optional[Callable[[str], None]] = None

    def bind_job(self, should_abort=None, on_log=None) -> None:
        self._should_abort = should_abort
        self._on_log = on_log
        self.inner.bind_job(should_abort, on_log)

    async def extract(self, session: PageSession, unit: WorkUnit) -> Dict[str, Any]:
        timeout_s = self.config.extraction_timeout
        try:
            record = await asyncio.wait_for(self.inner.extract(session, unit), timeout=timeout_s)
        except asyncio.TimeoutError as e:
            raise OperationTimeout(f"Extraction exceeded {timeout_s}s for {unit.target}") from e

        website = record.get("website")
        if not self.enabled or not website:
            return record

        missing = [f for f in self.tracked if not record.get(f)]
        if not missing:
            return record

        investigator = CrawlInvestigator.from_config(
            session, self.config, should_abort=self._should_abort, on_log=self._on_log,
        )
        started = time.monotonic()
        self.sites_investigated += 1
        result = await investigator.investigate(website, 0, investigator.new_context(missing))
        investigator.finalize(result)
        record["investigate_ms"] = round((time.monotonic() - started) * 1000, 1)

        for name in ("email", "phone", "handle", "registry_id", "messaging"):
            if not record.get(name) and getattr(result, name):
                record[name] = getattr(result, name)
        phones = list(record.get("phones") or [])
        for phone in result.phone_list:
            if phone not in phones:
                phones.append(phone)
        record["phones"] = phones
        return record
