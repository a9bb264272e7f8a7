"""
Crawl Investigator
==================
Recursive, budget-bounded link following that fills in the contact fields
a lead is still missing (email, phone, social handle, registry id).

One ``investigate()`` call tree shares a single ``TraversalContext``: the
visited set (normalized URLs) guarantees no page is loaded twice, even
across sibling branches or redirect loops.

Per node:

1. Normalize; stop at ``max_depth`` or when already visited.
2. Zero-cost extraction from the URL text (mailto/tel/messaging/profile).
3. Blocklist check (bio-link aggregators are exempt except their generic
   pages).
4. Navigate.  A profile network or bio-link page (typically reached via a
   cross-domain redirect) gets its specialised extraction; anything else
   gets the generic page scan.
5. Outbound links: zero-cost extraction first, the rest are scored by what
   is still missing and the top-K are recursed into.
6. Stop as soon as every tracked field is filled.

Navigation failures inside a branch are logged and contribute nothing.
Only cancellation propagates out of ``investigate()``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from .errors import JobCancelled, LeadCrawlerError
from .link_policy import LinkPolicy, is_bio_link, is_profile_network
from .models import INVESTIGATION_FIELDS, InvestigationResult, TraversalContext
from .patterns import (
    PageScan,
    PageSnapshot,
    UrlExtraction,
    dedupe_phones,
    extract_from_url,
    find_phones,
    first_valid_email,
    handle_from_url,
    is_messaging_url,
    is_mobile_number,
    messaging_number_from_url,
    scan_page,
)
from .session import PageSession, page_snapshot
from .utils import URLNormalizer, extract_domain, strip_www

logger = logging.getLogger(__name__)

_DEFAULT_LINKS_PER_DEPTH = {0: 5, 1: 3}

# Hosts whose links on a bio/profile page are never worth following
_SOCIAL_NOISE = ("facebook.com", "twitter.com", "tiktok.com", "youtube.com", "l.instagram.com")


class CrawlInvestigator:
    """Complete missing contact fields for one seed URL."""

    def __init__(
        self,
        session: PageSession,
        *,
        max_depth: int = 5,
        links_per_depth: Optional[Dict[int, int]] = None,
        links_beyond: int = 2,
        nav_timeout_s: float = 15.0,
        settle_s: float = 0.0,
        max_navigations: int = 0,
        policy: Optional[LinkPolicy] = None,
        normalizer: Optional[URLNormalizer] = None,
        should_abort: Optional[Callable[[], bool]] = None,
        on_log: Optional[Callable[[str], None]] = None,
    ):
        """
        Args:
            session:         Page session to navigate with (shared with the worker).
            max_depth:       Recursion stops at this depth.
            links_per_depth: Links followed per depth ({depth: K}).
            links_beyond:    K for depths not in *links_per_depth*.
            nav_timeout_s:   Per-navigation timeout.
            settle_s:        Pause after each load before reading the page.
            max_navigations: Navigation budget per call tree (0 = unbounded).
            should_abort:    Cancel predicate, checked before every navigation.
            on_log:          Receives user-facing log lines.
        """
        self.session = session
        self.max_depth = max_depth
        self.links_per_depth = dict(links_per_depth or _DEFAULT_LINKS_PER_DEPTH)
        self.links_beyond = links_beyond
        self.nav_timeout_s = nav_timeout_s
        self.settle_s = settle_s
        self.max_navigations = max_navigations
        self.policy = policy or LinkPolicy()
        self.normalizer = normalizer or URLNormalizer()
        self.should_abort = should_abort
        self.on_log = on_log

    @classmethod
    def from_config(cls, session: PageSession, config, **kwargs) -> "CrawlInvestigator":
        """Build from a ``LeadRunConfig``."""
        return cls(
            session,
            max_depth=config.max_depth,
            links_per_depth=config.links_per_depth,
            links_beyond=config.links_beyond,
            nav_timeout_s=config.investigation_nav_timeout_s,
            settle_s=config.investigation_settle_s,
            max_navigations=config.investigation_max_navigations,
            **kwargs,
        )

    def links_for_depth(self, depth: int) -> int:
        return self.links_per_depth.get(depth, self.links_beyond)

    def new_context(self, tracked=INVESTIGATION_FIELDS) -> TraversalContext:
        return TraversalContext(tracked=tuple(tracked), max_depth=self.max_depth)

    # ------------------------------------------------------------------
    # Recursion
    # ------------------------------------------------------------------

    async def investigate(
        self,
        url: str,
        depth: int = 0,
        context: Optional[TraversalContext] = None,
    ) -> InvestigationResult:
        ctx = context if context is not None else self.new_context()
        result = InvestigationResult()
        self._check_abort()

        normalized = self.normalizer.normalize(url)
        if normalized is None:
            # mailto:/tel: seeds still carry data in the URL itself
            self._apply_url_extraction(result, extract_from_url(url))
            return result
        if depth >= ctx.max_depth or normalized in ctx.visited:
            return result
        ctx.visited.add(normalized)
        if not ctx.home_url:
            ctx.home_url = normalized

        extracted = extract_from_url(url)
        if extracted.found_anything:
            self._apply_url_extraction(result, extracted)
            self._log(f"Data read from URL, no visit needed: {normalized}")
            return result

        if self.policy.is_blocked(normalized, home_url=ctx.home_url):
            logger.debug(f"[INVESTIGATE] Blocked, skipping: {normalized}")
            return result

        if self.max_navigations and ctx.navigations >= self.max_navigations:
            logger.info(f"[INVESTIGATE] Navigation budget ({self.max_navigations}) spent")
            return result

        self._log(f"Investigating {normalized} (depth {depth}/{ctx.max_depth})")
        try:
            scan = await self._visit(normalized, ctx)
        except JobCancelled:
            raise
        except LeadCrawlerError as e:
            self._log(f"Could not investigate {normalized}: {e}")
            return result
        if scan is None:
            return result

        self._apply_scan(result, scan)
        await self._follow_links(result, scan.links, depth, ctx)
        return result

    async def _follow_links(
        self,
        result: InvestigationResult,
        links: List[str],
        depth: int,
        ctx: TraversalContext,
    ) -> None:
        candidates: List[str] = []
        for link in links:
            key = self.normalizer.normalize(link)
            if key is None or key in ctx.visited:
                continue
            extracted = extract_from_url(link)
            if extracted.found_anything:
                self._apply_url_extraction(result, extracted)
                ctx.visited.add(key)
                continue
            if self.policy.is_blocked(key, home_url=ctx.home_url):
                continue
            if key not in candidates:
                candidates.append(key)

        missing = result.missing_fields(ctx.tracked)
        if not missing:
            self._log("All tracked fields found, stopping")
            return
        if depth + 1 >= ctx.max_depth or not candidates:
            return

        to_follow = self.policy.prioritize(candidates, missing)[: self.links_for_depth(depth)]
        self._log(f"{len(to_follow)} links to investigate (missing: {', '.join(missing)})")

        for link in to_follow:
            child = await self.investigate(link, depth + 1, ctx)
            result.merge(child)
            if not result.missing_fields(ctx.tracked):
                self._log("All tracked fields found, closing branch")
                break

    # ------------------------------------------------------------------
    # Page visits
    # ------------------------------------------------------------------

    async def _visit(self, url: str, ctx: TraversalContext) -> Optional[PageScan]:
        """Navigate and extract.  Returns None when the landing page was
        already visited (redirect loop)."""
        self._check_abort()
        ctx.navigations += 1
        await self.session.navigate(url, timeout_ms=int(self.nav_timeout_s * 1000))
        if self.settle_s:
            await asyncio.sleep(self.settle_s)

        landed = self.session.current_url or url
        if strip_www(extract_domain(landed)) != strip_www(extract_domain(url)):
            landed_key = self.normalizer.normalize(landed) or landed
            if landed_key in ctx.visited:
                return None
            ctx.visited.add(landed_key)
            self._log(f"Redirected to {landed}")

        snapshot = await page_snapshot(self.session)
        if is_profile_network(landed):
            return self._scan_profile(snapshot, landed)
        if is_bio_link(landed):
            return self._scan_bio_link(snapshot, landed)
        return scan_page(snapshot, link_filter=self.policy.is_candidate)

    def _scan_bio_link(self, snapshot: PageSnapshot, page_url: str) -> PageScan:
        """Bio-link aggregator: every anchor is a candidate contact."""
        self._log(f"Reading bio-link page {page_url}")
        scan = PageScan()
        own_host = extract_domain(page_url)
        for href in snapshot.hrefs:
            lower = href.lower()
            if not scan.handle:
                scan.handle = handle_from_url(href) or ""
            if lower.startswith("mailto:"):
                scan.email = scan.email or extract_from_url(href).email
                continue
            if lower.startswith("tel:"):
                phone = extract_from_url(href).phone
                if phone and phone not in scan.phones:
                    scan.phones.append(phone)
                continue
            if is_messaging_url(href):
                number = messaging_number_from_url(href)
                if number and number not in scan.messaging:
                    scan.messaging.append(number)
                continue
            if is_profile_network(href) or any(noise in lower for noise in _SOCIAL_NOISE):
                continue
            if lower.startswith(("http://", "https://")) and extract_domain(href) != own_host:
                if href not in scan.links:
                    scan.links.append(href)
        if not scan.email:
            scan.email = first_valid_email(snapshot.text)
        return scan

    def _scan_profile(self, snapshot: PageSnapshot, page_url: str) -> PageScan:
        """Social profile: handle from the URL, contacts from the bio text."""
        self._log(f"Reading social profile {page_url}")
        scan = PageScan()
        scan.handle = handle_from_url(page_url) or ""
        bio = snapshot.description or snapshot.text
        scan.email = first_valid_email(bio)
        scan.phones = find_phones(bio, limit=1)
        for href in snapshot.hrefs:
            lower = href.lower()
            if is_profile_network(href) or any(noise in lower for noise in _SOCIAL_NOISE):
                continue
            if is_messaging_url(href):
                number = messaging_number_from_url(href)
                if number and number not in scan.messaging:
                    scan.messaging.append(number)
                continue
            if lower.startswith(("http://", "https://")) and href not in scan.links:
                # Link-in-bio services first
                if is_bio_link(href):
                    scan.links.insert(0, href)
                else:
                    scan.links.append(href)
        return scan

    # ------------------------------------------------------------------
    # Result helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_url_extraction(result: InvestigationResult, extracted: UrlExtraction) -> None:
        if extracted.email and not result.email:
            result.email = extracted.email
        if extracted.handle and not result.handle:
            result.handle = extracted.handle
        if extracted.messaging:
            if not result.messaging:
                result.messaging = extracted.messaging
            if extracted.messaging not in result.messaging_list:
                result.messaging_list.append(extracted.messaging)
        if extracted.phone and extracted.phone not in result.phone_list:
            result.phone_list.append(extracted.phone)

    @staticmethod
    def _apply_scan(result: InvestigationResult, scan: PageScan) -> None:
        result.merge(InvestigationResult(
            email=scan.email,
            handle=scan.handle,
            registry_id=scan.registry_id,
            phone_list=list(scan.phones),
            messaging_list=list(scan.messaging),
            link_list=list(scan.links),
        ))

    def finalize(self, result: InvestigationResult) -> InvestigationResult:
        """Canonical phone format, deduped by digits; primary phone and
        messaging number chosen."""
        phones = dedupe_phones(result.phone_list)
        result.phone_list = phones
        if not result.phone and phones:
            result.phone = phones[0]
        if not result.messaging:
            if result.messaging_list:
                result.messaging = result.messaging_list[0]
            else:
                for phone in phones:
                    if is_mobile_number(phone):
                        result.messaging = phone
                        break
        return result

    # ------------------------------------------------------------------

    def _check_abort(self) -> None:
        if self.should_abort and self.should_abort():
            raise JobCancelled("Investigation cancelled")

    def _log(self, message: str) -> None:
        logger.info(f"[INVESTIGATE] {message}")
        if self.on_log:
            self.on_log(message)
