"""
Page Sessions
=============
Browser-tab capability consumed by the orchestrator and the investigator.

``PageSession`` is the contract; ``PlaywrightPageSession`` implements it on
async Playwright (one Chromium instance per session, routed through the
job's current relay).

This module is the transport boundary: Playwright errors are translated into
the tagged taxonomy of ``errors.py`` here, so nothing above it has to look at
error strings.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .errors import (
    ConnectivityError,
    NavigationError,
    OperationTimeout,
    matches_connectivity_signature,
)
from .models import RelayCandidate
from .patterns import PAGE_SNAPSHOT_JS, PageSnapshot, snapshot_from_html

logger = logging.getLogger(__name__)

# Resource types to block for speed
_BLOCKED_RESOURCE_TYPES = frozenset([
    "image", "media", "font",
])

# URL patterns for analytics/tracking scripts to block
_BLOCKED_URL_PATTERNS = [
    re.compile(r"google[-_]?analytics", re.IGNORECASE),
    re.compile(r"googletagmanager", re.IGNORECASE),
    re.compile(r"facebook\.net", re.IGNORECASE),
    re.compile(r"doubleclick\.net", re.IGNORECASE),
    re.compile(r"hotjar\.", re.IGNORECASE),
    re.compile(r"segment\.(com|io)", re.IGNORECASE),
    re.compile(r"mixpanel\.", re.IGNORECASE),
]

_LAUNCH_ARGS = [
    '--disable-gpu',
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-accelerated-2d-canvas',
    '--disable-background-networking',
    '--disable-default-apps',
    '--disable-extensions',
    '--disable-sync',
    '--no-first-run',
]


class PageSession(ABC):
    """One browser tab-equivalent.

    Implementations must translate transport failures into
    ``ConnectivityError`` / ``OperationTimeout`` / ``NavigationError``.
    """

    role: str = "primary"

    @abstractmethod
    async def open(self, relay: Optional[RelayCandidate] = None) -> "PageSession":
        ...

    @abstractmethod
    async def navigate(self, url: str, timeout_ms: int = 30000) -> Optional[int]:
        """Load *url*; return the HTTP status when known."""
        ...

    @abstractmethod
    async def evaluate(self, script: str, arg: Any = None) -> Any:
        ...

    @abstractmethod
    async def content(self) -> str:
        ...

    @property
    @abstractmethod
    def current_url(self) -> str:
        ...

    async def screenshot(self) -> bytes:
        """Best-effort; never raises."""
        return b""

    async def set_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        return None

    async def cookies(self) -> List[Dict[str, Any]]:
        return []

    @abstractmethod
    async def close(self) -> None:
        ...


SessionFactory = Callable[[Optional[RelayCandidate], str], Awaitable[PageSession]]


async def page_snapshot(session: PageSession) -> PageSnapshot:
    """Text + anchors of the current page in one ``evaluate`` call.

    Falls back to parsing ``content()`` with BeautifulSoup when the script
    fails or returns something unexpected.
    """
    try:
        data = await session.evaluate(PAGE_SNAPSHOT_JS)
        if isinstance(data, dict):
            return PageSnapshot.from_dict(data)
    except (NavigationError, OperationTimeout) as e:
        logger.debug(f"[SESSION] Snapshot script failed, parsing HTML: {e}")
    html = await session.content()
    return snapshot_from_html(html, session.current_url)


def _relay_to_proxy(relay: Optional[RelayCandidate]) -> Optional[dict]:
    if relay is None:
        return None
    return {"server": relay.address}


def translate_error(exc: Exception, url: str = "") -> Exception:
    """Map a Playwright error onto the tagged taxonomy."""
    message = str(exc).split("\n")[0]
    if isinstance(exc, PlaywrightTimeout):
        return OperationTimeout(f"Timeout loading {url}: {message}")
    if matches_connectivity_signature(str(exc)):
        return ConnectivityError(message)
    return NavigationError(message, url=url)


class PlaywrightPageSession(PageSession):
    """PageSession backed by its own Chromium instance."""

    def __init__(
        self,
        role: str = "primary",
        *,
        headless: bool = True,
        user_agent: str = "",
        viewport: Optional[dict] = None,
        locale: str = "pt-BR",
        block_resources: bool = True,
        extra_headers: Optional[Dict[str, str]] = None,
    ):
        self.role = role
        self.headless = headless
        self.user_agent = user_agent
        self.viewport = viewport or {"width": 1920, "height": 1080}
        self.locale = locale
        self.block_resources = block_resources
        self.extra_headers = extra_headers or {
            "Accept-Language": "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7",
        }
        self.relay: Optional[RelayCandidate] = None

        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self, relay: Optional[RelayCandidate] = None) -> "PlaywrightPageSession":
        self.relay = relay
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=_LAUNCH_ARGS,
                proxy=_relay_to_proxy(relay),
            )
            ctx_kwargs = dict(viewport=self.viewport, locale=self.locale)
            if self.user_agent:
                ctx_kwargs["user_agent"] = self.user_agent
            self._context = await self._browser.new_context(**ctx_kwargs)
            await self._context.set_extra_http_headers(self.extra_headers)
            if self.block_resources:
                await self._context.route("**/*", self._route_handler)
            self._page = await self._context.new_page()
        except PlaywrightError as e:
            await self.close()
            raise translate_error(e) from e

        via = relay.address if relay else "direct"
        logger.info(f"[SESSION] {self.role} session opened ({via})")
        return self

    async def _route_handler(self, route) -> None:
        """Block unnecessary resources for speed."""
        request = route.request
        if request.resource_type in _BLOCKED_RESOURCE_TYPES:
            await route.abort()
            return
        if request.resource_type == "script":
            for pattern in _BLOCKED_URL_PATTERNS:
                if pattern.search(request.url):
                    await route.abort()
                    return
        await route.continue_()

    async def close(self) -> None:
        """Close page, context, browser and Playwright.  Idempotent."""
        if self._context:
            try:
                await self._context.close()
            except PlaywrightError as e:
                logger.debug(f"[SESSION] Context close: {e}")
            self._context = None
            self._page = None
        if self._browser:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.debug(f"[SESSION] Browser close: {e}")
            self._browser = None
        if self._playwright:
            try:
                await self._playwright.stop()
            except PlaywrightError as e:
                logger.debug(f"[SESSION] Playwright stop: {e}")
            self._playwright = None

    # ------------------------------------------------------------------
    # Page operations
    # ------------------------------------------------------------------

    def _require_page(self) -> Page:
        if self._page is None:
            raise ConnectivityError("Session closed")
        return self._page

    async def navigate(self, url: str, timeout_ms: int = 30000) -> Optional[int]:
        page = self._require_page()
        try:
            response = await page.goto(url, timeout=timeout_ms, wait_until="domcontentloaded")
        except PlaywrightError as e:
            raise translate_error(e, url) from e

        if response is None:
            return None
        if response.status == 407:
            raise ConnectivityError(f"Relay refused tunnel (HTTP 407) for {url}")
        if response.status >= 400:
            raise NavigationError(f"HTTP {response.status}", url=url, status=response.status)
        return response.status

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        page = self._require_page()
        try:
            if arg is None:
                return await page.evaluate(script)
            return await page.evaluate(script, arg)
        except PlaywrightError as e:
            raise translate_error(e, page.url) from e

    async def content(self) -> str:
        page = self._require_page()
        try:
            return await page.content()
        except PlaywrightError as e:
            raise translate_error(e, page.url) from e

    @property
    def current_url(self) -> str:
        return self._page.url if self._page is not None else ""

    async def screenshot(self) -> bytes:
        if self._page is None:
            return b""
        try:
            return await self._page.screenshot(type="png", full_page=False)
        except PlaywrightError as e:
            logger.debug(f"[SCREENSHOT] Failed: {e}")
            return b""

    async def set_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        if self._context is None or not cookies:
            return
        try:
            await self._context.add_cookies(cookies)
        except PlaywrightError as e:
            raise translate_error(e) from e

    async def cookies(self) -> List[Dict[str, Any]]:
        if self._context is None:
            return []
        try:
            return await self._context.cookies()
        except PlaywrightError as e:
            raise translate_error(e) from e


class PlaywrightSessionFactory:
    """``SessionFactory`` producing opened ``PlaywrightPageSession`` objects."""

    _VIEWPORTS = {
        "primary": {"width": 1920, "height": 1080},
        "secondary": {"width": 1366, "height": 768},
    }

    def __init__(self, headless: bool = True, user_agent: str = "", block_resources: bool = True):
        self.headless = headless
        self.user_agent = user_agent
        self.block_resources = block_resources

    async def __call__(self, relay: Optional[RelayCandidate], role: str) -> PageSession:
        session = PlaywrightPageSession(
            role,
            headless=self.headless,
            user_agent=self.user_agent,
            viewport=self._VIEWPORTS.get(role),
            block_resources=self.block_resources,
        )
        return await session.open(relay)
