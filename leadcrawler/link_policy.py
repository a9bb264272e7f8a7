"""
Link Policy
===========
Which outbound links the investigator may follow, and in what order.

- **Blocklist** — whole domains (big social networks, app stores, CDNs,
  site builders) and generic path segments (privacy, terms, login, ...)
  that never carry lead-specific data.
- **Bio-link aggregators** (linktr.ee and friends) are the exception: their
  profile pages are the richest source of contact links there is, so only
  their exact generic paths (``/privacy``, ``/login``, ...) are blocked.
- Messaging deep links (``wa.me``, ``api.whatsapp.com``) are never blocked:
  the number lives in the URL and costs nothing to read.
- **Scoring** — candidates are ranked by what the current result still
  lacks (bio-link 100, contact page 50, social profile 40, messaging 30,
  about page 20).

Public API
----------
- ``LinkPolicy``             — stateful policy with configurable deny lists
- ``is_bio_link(url)``       — one-shot bio-link aggregator check
- ``is_profile_network(url)``— one-shot rich-profile network check
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple
from urllib.parse import urlparse

from .utils import strip_www

logger = logging.getLogger(__name__)


BIO_LINK_SERVICES: Tuple[str, ...] = (
    "linktr.ee", "linktree.com",
    "lnk.bio", "bio.link", "linkin.bio",
    "tap.bio", "campsite.bio",
    "beacons.ai", "allmylinks.com",
    "carrd.co", "about.me",
)

PROFILE_NETWORKS: Tuple[str, ...] = ("instagram.com", "instagr.am")

MESSAGING_HOSTS: Tuple[str, ...] = ("wa.me", "api.whatsapp.com")

DEFAULT_BLOCKED_DOMAINS: Tuple[str, ...] = (
    "whatsapp.com", "faq.whatsapp.com",
    "facebook.com", "m.facebook.com",
    "twitter.com", "x.com",
    "youtube.com",
    "google.com", "play.google.com",
    "apple.com",
    "linkedin.com",
    "tiktok.com",
    "spotify.com", "open.spotify.com",
    "pinterest.com",
    "wordpress.com", "wix.com", "squarespace.com",
    "cloudflare.com", "jsdelivr.net", "fonts.googleapis.com",
)

# Host prefixes that only ever serve static assets
_BLOCKED_HOST_PREFIXES: Tuple[str, ...] = ("cdn.",)

DEFAULT_BLOCKED_PATHS: Tuple[str, ...] = (
    # Privacy, terms, generic pages
    "/privacy", "/privacidade", "/terms", "/termos",
    "/policy", "/politica", "/cookies", "/legal",
    "/help", "/ajuda", "/support", "/suporte",
    "/about", "/sobre", "/contact", "/contato",
    "/faq", "/blog", "/careers", "/trabalhe-conosco",
    "/login", "/signup", "/register", "/cadastro",
    "/download", "/features", "/security",
    # Social network generic pages
    "/explore", "/reels", "/stories", "/p/", "/reel/",
    "/accounts/", "/directory/", "/legal/",
    "/groups", "/events", "/marketplace", "/watch",
    # Error pages
    "/404", "/error", "/not-found", "/maintenance",
)

# Blocked on third-party hosts, followed on the lead's own site
SITE_PAGE_PATHS = frozenset(["/about", "/sobre", "/contact", "/contato"])

# Keywords (href or anchor text) that make a link worth collecting
CONTACT_KEYWORDS: Tuple[str, ...] = (
    "contato", "contact", "sobre", "about", "fale-conosco", "fale conosco",
)

SCORE_BIO_LINK = 100
SCORE_CONTACT = 50
SCORE_SOCIAL = 40
SCORE_MESSAGING = 30
SCORE_ABOUT = 20


def _host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def is_bio_link(url: str) -> bool:
    host = _host(url)
    return any(_host_matches(host, service) for service in BIO_LINK_SERVICES)


def is_profile_network(url: str) -> bool:
    host = _host(url)
    return any(_host_matches(host, network) for network in PROFILE_NETWORKS)


def is_messaging_link(url: str) -> bool:
    lower = (url or "").lower()
    return "wa.me" in lower or "whatsapp" in lower


@dataclass
class LinkPolicy:
    """Blocklist + prioritisation for investigator link following."""

    blocked_domains: Sequence[str] = DEFAULT_BLOCKED_DOMAINS
    blocked_paths: Sequence[str] = DEFAULT_BLOCKED_PATHS
    contact_keywords: Sequence[str] = CONTACT_KEYWORDS
    extra_blocked: List[str] = field(default_factory=list)

    # ── Blocking ─────────────────────────────────────────────────

    def is_blocked(self, url: str, home_url: str = "") -> bool:
        """True when *url* should never be navigated to.

        Contact and about pages are blocked on third-party sites only; on
        the lead's own site (same host as *home_url*) they are fair game.
        """
        if not url:
            return True
        try:
            parsed = urlparse(url)
        except ValueError:
            return True
        if parsed.scheme not in ("http", "https"):
            return True

        host = (parsed.hostname or "").lower()
        path = parsed.path.lower() or "/"

        if host in MESSAGING_HOSTS:
            return False

        for domain in list(self.blocked_domains) + list(self.extra_blocked):
            if _host_matches(host, domain):
                logger.debug(f"[LINKS] Blocked (domain): {url}")
                return True
        if host.startswith(_BLOCKED_HOST_PREFIXES):
            logger.debug(f"[LINKS] Blocked (asset host): {url}")
            return True

        bio = is_bio_link(url)
        own_site = bool(home_url) and strip_www(host) == strip_www(_host(home_url))
        for segment in self.blocked_paths:
            if own_site and segment in SITE_PAGE_PATHS:
                continue
            if bio:
                # Bio-link pages: only the generic page itself is off limits
                if path == segment or path == segment.rstrip("/") or path == segment + "/":
                    logger.debug(f"[LINKS] Blocked (generic bio-link path): {url}")
                    return True
            elif segment in path:
                logger.debug(f"[LINKS] Blocked (path): {url}")
                return True
        return False

    # ── Collection ───────────────────────────────────────────────

    def is_candidate(self, href: str, text: str = "") -> bool:
        """Worth collecting from a page: contact/about pages, bio links,
        social profiles and messaging deep links."""
        lower = (href or "").lower()
        if not lower.startswith(("http://", "https://")):
            return False
        if is_bio_link(href) or is_profile_network(href) or is_messaging_link(href):
            return True
        label = (text or "").lower()
        return any(k in lower or k in label for k in self.contact_keywords)

    # ── Prioritisation ───────────────────────────────────────────

    def score(self, url: str, missing: Iterable[str]) -> int:
        missing = set(missing)
        lower = url.lower()
        score = 0
        if is_bio_link(url):
            score += SCORE_BIO_LINK
        if ("email" in missing or "phone" in missing) and (
            "contato" in lower or "contact" in lower
        ):
            score += SCORE_CONTACT
        if "handle" in missing and is_profile_network(url):
            score += SCORE_SOCIAL
        if is_messaging_link(url):
            score += SCORE_MESSAGING
        if "sobre" in lower or "about" in lower:
            score += SCORE_ABOUT
        return score

    def prioritize(self, links: Iterable[str], missing: Iterable[str]) -> List[str]:
        """Links sorted by descending score; ties keep page order."""
        missing = list(missing)
        return sorted(links, key=lambda link: self.score(link, missing), reverse=True)
