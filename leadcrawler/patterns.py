"""
Contact Patterns
================
Pattern matching for contact fields, in two flavours:

- **Zero-cost URL extraction** — pull an email, phone, messaging number or
  social handle straight out of a link (``mailto:``, ``tel:``, ``wa.me/...``,
  ``instagram.com/<handle>``) without navigating anywhere.
- **Page scanning** — run the same patterns over a page snapshot (visible
  text + anchors) taken with one ``evaluate`` call, or parsed from raw HTML
  with BeautifulSoup when the script cannot run.

Phone numbers are normalised to the Brazilian international format
``+55 (DD) NNNNN-NNNN`` that the lead exports use.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import unquote, urljoin

from bs4 import BeautifulSoup

from .utils import clean_text, digits_only

logger = logging.getLogger(__name__)

# Best-available HTML parser for BeautifulSoup
try:
    import lxml  # noqa: F401
    _BS_PARSER = "lxml"
except ImportError:
    _BS_PARSER = "html.parser"


EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PHONE_RE = re.compile(r"(?:\+55\s?)?(?:\(?\d{2}\)?[\s.-]?)?\d{4,5}[\s.-]?\d{4}")
REGISTRY_ID_RE = re.compile(r"\d{2}\.?\d{3}\.?\d{3}/?\d{4}-?\d{2}")
AT_HANDLE_RE = re.compile(r"@([a-zA-Z0-9_.]{3,30})")
SOCIAL_HANDLE_RE = re.compile(
    r"(?:instagram\.com|instagr\.am)/([a-zA-Z0-9_.]{1,30})/?(?:[?#]|$)", re.IGNORECASE
)
MESSAGING_URL_RES = [
    re.compile(r"wa\.me/(\d{10,13})", re.IGNORECASE),
    re.compile(r"api\.whatsapp\.com/send/?\?phone=(\d{10,13})", re.IGNORECASE),
    re.compile(r"whatsapp\.com/.*phone=(\d{10,13})", re.IGNORECASE),
]

# Path segments on the social network that are never a profile
RESERVED_HANDLES = frozenset([
    "p", "reel", "reels", "stories", "explore", "direct", "accounts",
    "directory", "legal", "about", "developer", "tv",
])

# Strings that mark template / placeholder addresses
_PLACEHOLDER_EMAIL_MARKERS = ("example.com", "youremail", "email@", "seuemail", "sentry")
_IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg")

COUNTRY_CODE = "55"


# ---------------------------------------------------------------------------
# Phones
# ---------------------------------------------------------------------------

def format_phone(raw: str) -> Optional[str]:
    """Normalise to ``+55 (DD) NNNNN-NNNN`` / ``+55 (DD) NNNN-NNNN``.

    Returns None for anything shorter than ten digits.
    """
    digits = digits_only(raw)
    if digits.startswith(COUNTRY_CODE) and len(digits) >= 12:
        digits = digits[2:]
    if len(digits) == 11:
        return f"+55 ({digits[:2]}) {digits[2:7]}-{digits[7:]}"
    if len(digits) == 10:
        return f"+55 ({digits[:2]}) {digits[2:6]}-{digits[6:]}"
    return f"+55 {digits}" if len(digits) >= 10 else None


def is_mobile_number(raw: str) -> bool:
    """Mobile numbers have eleven local digits with a 9 after the area code."""
    digits = digits_only(raw)
    if digits.startswith(COUNTRY_CODE) and len(digits) >= 12:
        digits = digits[2:]
    return len(digits) == 11 and digits[2] == "9"


def messaging_number_from_url(url: str) -> Optional[str]:
    for pattern in MESSAGING_URL_RES:
        match = pattern.search(url or "")
        if match:
            digits = match.group(1)
            if not digits.startswith(COUNTRY_CODE) and len(digits) <= 11:
                digits = COUNTRY_CODE + digits
            return format_phone(digits)
    return None


def is_messaging_url(url: str) -> bool:
    lower = (url or "").lower()
    return "wa.me" in lower or "whatsapp.com" in lower


def handle_from_url(url: str) -> Optional[str]:
    match = SOCIAL_HANDLE_RE.search(url or "")
    if not match:
        return None
    handle = match.group(1)
    if handle.lower() in RESERVED_HANDLES:
        return None
    return handle


def is_valid_email(email: str) -> bool:
    lower = email.lower()
    if any(marker in lower for marker in _PLACEHOLDER_EMAIL_MARKERS):
        return False
    # "logo@2x.png" style asset names match the email pattern
    return not lower.endswith(_IMAGE_SUFFIXES)


# ---------------------------------------------------------------------------
# Zero-cost URL extraction
# ---------------------------------------------------------------------------

@dataclass
class UrlExtraction:
    email: str = ""
    phone: str = ""
    messaging: str = ""
    handle: str = ""

    @property
    def found_anything(self) -> bool:
        return bool(self.email or self.phone or self.messaging or self.handle)

    @property
    def should_visit(self) -> bool:
        # A link that already yielded its datum has nothing more to give
        return not self.found_anything


def extract_from_url(url: str) -> UrlExtraction:
    """Pull contact data out of the URL text itself.  Never navigates."""
    result = UrlExtraction()
    if not url:
        return result
    lower = url.lower()

    if is_messaging_url(url):
        result.messaging = messaging_number_from_url(url) or ""

    handle = handle_from_url(url)
    if handle:
        result.handle = handle

    if lower.startswith("mailto:"):
        email = unquote(url[len("mailto:"):].split("?")[0]).strip()
        if "@" in email and is_valid_email(email):
            result.email = email

    if lower.startswith("tel:"):
        phone = format_phone(unquote(url[len("tel:"):].split("?")[0]))
        if phone:
            result.phone = phone

    return result


# ---------------------------------------------------------------------------
# Page snapshots
# ---------------------------------------------------------------------------

# One round-trip: visible text + every anchor (href resolved by the browser)
PAGE_SNAPSHOT_JS = """
() => {
    const anchors = [];
    document.querySelectorAll('a[href]').forEach(a => {
        anchors.push({href: a.href || a.getAttribute('href') || '',
                      text: (a.textContent || '').trim().slice(0, 200)});
    });
    return {
        url: window.location.href,
        title: document.title || '',
        description: (document.querySelector('meta[property="og:description"], meta[name="description"]') || {}).content || '',
        text: document.body ? document.body.innerText || '' : '',
        anchors: anchors,
    };
}
"""


@dataclass
class PageSnapshot:
    url: str = ""
    title: str = ""
    description: str = ""
    text: str = ""
    anchors: List[Dict[str, str]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "PageSnapshot":
        data = data or {}
        return cls(
            url=data.get("url", "") or "",
            title=data.get("title", "") or "",
            description=data.get("description", "") or "",
            text=data.get("text", "") or "",
            anchors=[a for a in data.get("anchors", []) or [] if isinstance(a, dict)],
        )

    @property
    def hrefs(self) -> List[str]:
        return [a.get("href", "") for a in self.anchors if a.get("href")]


def snapshot_from_html(html: str, page_url: str = "") -> PageSnapshot:
    """Static fallback: build a snapshot from raw HTML with BeautifulSoup."""
    soup = BeautifulSoup(html or "", _BS_PARSER)
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    anchors = []
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if page_url and not href.lower().startswith(("mailto:", "tel:", "javascript:")):
            href = urljoin(page_url, href)
        anchors.append({"href": href, "text": clean_text(a.get_text(" "))[:200]})
    title = soup.title.get_text(strip=True) if soup.title else ""
    meta = (soup.find("meta", attrs={"property": "og:description"})
            or soup.find("meta", attrs={"name": "description"}))
    description = meta.get("content", "") if meta else ""
    text = soup.get_text("\n")
    return PageSnapshot(
        url=page_url, title=title, description=description, text=text, anchors=anchors,
    )


@dataclass
class PageScan:
    """Everything the generic extraction found on one page."""
    email: str = ""
    registry_id: str = ""
    handle: str = ""
    phones: List[str] = field(default_factory=list)
    messaging: List[str] = field(default_factory=list)
    links: List[str] = field(default_factory=list)


def first_valid_email(text: str) -> str:
    for candidate in EMAIL_RE.findall(text or ""):
        if is_valid_email(candidate):
            return candidate
    return ""


def find_phones(text: str, limit: int = 5) -> List[str]:
    phones: List[str] = []
    for match in PHONE_RE.findall(text or ""):
        candidate = match.strip()
        if 10 <= len(digits_only(candidate)) <= 13 and candidate not in phones:
            phones.append(candidate)
        if len(phones) >= limit:
            break
    return phones


def find_text_handle(text: str) -> str:
    for match in AT_HANDLE_RE.finditer(text or ""):
        start = match.start()
        # "name@domain" is an email, not a handle
        if start > 0 and (text[start - 1].isalnum() or text[start - 1] in "._%+-"):
            continue
        handle = match.group(1).rstrip(".")
        if "." in handle and not re.fullmatch(r"[a-zA-Z0-9_]+", handle):
            continue
        return handle
    return ""


def scan_page(
    snapshot: PageSnapshot,
    link_filter: Optional[Callable[[str, str], bool]] = None,
) -> PageScan:
    """Generic extraction over one page snapshot.

    ``link_filter(href, anchor_text)`` decides which http(s) anchors are
    kept as candidate links; without it every http(s) anchor is kept.
    """
    scan = PageScan()
    text = snapshot.text or ""

    scan.email = first_valid_email(text)
    registry = REGISTRY_ID_RE.search(text)
    if registry:
        scan.registry_id = registry.group(0)
    scan.phones = find_phones(text)

    for anchor in snapshot.anchors:
        href = (anchor.get("href") or "").strip()
        if not href:
            continue
        lower = href.lower()
        if lower.startswith("mailto:") and not scan.email:
            scan.email = extract_from_url(href).email
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
        if not scan.handle:
            scan.handle = handle_from_url(href) or ""
        if href in scan.links or not lower.startswith(("http://", "https://")):
            continue
        if link_filter is None or link_filter(href, anchor.get("text", "")):
            scan.links.append(href)

    if not scan.handle:
        scan.handle = find_text_handle(text)
    return scan


def dedupe_phones(phones: Iterable[str]) -> List[str]:
    """Format and drop duplicates that differ only in punctuation."""
    unique: List[str] = []
    seen = set()
    for raw in phones:
        formatted = format_phone(raw)
        if not formatted:
            continue
        key = digits_only(formatted)
        if key in seen:
            continue
        seen.add(key)
        unique.append(formatted)
    return unique
