"""
Utility Functions
URL normalization and small text helpers.
"""

import logging
import re
from typing import Optional
from urllib.parse import parse_qs, urlencode, urljoin, urlparse, urlunparse

logger = logging.getLogger(__name__)


class URLNormalizer:
    """
    Handles URL normalization so the same page is never visited twice.
    Removes fragments, normalizes trailing slashes, drops tracking params.
    """

    # Common tracking parameters to remove
    TRACKING_PARAMS = {
        'utm_source', 'utm_medium', 'utm_campaign', 'utm_term', 'utm_content',
        'fbclid', 'gclid', 'mc_cid', 'mc_eid', '_ga', '_gid', 'dclid', 'igshid',
    }

    # File extensions to skip (non-HTML resources)
    SKIP_EXTENSIONS = {
        '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.svg', '.webp', '.ico',
        '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
        '.zip', '.rar', '.tar', '.gz', '.7z',
        '.mp3', '.mp4', '.avi', '.mov', '.wmv', '.webm',
        '.css', '.js', '.json', '.xml', '.rss',
        '.woff', '.woff2', '.ttf', '.eot', '.otf'
    }

    def __init__(
        self,
        remove_tracking_params: bool = True,
        default_scheme: str = 'https',
        strip_www: bool = False
    ):
        """
        Args:
            remove_tracking_params: Remove common tracking query parameters
            default_scheme: Scheme assumed for bare hosts ("example.com/x")
            strip_www: Remove www. prefix from domain
        """
        self.remove_tracking_params = remove_tracking_params
        self.default_scheme = default_scheme
        self.strip_www = strip_www

    def normalize(self, url: str, base_url: str = None) -> Optional[str]:
        """
        Normalize a URL for consistent comparison.

        Returns:
            Normalized URL string or None if the URL cannot be navigated
            (mailto:, tel:, javascript:, binary resources, ...)
        """
        if not url:
            return None

        url = url.strip()

        if url.lower().startswith(('javascript:', 'mailto:', 'tel:', 'data:', '#')):
            return None

        if base_url:
            url = urljoin(base_url, url)
        elif '://' not in url and not url.startswith('//'):
            url = f"{self.default_scheme}://{url}"
        elif url.startswith('//'):
            url = f"{self.default_scheme}:{url}"

        try:
            parsed = urlparse(url)
        except ValueError:
            return None

        if parsed.scheme not in ('http', 'https'):
            return None
        if not parsed.netloc:
            return None

        netloc = parsed.netloc.lower()
        if self.strip_www and netloc.startswith('www.'):
            netloc = netloc[4:]

        path = parsed.path or '/'
        path = re.sub(r'/+', '/', path)

        # Remove trailing slash unless it's the root
        if path != '/' and path.endswith('/'):
            path = path.rstrip('/')

        lower_path = path.lower()
        for ext in self.SKIP_EXTENSIONS:
            if lower_path.endswith(ext):
                return None

        query = parsed.query
        if query and self.remove_tracking_params:
            params = parse_qs(query, keep_blank_values=True)
            filtered_params = {
                k: v for k, v in params.items()
                if k.lower() not in self.TRACKING_PARAMS
            }
            query = urlencode(filtered_params, doseq=True)

        normalized = urlunparse((
            parsed.scheme.lower(),
            netloc,
            path,
            parsed.params,
            query,
            ''
        ))

        # The root keeps no trailing slash either, so "x.com" == "x.com/"
        if normalized.endswith('/') and path == '/' and not query:
            normalized = normalized[:-1]

        return normalized

    def is_same_domain(self, url: str, base_url: str) -> bool:
        """Check if URL belongs to the same domain as base URL (www-insensitive)."""
        return strip_www(extract_domain(url)) == strip_www(extract_domain(base_url))


def extract_domain(url: str) -> str:
    """Extract the lower-cased host from URL (port dropped)."""
    try:
        return (urlparse(url).hostname or '').lower()
    except ValueError:
        return ''


def strip_www(host: str) -> str:
    return host[4:] if host.startswith('www.') else host


def is_valid_url(url: str) -> bool:
    """Check if URL is valid."""
    try:
        parsed = urlparse(url)
        return all([parsed.scheme in ('http', 'https'), parsed.netloc])
    except ValueError:
        return False


def clean_text(text: str) -> str:
    """Collapse whitespace."""
    if not text:
        return ""
    return re.sub(r'\s+', ' ', text).strip()


def digits_only(text: str) -> str:
    return re.sub(r'\D', '', text or '')
