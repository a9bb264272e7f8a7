"""
Credential hand-off for jobs paused for authentication.
"""

from .cookie_store import CookieStore
from .credentials import Credentials, load_cookie_file, resolve_credentials

__all__ = ["CookieStore", "Credentials", "load_cookie_file", "resolve_credentials"]
