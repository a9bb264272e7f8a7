"""
Credentials
===========
What an operator hands a job parked in ``paused_for_auth``.

Credentials are applied to the job's page sessions as cookies; a username /
password pair is carried along for extractors that log in themselves.

Resolution helpers read ``{PREFIX}_USERNAME`` / ``{PREFIX}_PASSWORD`` /
``{PREFIX}_COOKIES_FILE`` from the environment (``.env`` is loaded by the
CLI), checking each prefix in order.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass
class Credentials:
    """Plain credential container: resolved once and applied by the orchestrator."""
    username: str = ""
    password: str = ""
    cookies: List[Dict[str, Any]] = field(default_factory=list)
    extra: Dict[str, str] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return bool(self.cookies) or bool(self.username and self.password)

    @property
    def has_cookies(self) -> bool:
        return bool(self.cookies)


def load_cookie_file(path) -> List[Dict[str, Any]]:
    """Cookies from a Playwright ``storage_state`` JSON file or a bare list."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("cookies", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a cookie list or storage_state object")
    return [c for c in data if isinstance(c, dict) and c.get("name")]


def resolve_credentials(
    prefixes: Sequence[str] = ("LEADCRAWLER",),
    environ: Optional[dict] = None,
) -> Optional[Credentials]:
    """First prefix with a username/password pair or a cookie file wins."""
    env = os.environ if environ is None else environ
    for prefix in prefixes:
        username = env.get(f"{prefix}_USERNAME", "")
        password = env.get(f"{prefix}_PASSWORD", "")
        cookie_file = env.get(f"{prefix}_COOKIES_FILE", "")
        cookies: List[Dict[str, Any]] = []
        if cookie_file:
            try:
                cookies = load_cookie_file(cookie_file)
            except (OSError, ValueError) as e:
                logger.warning(f"[AUTH] Could not read {prefix}_COOKIES_FILE: {e}")
        creds = Credentials(username=username, password=password, cookies=cookies)
        if creds.is_complete:
            logger.info(f"[AUTH] Credentials resolved from {prefix}_* environment")
            return creds
    return None
