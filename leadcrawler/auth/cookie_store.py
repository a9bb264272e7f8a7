"""
Cookie Store
============
Persists the cookies of an authenticated session so the next job against
the same site starts logged in instead of parking in ``paused_for_auth``.

Stored in Playwright's ``storage_state`` layout (``{"cookies": [...]}``)
so the file can also be fed to a browser context directly.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

_DEFAULT_STATE_PATH = "auth_state.json"
_MAX_STATE_AGE_HOURS = 8


class CookieStore:
    def __init__(self, state_path: str = _DEFAULT_STATE_PATH, max_age_hours: float = _MAX_STATE_AGE_HOURS):
        self.state_path = state_path
        self.max_age_hours = max_age_hours

    def has_valid_state(self) -> bool:
        """File exists, parses, holds at least one cookie and is not too old."""
        path = Path(self.state_path)
        if not path.exists():
            return False
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning(f"[AUTH] Corrupt cookie state: {exc}")
            return False
        if not data.get("cookies"):
            logger.info("[AUTH] Cookie state has no cookies, stale")
            return False
        age_hours = (time.time() - path.stat().st_mtime) / 3600
        if age_hours > self.max_age_hours:
            logger.info(
                f"[AUTH] Cookie state is {age_hours:.1f}h old, expired (max {self.max_age_hours}h)"
            )
            return False
        return True

    def load(self) -> List[Dict[str, Any]]:
        if not self.has_valid_state():
            return []
        data = json.loads(Path(self.state_path).read_text(encoding="utf-8"))
        cookies = data.get("cookies", [])
        logger.info(f"[AUTH] Loaded {len(cookies)} saved cookies")
        return cookies

    def save(self, cookies: List[Dict[str, Any]]) -> None:
        path = Path(self.state_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"cookies": cookies, "origins": []}, indent=2), encoding="utf-8")
        logger.info(f"[AUTH] Saved {len(cookies)} cookies to {path}")

    def clear(self) -> None:
        path = Path(self.state_path)
        if path.exists():
            path.unlink()
            logger.info("[AUTH] Cleared saved cookie state")
