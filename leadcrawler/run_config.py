"""
Unified Run Configuration
=========================
Single source of truth for ALL engine defaults and runtime limits.

Every module (CLI, orchestrator, relay pool, investigator) reads from a
``LeadRunConfig``.  CLI flags and environment variables populate it; the
mode profile (delays, timeouts, retry budgets) is picked by name.

This eliminates duplicated magic numbers across the codebase.
"""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults: the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "mode": "default",
    "headless": True,
    "results_dir": "results",
    "max_concurrent_jobs": 3,
    "user_agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    # Relay pool
    "relay_country": "br",
    "probe_timeout_s": 3.0,
    "probe_target": "www.google.com:443",
    "max_probes_per_acquire": 15,
    "provider_timeout_s": 5.0,
    # Orchestration
    "margin": 1.2,                    # over-collection factor on the target
    "poll_interval_s": 1.0,           # pause / queue-empty polling
    "auth_timeout_s": 300.0,          # wait for externally supplied credentials
    "max_rotation_attempts": 10,
    "max_unit_retries": 2,
    "max_collection_passes": 3,
    "capture_screenshots": False,
    "allow_direct": True,             # fall back to no relay when the pool runs dry
    "eta_prior_s_per_item": 20.0,
    "cookie_state_path": "",
    # Investigation
    "max_depth": 5,
    "links_per_depth": {0: 5, 1: 3},
    "links_beyond": 2,
    "investigation_nav_timeout_s": 15.0,
    "investigation_settle_s": 1.0,     # pause after each investigation load
    "investigation_max_navigations": 40,
}

# Per-target-family delay / timeout / retry profiles (seconds)
_MODE_PROFILES: Dict[str, dict] = {
    "default": {
        "delay_floor": 1.0, "delay_ceiling": 90.0, "direct_delay": 5.0,
        "jitter": 1.0,
        "navigation_timeout": 60.0, "extraction_timeout": 30.0,
        "search_timeout": 120.0,
        "init_attempts": 5, "search_attempts": 10, "collection_attempts": 5,
    },
    "directory": {
        "delay_floor": 0.0, "delay_ceiling": 72.0, "direct_delay": 3.0,
        "jitter": 1.0,
        "navigation_timeout": 60.0, "extraction_timeout": 10.0,
        "search_timeout": 120.0,
        "init_attempts": 5, "search_attempts": 3, "collection_attempts": 3,
    },
    "social": {
        "delay_floor": 3.0, "delay_ceiling": 15.0, "direct_delay": 6.0,
        "jitter": 1.0,
        "navigation_timeout": 45.0, "extraction_timeout": 20.0,
        "search_timeout": 120.0,
        "init_attempts": 5, "search_attempts": 3, "collection_attempts": 3,
    },
    "registry": {
        "delay_floor": 2.0, "delay_ceiling": 5.0, "direct_delay": 2.0,
        "jitter": 1.0,
        "navigation_timeout": 30.0, "extraction_timeout": 15.0,
        "search_timeout": 60.0,
        "init_attempts": 5, "search_attempts": 3, "collection_attempts": 3,
    },
}


def mode_names() -> List[str]:
    return sorted(_MODE_PROFILES)


@dataclass
class LeadRunConfig:
    """
    Unified configuration consumed by every engine subsystem.

    Populate via:
      - ``LeadRunConfig()``                   → all defaults
      - ``LeadRunConfig(mode="social")``      → override one value
      - ``LeadRunConfig.from_cli_args(ns)``   → from argparse Namespace
    """

    # ---- Mode / identity ----
    mode: str = _DEFAULTS["mode"]
    headless: bool = _DEFAULTS["headless"]
    user_agent: str = _DEFAULTS["user_agent"]
    results_dir: str = _DEFAULTS["results_dir"]
    max_concurrent_jobs: int = _DEFAULTS["max_concurrent_jobs"]

    # ---- Relay pool ----
    relay_country: str = _DEFAULTS["relay_country"]
    probe_timeout_s: float = _DEFAULTS["probe_timeout_s"]
    probe_target: str = _DEFAULTS["probe_target"]
    max_probes_per_acquire: int = _DEFAULTS["max_probes_per_acquire"]
    provider_timeout_s: float = _DEFAULTS["provider_timeout_s"]
    paid_relays: List[str] = field(default_factory=list)

    # ---- Orchestration ----
    margin: float = _DEFAULTS["margin"]
    poll_interval_s: float = _DEFAULTS["poll_interval_s"]
    auth_timeout_s: float = _DEFAULTS["auth_timeout_s"]
    max_rotation_attempts: int = _DEFAULTS["max_rotation_attempts"]
    max_unit_retries: int = _DEFAULTS["max_unit_retries"]
    max_collection_passes: int = _DEFAULTS["max_collection_passes"]
    capture_screenshots: bool = _DEFAULTS["capture_screenshots"]
    allow_direct: bool = _DEFAULTS["allow_direct"]
    eta_prior_s_per_item: float = _DEFAULTS["eta_prior_s_per_item"]
    cookie_state_path: str = _DEFAULTS["cookie_state_path"]

    # ---- Investigation ----
    max_depth: int = _DEFAULTS["max_depth"]
    links_per_depth: Dict[int, int] = field(
        default_factory=lambda: dict(_DEFAULTS["links_per_depth"])
    )
    links_beyond: int = _DEFAULTS["links_beyond"]
    investigation_nav_timeout_s: float = _DEFAULTS["investigation_nav_timeout_s"]
    investigation_settle_s: float = _DEFAULTS["investigation_settle_s"]
    investigation_max_navigations: int = _DEFAULTS["investigation_max_navigations"]

    # ---- Mode profile (filled from _MODE_PROFILES in __post_init__) ----
    profile: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        if self.mode not in _MODE_PROFILES:
            raise ValueError(
                f"unknown mode {self.mode!r} (choose from {', '.join(mode_names())})"
            )
        merged = copy.deepcopy(_MODE_PROFILES[self.mode])
        merged.update(self.profile or {})
        self.profile = merged
        if self.margin < 1.0:
            raise ValueError("margin must be >= 1.0")

    # -----------------------------------------------------------------------
    # Profile accessors
    # -----------------------------------------------------------------------
    def __getattr__(self, name):
        # Only reached for attributes not defined on the dataclass
        profile = self.__dict__.get("profile") or {}
        if name in profile:
            return profile[name]
        raise AttributeError(name)

    def links_for_depth(self, depth: int) -> int:
        return self.links_per_depth.get(depth, self.links_beyond)

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def for_mode(cls, mode: str, **overrides) -> "LeadRunConfig":
        return cls(mode=mode, **overrides)

    @classmethod
    def from_cli_args(cls, args) -> "LeadRunConfig":
        """Build config from an argparse Namespace (``__main__.py``)."""
        cfg = cls(
            mode=getattr(args, "mode", _DEFAULTS["mode"]),
            headless=getattr(args, "headless", _DEFAULTS["headless"]),
            results_dir=getattr(args, "results_dir", None) or _DEFAULTS["results_dir"],
            max_depth=getattr(args, "max_depth", None) or _DEFAULTS["max_depth"],
            margin=getattr(args, "margin", None) or _DEFAULTS["margin"],
            capture_screenshots=getattr(args, "screenshots", False),
        )
        return cfg.apply_env_overrides()

    def apply_env_overrides(self, environ: Optional[dict] = None) -> "LeadRunConfig":
        """Apply ``SCRAPER_*`` / ``LEADCRAWLER_*`` environment overrides in place."""
        env = os.environ if environ is None else environ

        multiplier = env.get("SCRAPER_DELAY_MULTIPLIER")
        if multiplier:
            try:
                factor = float(multiplier)
            except ValueError:
                logger.warning(f"Ignoring invalid SCRAPER_DELAY_MULTIPLIER={multiplier!r}")
            else:
                for key in ("delay_floor", "delay_ceiling", "direct_delay"):
                    self.profile[key] = self.profile[key] * factor

        max_concurrent = env.get("SCRAPER_MAX_CONCURRENT")
        if max_concurrent:
            try:
                self.max_concurrent_jobs = max(1, int(max_concurrent))
            except ValueError:
                logger.warning(f"Ignoring invalid SCRAPER_MAX_CONCURRENT={max_concurrent!r}")

        results_dir = env.get("LEADCRAWLER_RESULTS_DIR")
        if results_dir:
            self.results_dir = results_dir

        paid = env.get("LEADCRAWLER_PAID_RELAYS")
        if paid:
            self.paid_relays = [p.strip() for p in paid.split(",") if p.strip()]

        return self

    # -----------------------------------------------------------------------
    # Converters
    # -----------------------------------------------------------------------
    def to_rate_controller(self, rng=None):
        """Return a ``RateController`` populated from this run config."""
        # Import here to avoid circular dependency
        from .rate_control import RateController
        return RateController(
            floor=self.profile["delay_floor"],
            ceiling=self.profile["delay_ceiling"],
            direct_start=self.profile["direct_delay"],
            jitter=self.profile["jitter"],
            rng=rng,
        )

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, label: str = "") -> None:
        """Emit a structured summary to the logger."""
        p = self.profile
        logger.info("=" * 60)
        logger.info("LEAD RUN CONFIG")
        logger.info("=" * 60)
        if label:
            logger.info(f"  Job:              {label}")
        logger.info(f"  Mode:             {self.mode}")
        logger.info(f"  Delays:           floor={p['delay_floor']}s ceiling={p['delay_ceiling']}s direct={p['direct_delay']}s")
        logger.info(f"  Timeouts:         nav={p['navigation_timeout']}s extract={p['extraction_timeout']}s")
        logger.info(f"  Margin:           {self.margin}x")
        logger.info(f"  Max Depth:        {self.max_depth}")
        logger.info(f"  Max Jobs:         {self.max_concurrent_jobs}")
        logger.info(f"  Results Dir:      {self.results_dir}")
        if self.paid_relays:
            logger.info(f"  Paid Relays:      {len(self.paid_relays)} configured")
        logger.info("=" * 60)
