"""
Tests for run_config.py: mode profiles, overrides and environment.
"""

import argparse

import pytest

from leadcrawler.run_config import LeadRunConfig, mode_names


class TestProfiles:

    def test_default_profile_values(self):
        cfg = LeadRunConfig()
        assert cfg.delay_floor == 1.0
        assert cfg.delay_ceiling == 90.0
        assert cfg.direct_delay == 5.0
        assert cfg.extraction_timeout == 30.0
        assert cfg.init_attempts == 5

    def test_every_mode_builds(self):
        assert mode_names() == ["default", "directory", "registry", "social"]
        for name in mode_names():
            cfg = LeadRunConfig.for_mode(name)
            assert cfg.delay_floor <= cfg.delay_ceiling

    def test_profile_override_merges(self):
        cfg = LeadRunConfig(mode="social", profile={"jitter": 0.0})
        assert cfg.jitter == 0.0
        assert cfg.delay_floor == 3.0

    def test_unknown_attribute(self):
        with pytest.raises(AttributeError):
            LeadRunConfig().no_such_setting

    def test_invalid_values(self):
        with pytest.raises(ValueError):
            LeadRunConfig(mode="nope")
        with pytest.raises(ValueError):
            LeadRunConfig(margin=0.5)

    def test_links_for_depth(self):
        cfg = LeadRunConfig()
        assert cfg.links_for_depth(0) == 5
        assert cfg.links_for_depth(1) == 3
        assert cfg.links_for_depth(4) == cfg.links_beyond

    def test_rate_controller_from_profile(self):
        rate = LeadRunConfig(mode="registry").to_rate_controller()
        assert (rate.floor, rate.ceiling, rate.direct_start) == (2.0, 5.0, 2.0)


class TestOverrides:

    def test_environment(self):
        cfg = LeadRunConfig().apply_env_overrides({
            "SCRAPER_DELAY_MULTIPLIER": "2",
            "SCRAPER_MAX_CONCURRENT": "0",
            "LEADCRAWLER_RESULTS_DIR": "/data/out",
            "LEADCRAWLER_PAID_RELAYS": "a:1, b:2,,",
        })
        assert cfg.delay_floor == 2.0
        assert cfg.direct_delay == 10.0
        assert cfg.max_concurrent_jobs == 1
        assert cfg.results_dir == "/data/out"
        assert cfg.paid_relays == ["a:1", "b:2"]

    def test_invalid_environment_ignored(self):
        cfg = LeadRunConfig().apply_env_overrides({
            "SCRAPER_DELAY_MULTIPLIER": "fast",
            "SCRAPER_MAX_CONCURRENT": "many",
        })
        assert cfg.delay_floor == 1.0
        assert cfg.max_concurrent_jobs == 3

    def test_profiles_not_shared_between_instances(self):
        a = LeadRunConfig()
        a.apply_env_overrides({"SCRAPER_DELAY_MULTIPLIER": "3"})
        assert LeadRunConfig().delay_floor == 1.0

    def test_from_cli_args(self, monkeypatch):
        monkeypatch.delenv("LEADCRAWLER_RESULTS_DIR", raising=False)
        monkeypatch.delenv("SCRAPER_DELAY_MULTIPLIER", raising=False)
        args = argparse.Namespace(
            mode="directory", headless=False, results_dir="out", max_depth=2,
            margin=1.5, screenshots=True,
        )
        cfg = LeadRunConfig.from_cli_args(args)
        assert cfg.mode == "directory"
        assert cfg.headless is False
        assert cfg.results_dir == "out"
        assert cfg.max_depth == 2
        assert cfg.margin == 1.5
        assert cfg.capture_screenshots is True
        assert cfg.extraction_timeout == 10.0
