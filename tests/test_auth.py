"""
Tests for the credential hand-off helpers (auth/).
"""

import json
import os
import time

import pytest

from leadcrawler.auth import CookieStore, Credentials, load_cookie_file, resolve_credentials

COOKIES = [{"name": "sid", "value": "abc", "domain": ".biz.example", "path": "/"}]


class TestCredentials:

    def test_completeness(self):
        assert not Credentials().is_complete
        assert not Credentials(username="ana").is_complete
        assert Credentials(username="ana", password="x").is_complete
        assert Credentials(cookies=COOKIES).is_complete
        assert Credentials(cookies=COOKIES).has_cookies


class TestCookieFiles:

    def test_storage_state_and_bare_list(self, tmp_path):
        state = tmp_path / "state.json"
        state.write_text(json.dumps({"cookies": COOKIES + [{"value": "no name"}]}), encoding="utf-8")
        bare = tmp_path / "bare.json"
        bare.write_text(json.dumps(COOKIES), encoding="utf-8")
        assert load_cookie_file(state) == COOKIES
        assert load_cookie_file(bare) == COOKIES

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text('"just a string"', encoding="utf-8")
        with pytest.raises(ValueError):
            load_cookie_file(path)


class TestResolveCredentials:

    def test_first_complete_prefix_wins(self):
        env = {
            "SITE_USERNAME": "only-user",
            "LEADCRAWLER_USERNAME": "ana",
            "LEADCRAWLER_PASSWORD": "secret",
        }
        creds = resolve_credentials(("SITE", "LEADCRAWLER"), environ=env)
        assert creds.username == "ana"

    def test_cookie_file(self, tmp_path):
        path = tmp_path / "cookies.json"
        path.write_text(json.dumps(COOKIES), encoding="utf-8")
        creds = resolve_credentials(environ={"LEADCRAWLER_COOKIES_FILE": str(path)})
        assert creds.cookies == COOKIES

    def test_unreadable_cookie_file_is_skipped(self, tmp_path):
        env = {"LEADCRAWLER_COOKIES_FILE": str(tmp_path / "missing.json")}
        assert resolve_credentials(environ=env) is None

    def test_nothing_configured(self):
        assert resolve_credentials(environ={}) is None


class TestCookieStore:

    def test_save_then_load(self, tmp_path):
        store = CookieStore(str(tmp_path / "nested" / "auth_state.json"))
        assert store.load() == []
        store.save(COOKIES)
        assert store.has_valid_state()
        assert store.load() == COOKIES

    def test_expired_state(self, tmp_path):
        path = tmp_path / "auth_state.json"
        store = CookieStore(str(path), max_age_hours=1)
        store.save(COOKIES)
        old = time.time() - 2 * 3600
        os.utime(path, (old, old))
        assert not store.has_valid_state()
        assert store.load() == []

    def test_corrupt_or_empty_state(self, tmp_path):
        path = tmp_path / "auth_state.json"
        store = CookieStore(str(path))
        path.write_text("{not json", encoding="utf-8")
        assert not store.has_valid_state()
        store.save([])
        assert not store.has_valid_state()

    def test_clear(self, tmp_path):
        store = CookieStore(str(tmp_path / "auth_state.json"))
        store.save(COOKIES)
        store.clear()
        assert not (tmp_path / "auth_state.json").exists()
        store.clear()
