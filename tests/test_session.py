"""
Tests for the transport boundary (session.py) without launching a browser.
"""

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from leadcrawler.errors import ConnectivityError, NavigationError, OperationTimeout
from leadcrawler.models import RelayCandidate
from leadcrawler.session import _relay_to_proxy, page_snapshot, translate_error

from fakes import FakeSession, run


class ScriptlessSession(FakeSession):
    """Session whose evaluate() always fails, as on pages with a strict CSP."""

    def __init__(self, html, url):
        super().__init__({})
        self.html = html
        self._url = url

    async def evaluate(self, script, arg=None):
        raise OperationTimeout("evaluate timed out")

    async def content(self):
        return self.html


class TestTranslateError:

    def test_timeout(self):
        exc = translate_error(PlaywrightTimeout("Timeout 30000ms exceeded."), "https://biz.example")
        assert isinstance(exc, OperationTimeout)
        assert "https://biz.example" in str(exc)

    def test_connectivity_signature(self):
        exc = translate_error(PlaywrightError("net::ERR_TUNNEL_CONNECTION_FAILED at https://x\nCall log: ..."))
        assert isinstance(exc, ConnectivityError)
        assert "\n" not in str(exc)

    def test_anything_else_is_navigation(self):
        exc = translate_error(PlaywrightError("Navigation interrupted"), "https://biz.example")
        assert isinstance(exc, NavigationError)
        assert exc.url == "https://biz.example"

    def test_relay_to_proxy(self):
        assert _relay_to_proxy(None) is None
        assert _relay_to_proxy(RelayCandidate(address="http://1.2.3.4:80")) == {"server": "http://1.2.3.4:80"}


class TestPageSnapshot:

    def test_script_result_used(self):
        session = FakeSession({"https://biz.example": {"title": "Biz", "text": "hello", "anchors": []}})

        async def scenario():
            await session.navigate("https://biz.example")
            return await page_snapshot(session)

        snapshot = run(scenario())
        assert snapshot.title == "Biz"
        assert snapshot.text == "hello"

    def test_falls_back_to_html(self):
        session = ScriptlessSession(
            '<html><title>Biz</title><body><a href="/contato">Contato</a></body></html>',
            "https://biz.example/",
        )
        snapshot = run(page_snapshot(session))
        assert snapshot.title == "Biz"
        assert snapshot.hrefs == ["https://biz.example/contato"]
