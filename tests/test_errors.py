"""
Tests for errors.py: tagged kinds and the message-signature fallback.
"""

import asyncio

import pytest

from leadcrawler.errors import (
    CONNECTIVITY_SIGNATURES,
    AuthRequiredError,
    AuthTimeout,
    ConnectivityError,
    ErrorKind,
    ExtractionError,
    JobCancelled,
    NavigationError,
    OperationTimeout,
    PoolExhausted,
    classify_error,
    is_tunnel_failure,
)


class TimeoutErrorFromBrowser(Exception):
    """Stands in for a browser library's own timeout type."""


# ====================================================================
# Tagged errors
# ====================================================================

class TestTaggedErrors:

    @pytest.mark.parametrize("exc,kind", [
        (JobCancelled("stop"), ErrorKind.CANCELLED),
        (asyncio.CancelledError(), ErrorKind.CANCELLED),
        (ConnectivityError("relay down"), ErrorKind.CONNECTIVITY),
        (OperationTimeout("slow page"), ErrorKind.TIMEOUT),
        (NavigationError("HTTP 404", status=404), ErrorKind.EXTRACTION),
        (ExtractionError("no name"), ErrorKind.EXTRACTION),
        (AuthRequiredError(), ErrorKind.AUTH_REQUIRED),
        (PoolExhausted("empty"), ErrorKind.POOL_EXHAUSTED),
        (AuthTimeout("nobody came"), ErrorKind.UNKNOWN),
    ])
    def test_kind(self, exc, kind):
        assert classify_error(exc) == kind

    def test_timeout_with_tunnel_signature_is_connectivity(self):
        exc = OperationTimeout("page.goto: net::ERR_TIMED_OUT")
        assert classify_error(exc) == ErrorKind.CONNECTIVITY

    def test_navigation_error_keeps_url_and_status(self):
        exc = NavigationError("HTTP 503", url="https://biz.example", status=503)
        assert exc.url == "https://biz.example"
        assert exc.status == 503


# ====================================================================
# Untagged errors
# ====================================================================

class TestSignatureFallback:

    @pytest.mark.parametrize("signature", CONNECTIVITY_SIGNATURES)
    def test_every_signature_is_connectivity(self, signature):
        assert classify_error(RuntimeError(f"page.goto failed: {signature} at x")) == ErrorKind.CONNECTIVITY

    def test_untagged_timeouts(self):
        assert classify_error(asyncio.TimeoutError()) == ErrorKind.TIMEOUT
        assert classify_error(TimeoutErrorFromBrowser("30000ms exceeded")) == ErrorKind.TIMEOUT

    def test_os_errors_are_connectivity(self):
        assert classify_error(ConnectionResetError()) == ErrorKind.CONNECTIVITY

    def test_anything_else_is_unknown(self):
        assert classify_error(ValueError("bad selector")) == ErrorKind.UNKNOWN

    def test_tunnel_failure(self):
        assert is_tunnel_failure(ConnectivityError("refused"))
        assert is_tunnel_failure(RuntimeError("net::ERR_PROXY_CONNECTION_FAILED"))
        assert not is_tunnel_failure(RuntimeError("net::ERR_NAME_NOT_RESOLVED"))
