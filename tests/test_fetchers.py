"""
Tests for the direct fetcher, the ScraperAPI proxy and the fetch router.
"""

from unittest.mock import MagicMock, patch

import httpx
import pytest
import responses
from responses import matchers

from releases.fetchers.http_fetcher import FetchResponse, HttpFetcher
from releases.fetchers.proxy import ProxyFetcher
from releases.fetchers.router import FetchRouter, is_blocked_domain


class TestHttpFetcher:
    """Direct httpx fetching."""

    def test_successful_fetch(self):
        def handler(request):
            assert "Chrome" in request.headers["user-agent"]
            return httpx.Response(
                200,
                text="<html><body>New Ears</body></html>",
                headers={"Content-Type": "text/html; charset=utf-8"},
            )

        with HttpFetcher(max_retries=0, transport=httpx.MockTransport(handler)) as fetcher:
            response = fetcher.fetch("https://parksblog.example.com/ears/")

        assert response.success
        assert response.status_code == 200
        assert "New Ears" in response.content
        assert response.content_type == "text/html"
        assert response.body.startswith(b"<html>")

    def test_http_error_status(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404, text="Not Found"))

        response = HttpFetcher(max_retries=0, transport=transport).fetch("https://example.com/x")

        assert not response.success
        assert response.status_code == 404
        assert response.error == "HTTP 404"

    def test_retries_transient_status(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, text="ok")

        fetcher = HttpFetcher(max_retries=1, transport=httpx.MockTransport(handler))
        with patch("releases.fetchers.http_fetcher.time.sleep") as mock_sleep:
            response = fetcher.fetch("https://example.com/feed/")

        assert response.success
        assert len(calls) == 2
        mock_sleep.assert_called_once_with(1)

    def test_returns_last_retryable_response(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(429))
        fetcher = HttpFetcher(max_retries=1, transport=transport)

        with patch("releases.fetchers.http_fetcher.time.sleep"):
            response = fetcher.fetch("https://example.com/feed/")

        assert not response.success
        assert response.status_code == 429

    def test_connection_error_is_reported(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        response = HttpFetcher(max_retries=0, transport=httpx.MockTransport(handler)).fetch(
            "https://example.com/feed/"
        )

        assert not response.success
        assert response.status_code == 0
        assert "connection refused" in response.error

    def test_download_returns_bytes(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, content=b"\xff\xd8jpeg", headers={"content-type": "image/jpeg"})
        )

        response = HttpFetcher(max_retries=0, transport=transport).download(
            "https://cdn.example.com/ears.jpg", max_bytes=1024
        )

        assert response.success
        assert response.body == b"\xff\xd8jpeg"
        assert response.content_type == "image/jpeg"

    def test_download_rejects_declared_size(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"x" * 2048))

        response = HttpFetcher(max_retries=0, transport=transport).download(
            "https://cdn.example.com/huge.jpg", max_bytes=1024
        )

        assert not response.success
        assert response.error == "Too large (2048 bytes)"

    def test_download_error_status(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(403))

        response = HttpFetcher(max_retries=0, transport=transport).download(
            "https://cdn.example.com/private.jpg", max_bytes=1024
        )

        assert not response.success
        assert response.error == "HTTP 403"


class TestProxyFetcher:
    """ScraperAPI proxy client."""

    def test_not_configured(self):
        proxy = ProxyFetcher(api_key="")

        response = proxy.fetch("https://wdwnt.com/article/")

        assert not proxy.is_configured
        assert not response.success
        assert response.via_proxy
        assert response.error == "Proxy not configured"

    @responses.activate
    def test_fetches_through_proxy(self):
        responses.add(
            responses.GET,
            ProxyFetcher.API_URL,
            body="<html>Proxied</html>",
            status=200,
            content_type="text/html",
            match=[matchers.query_param_matcher({
                "api_key": "test-key",
                "url": "https://wdwnt.com/article/",
            })],
        )

        response = ProxyFetcher(api_key="test-key").fetch("https://wdwnt.com/article/")

        assert response.success
        assert response.via_proxy
        assert response.content == "<html>Proxied</html>"

    @responses.activate
    def test_proxy_error_status(self):
        responses.add(responses.GET, ProxyFetcher.API_URL, status=500)

        response = ProxyFetcher(api_key="test-key").fetch("https://wdwnt.com/article/")

        assert not response.success
        assert response.error == "Proxy HTTP 500"


class TestFetchRouter:
    """Routing between direct and proxied fetches."""

    @pytest.mark.parametrize("url,expected", [
        ("https://wdwnt.com/2025/01/new-ears/", True),
        ("https://www.blogmickey.com/feed/", True),
        ("https://notwdwnt.com/feed/", False),
        ("https://parksblog.example.com/feed/", False),
    ])
    def test_blocked_domains(self, url, expected):
        assert is_blocked_domain(url) is expected

    def _router(self, direct_status=200, proxy_configured=True):
        direct = MagicMock()
        direct.fetch.return_value = FetchResponse(
            content="direct", status_code=direct_status, success=direct_status == 200
        )
        proxy = MagicMock()
        proxy.is_configured = proxy_configured
        proxy.fetch.return_value = FetchResponse(
            content="proxy", status_code=200, success=True, via_proxy=True
        )
        return FetchRouter(direct=direct, proxy=proxy)

    def test_blocked_domain_uses_proxy(self):
        router = self._router()

        response = router.fetch("https://wdwnt.com/article/")

        assert response.via_proxy
        router.direct.fetch.assert_not_called()

    def test_blocked_domain_without_proxy_goes_direct(self):
        router = self._router(proxy_configured=False)

        response = router.fetch("https://wdwnt.com/article/")

        assert response.content == "direct"

    def test_other_domains_go_direct(self):
        router = self._router()

        response = router.fetch("https://parksblog.example.com/article/")

        assert response.content == "direct"
        router.proxy.fetch.assert_not_called()

    def test_forbidden_direct_fetch_retries_through_proxy(self):
        router = self._router(direct_status=403)

        response = router.fetch("https://parksblog.example.com/article/")

        assert response.content == "proxy"
