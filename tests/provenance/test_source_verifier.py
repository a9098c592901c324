"""Tests for SourceVerifier using httpx.MockTransport."""

import httpx
import pytest

from civic_pipeline.provenance.source_verifier import SourceVerifier


def make_verifier(handler, retries: int = 3) -> SourceVerifier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SourceVerifier(timeout=5, retries=retries, user_agent="test", client=client, backoff_multiplier=0)


class TestSourceVerifier:
    """Tests for reachability checks."""

    @pytest.mark.asyncio
    async def test_accessible_source(self):
        requests = []

        def handler(request):
            requests.append(request.method)
            return httpx.Response(200)

        result = await make_verifier(handler).verify("https://www.example-council.gov.uk/budget")

        assert result.accessible
        assert result.status == 200
        assert result.error is None
        assert result.redirect_url is None
        assert result.last_checked is not None
        assert requests == ["HEAD"]

    @pytest.mark.asyncio
    async def test_not_found_is_broken(self):
        result = await make_verifier(lambda r: httpx.Response(404)).verify("https://x.gov.uk/gone")

        assert not result.accessible
        assert result.status == 404

    @pytest.mark.asyncio
    async def test_head_not_allowed_falls_back_to_get(self):
        def handler(request):
            if request.method == "HEAD":
                return httpx.Response(405)
            return httpx.Response(200)

        result = await make_verifier(handler).verify("https://x.gov.uk/page")

        assert result.accessible
        assert result.status == 200

    @pytest.mark.asyncio
    async def test_redirect_recorded(self):
        def handler(request):
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "https://x.gov.uk/new"})
            return httpx.Response(200)

        result = await make_verifier(handler).verify("https://x.gov.uk/old")

        assert result.accessible
        assert result.redirect_url == "https://x.gov.uk/new"

    @pytest.mark.asyncio
    async def test_transient_errors_retried(self):
        calls = {"count": 0}

        def handler(request):
            calls["count"] += 1
            if calls["count"] < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200)

        result = await make_verifier(handler, retries=3).verify("https://x.gov.uk/flaky")

        assert result.accessible
        assert calls["count"] == 3

    @pytest.mark.asyncio
    async def test_persistent_errors_captured(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await make_verifier(handler, retries=2).verify("https://x.gov.uk/down")

        assert not result.accessible
        assert result.status == 0
        assert "connection refused" in result.error

    @pytest.mark.asyncio
    async def test_invalid_url_captured(self):
        result = await make_verifier(lambda r: httpx.Response(200)).verify("not a url")

        assert not result.accessible
        assert result.status == 0
        assert result.error

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["ftp://x.gov.uk/budget.pdf", "mailto:clerk@x.gov.uk", "/relative/path"])
    async def test_non_http_url_rejected_without_request(self, url):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        result = await make_verifier(handler).verify(url)

        assert result.status == 0
        assert "unsupported URL scheme" in result.error
        assert requests == []

    @pytest.mark.asyncio
    async def test_value_error_during_request_captured(self):
        def handler(request):
            raise ValueError("unknown url type")

        result = await make_verifier(handler).verify("https://x.gov.uk/page")

        assert not result.accessible
        assert result.status == 0
        assert "unknown url type" in result.error

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        verifier = SourceVerifier(client=client)

        await verifier.close()

        assert not client.is_closed
        await client.aclose()
