"""
Tests for HttpFetcher against a local aiohttp test server.
"""

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from patchscout.fetchers.http import HttpFetcher, parse_retry_after, status_outcome
from patchscout.models import ErrorKind, FetchOutcome, FetchStrategy
from patchscout.sessions import DomainRateLimiter, DomainSession

ADVISORY_HTML = "<html><body><h1>Advisory</h1><p>Fixed in version 1.2.3.</p></body></html>"


async def advisory(request):
    resp = web.Response(text=ADVISORY_HTML, content_type="text/html")
    resp.set_cookie("sid", "abc123")
    return resp


async def echo_headers(request):
    return web.json_response({
        "referer": request.headers.get("Referer", ""),
        "cookie": request.headers.get("Cookie", ""),
        "user_agent": request.headers.get("User-Agent", ""),
        "accept_language": request.headers.get("Accept-Language", ""),
    })


async def blocked(request):
    return web.Response(status=403, text="Access Denied")


async def limited(request):
    return web.Response(status=429, text="slow down", headers={"Retry-After": "2"})


async def broken(request):
    return web.Response(status=503, text="maintenance")


async def missing(request):
    return web.Response(status=404, text="not found")


async def binary(request):
    return web.Response(body=b"\x89PNG\r\n", content_type="image/png")


async def odd_charset(request):
    return web.Response(body=b'{"id": 1}', headers={"Content-Type": "application/json; charset=x-no-such-codec"})


@pytest_asyncio.fixture
async def server():
    app = web.Application()
    app.router.add_get("/advisory", advisory)
    app.router.add_get("/echo", echo_headers)
    app.router.add_get("/blocked", blocked)
    app.router.add_get("/limited", limited)
    app.router.add_get("/broken", broken)
    app.router.add_get("/missing", missing)
    app.router.add_get("/logo.png", binary)
    app.router.add_get("/odd-charset", odd_charset)
    srv = TestServer(app)
    await srv.start_server()
    yield srv
    await srv.close()


@pytest_asyncio.fixture
async def fetcher(sleep):
    f = HttpFetcher(timeout_s=5, first_request_delay_ms=(0, 0), sleep=sleep)
    await f.start()
    yield f
    await f.close()


def url(server, path):
    return str(server.make_url(path))


class TestStatusClassification:
    """Test status-code and header helpers."""

    @pytest.mark.parametrize("status,outcome,kind", [
        (200, FetchOutcome.SUCCESS, ErrorKind.NONE),
        (403, FetchOutcome.BLOCKED, ErrorKind.BLOCKED),
        (429, FetchOutcome.FAILED, ErrorKind.RATE_LIMITED),
        (404, FetchOutcome.FAILED, ErrorKind.CLIENT_ERROR),
        (500, FetchOutcome.FAILED, ErrorKind.SERVER_ERROR),
    ])
    def test_status_outcome(self, status, outcome, kind):
        assert status_outcome(status) == (outcome, kind)

    def test_parse_retry_after(self):
        assert parse_retry_after("3") == 3000
        assert parse_retry_after("") is None
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None


@pytest.mark.asyncio
class TestHttpFetcher:
    """Test single requests and their classification."""

    async def test_success_returns_body_and_cookies(self, server, fetcher):
        result = await fetcher.fetch(url(server, "/advisory"))
        assert result.outcome == FetchOutcome.SUCCESS
        assert result.strategy == FetchStrategy.HTTP
        assert result.status_code == 200
        assert result.text == ADVISORY_HTML
        assert result.cookies == {"sid": "abc123"}

    async def test_browser_headers_and_session_cookies(self, server, fetcher):
        session = DomainSession(host="127.0.0.1", cookie_jar={"sid": "abc123", "lang": "en"})
        result = await fetcher.fetch(url(server, "/echo"), session=session)
        assert result.success
        assert result.json_data["referer"] == url(server, "/")
        assert result.json_data["cookie"] == "sid=abc123; lang=en"
        assert result.json_data["user_agent"].startswith("Mozilla/5.0")
        assert result.json_data["accept_language"].startswith("en-US")

    async def test_fetcher_does_not_write_session_cookies(self, server, fetcher):
        session = DomainSession(host="127.0.0.1")
        await fetcher.fetch(url(server, "/advisory"), session=session)
        assert session.cookie_jar == {}

    async def test_forbidden_is_blocked(self, server, fetcher):
        result = await fetcher.fetch(url(server, "/blocked"))
        assert result.outcome == FetchOutcome.BLOCKED
        assert result.status_code == 403
        assert result.content == b""

    async def test_rate_limited_carries_retry_after(self, server, fetcher):
        result = await fetcher.fetch(url(server, "/limited"))
        assert result.outcome == FetchOutcome.FAILED
        assert result.error_kind == ErrorKind.RATE_LIMITED
        assert result.retry_after_ms == 2000

    async def test_server_and_client_errors(self, server, fetcher):
        assert (await fetcher.fetch(url(server, "/broken"))).error_kind == ErrorKind.SERVER_ERROR
        assert (await fetcher.fetch(url(server, "/missing"))).error_kind == ErrorKind.CLIENT_ERROR

    async def test_binary_content_is_a_failure(self, server, fetcher):
        result = await fetcher.fetch(url(server, "/logo.png"))
        assert result.outcome == FetchOutcome.FAILED
        assert result.error_kind == ErrorKind.CONTENT

    async def test_connection_refused(self, fetcher):
        result = await fetcher.fetch("http://127.0.0.1:1/advisory")
        assert result.outcome == FetchOutcome.FAILED
        assert result.error_kind == ErrorKind.CONNECTION

    async def test_fetch_json_uses_api_strategy(self, server, fetcher):
        result = await fetcher.fetch_json(url(server, "/echo"), headers={"X-Test": "1"})
        assert result.strategy == FetchStrategy.API
        assert isinstance(result.json_data, dict)

    async def test_first_request_delay_only_on_first_attempt(self, server, sleep):
        async with HttpFetcher(first_request_delay_ms=(500, 1500), sleep=sleep) as f:
            await f.fetch(url(server, "/advisory"), attempt=1)
            assert len(sleep.delays) == 1
            assert 0.5 <= sleep.delays[0] <= 1.5
            await f.fetch(url(server, "/advisory"), attempt=2)
            assert len(sleep.delays) == 1

    async def test_rate_limiter_paces_each_request(self, server, sleep):
        limiter = DomainRateLimiter(min_interval_ms=60000, sleep=sleep)
        session = limiter.session_for("127.0.0.1")
        async with HttpFetcher(first_request_delay_ms=(0, 0), rate_limiter=limiter, sleep=sleep) as f:
            await f.fetch(url(server, "/advisory"), session=session)
            await f.fetch(url(server, "/advisory"), session=session)
        assert limiter.requests_sent("127.0.0.1") == 2
        assert len(sleep.delays) == 1
        assert sleep.delays[0] > 50

    async def test_unknown_json_charset_keeps_raw_body(self, server, fetcher):
        result = await fetcher.fetch_json(url(server, "/odd-charset"))
        assert result.success
        assert result.json_data is None
        assert result.content == b'{"id": 1}'
