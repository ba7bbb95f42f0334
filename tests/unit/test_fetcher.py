"""Unit tests for the SSRF-safe fetcher. No test here touches the network."""

import asyncio

import aiohttp
import pytest

from noticeboard.ingestion.fetcher import SafeFetcher
from noticeboard.ingestion.interfaces import FailureReason
from noticeboard.ingestion.url_guard import UrlGuard
from tests.conftest import (
    FakeResponse, FakeSession, SAMPLE_RSS_XML, make_resolver, redirect, rss_response,
)

FEED_URL = "https://example.com/feed.rss"


def make_fetcher(session, **kwargs):
    return SafeFetcher(session=session, guard=UrlGuard(resolver=make_resolver()), **kwargs)


@pytest.mark.asyncio
class TestSafeFetcher:
    """Tests for SafeFetcher.fetch."""

    async def test_fetch_success_returns_body(self):
        session = FakeSession({FEED_URL: rss_response()})

        result = await make_fetcher(session).fetch(FEED_URL)

        assert result.ok
        assert result.value == SAMPLE_RSS_XML.encode("utf-8")
        assert session.requests == [FEED_URL]

    async def test_url_whitespace_is_stripped(self):
        session = FakeSession({FEED_URL: rss_response()})
        result = await make_fetcher(session).fetch(f"  {FEED_URL}\n")
        assert result.ok

    async def test_private_ip_never_requested(self):
        session = FakeSession({"http://127.0.0.1/feed": rss_response()})

        result = await make_fetcher(session).fetch("http://127.0.0.1/feed")

        assert not result.ok
        assert result.reason == FailureReason.PRIVATE_IP
        assert session.requests == []

    async def test_localhost_never_requested(self):
        session = FakeSession()
        result = await make_fetcher(session).fetch("http://localhost:3000/feed")
        assert result.reason == FailureReason.PRIVATE_IP
        assert session.requests == []

    async def test_invalid_scheme(self):
        session = FakeSession()
        result = await make_fetcher(session).fetch("ftp://example.com/feed.rss")
        assert result.reason == FailureReason.INVALID_URL
        assert session.requests == []

    async def test_redirect_is_followed(self):
        target = "https://feeds.example.org/rss"
        session = FakeSession({
            FEED_URL: redirect(target),
            target: rss_response(),
        })

        result = await make_fetcher(session).fetch(FEED_URL)

        assert result.ok
        assert session.requests == [FEED_URL, target]

    async def test_relative_redirect_resolved_against_current_url(self):
        session = FakeSession({
            FEED_URL: redirect("/rss/v2", status=302),
            "https://example.com/rss/v2": rss_response(),
        })

        result = await make_fetcher(session).fetch(FEED_URL)

        assert result.ok
        assert session.requests[-1] == "https://example.com/rss/v2"

    async def test_redirect_to_private_ip_blocked(self):
        """A public URL cannot launder a private target through a redirect."""
        session = FakeSession({
            FEED_URL: redirect("http://169.254.169.254/latest/meta-data/"),
        })

        result = await make_fetcher(session).fetch(FEED_URL)

        assert result.reason == FailureReason.PRIVATE_IP
        assert session.requests == [FEED_URL]

    async def test_later_hop_to_private_host_blocked(self):
        hop = "https://feeds.example.org/hop"
        session = FakeSession({
            FEED_URL: redirect(hop),
            hop: redirect("https://internal.example.com/feed", status=307),
        })

        result = await make_fetcher(session).fetch(FEED_URL)

        assert result.reason == FailureReason.PRIVATE_IP
        assert session.requests == [FEED_URL, hop]

    async def test_redirect_to_other_scheme_rejected(self):
        session = FakeSession({FEED_URL: redirect("file:///etc/passwd")})
        result = await make_fetcher(session).fetch(FEED_URL)
        assert result.reason == FailureReason.INVALID_URL

    async def test_three_redirects_allowed(self):
        session = FakeSession({
            FEED_URL: redirect("https://example.com/1"),
            "https://example.com/1": redirect("https://example.com/2"),
            "https://example.com/2": redirect("https://example.com/3"),
            "https://example.com/3": rss_response(),
        })

        result = await make_fetcher(session).fetch(FEED_URL)

        assert result.ok
        assert len(session.requests) == 4

    async def test_four_redirects_is_too_many(self):
        session = FakeSession({
            FEED_URL: redirect("https://example.com/1"),
            "https://example.com/1": redirect("https://example.com/2"),
            "https://example.com/2": redirect("https://example.com/3"),
            "https://example.com/3": redirect("https://example.com/4"),
            "https://example.com/4": rss_response(),
        })

        result = await make_fetcher(session).fetch(FEED_URL)

        assert result.reason == FailureReason.TOO_MANY_REDIRECTS
        assert "https://example.com/4" not in session.requests

    async def test_redirect_loop_is_bounded(self):
        session = FakeSession({FEED_URL: redirect(FEED_URL)})

        result = await make_fetcher(session, max_redirects=2).fetch(FEED_URL)

        assert result.reason == FailureReason.TOO_MANY_REDIRECTS
        assert len(session.requests) == 3

    async def test_redirect_without_location(self):
        session = FakeSession({FEED_URL: FakeResponse(status=302, reason="Found")})
        result = await make_fetcher(session).fetch(FEED_URL)
        assert result.reason == FailureReason.HTTP_ERROR

    async def test_http_error_includes_status(self):
        session = FakeSession({FEED_URL: FakeResponse(status=404, reason="Not Found")})

        result = await make_fetcher(session).fetch(FEED_URL)

        assert result.reason == FailureReason.HTTP_ERROR
        assert "404" in result.message

    async def test_declared_oversize_body_not_read(self):
        response = FakeResponse(status=200, body=b"x" * 2048, content_length=2048)
        session = FakeSession({FEED_URL: response})

        result = await make_fetcher(session, max_response_bytes=1024).fetch(FEED_URL)

        assert result.reason == FailureReason.RESPONSE_TOO_LARGE
        assert response.content.bytes_read == 0

    async def test_streamed_oversize_body_aborts_early(self):
        """Without Content-Length the read stops once the cap is crossed."""
        response = FakeResponse(status=200, body=b"x" * 10_000)
        session = FakeSession({FEED_URL: response})

        result = await make_fetcher(session, max_response_bytes=1000, chunk_bytes=100).fetch(FEED_URL)

        assert result.reason == FailureReason.RESPONSE_TOO_LARGE
        assert response.content.bytes_read <= 1100

    async def test_body_at_exact_cap_is_accepted(self):
        session = FakeSession({FEED_URL: FakeResponse(status=200, body=b"x" * 1000)})
        result = await make_fetcher(session, max_response_bytes=1000, chunk_bytes=300).fetch(FEED_URL)
        assert result.ok
        assert len(result.value) == 1000

    async def test_timeout(self):
        session = FakeSession({FEED_URL: asyncio.TimeoutError()})
        result = await make_fetcher(session).fetch(FEED_URL)
        assert result.reason == FailureReason.TIMEOUT

    async def test_aiohttp_timeout(self):
        session = FakeSession({FEED_URL: aiohttp.ServerTimeoutError("read timeout")})
        result = await make_fetcher(session).fetch(FEED_URL)
        assert result.reason == FailureReason.TIMEOUT

    async def test_connection_error(self):
        session = FakeSession({FEED_URL: aiohttp.ClientConnectionError("refused")})
        result = await make_fetcher(session).fetch(FEED_URL)
        assert result.reason == FailureReason.CONNECTION_ERROR

    async def test_os_error_is_connection_error(self):
        session = FakeSession({FEED_URL: ConnectionResetError("reset by peer")})
        result = await make_fetcher(session).fetch(FEED_URL)
        assert result.reason == FailureReason.CONNECTION_ERROR

    async def test_owned_session_closed_on_exit(self):
        fetcher = SafeFetcher(guard=UrlGuard(resolver=make_resolver()))
        async with fetcher:
            assert fetcher.session is not None
        assert fetcher.session is None

    async def test_hop_has_wall_clock_budget(self):
        fetcher = make_fetcher(FakeSession(), connect_timeout=2, read_timeout=3)
        assert fetcher.timeout.total == 5
        assert fetcher.timeout.sock_read == 3

    async def test_slow_drip_body_times_out(self):
        # each chunk arrives well inside the read timeout, the whole body does not
        drip = FakeResponse(status=200, body=b"x" * 40, delay=0.02)
        session = FakeSession({FEED_URL: drip})
        fetcher = make_fetcher(session, connect_timeout=0.05, read_timeout=0.05, chunk_bytes=1)

        result = await fetcher.fetch(FEED_URL)

        assert result.reason == FailureReason.TIMEOUT
        assert drip.content.bytes_read < 40
