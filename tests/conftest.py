"""Pytest configuration and shared fixtures."""

import asyncio
import os
import socket
import tempfile
import pytest
from pathlib import Path

# Add project root to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))


SAMPLE_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Test Feed</title>
    <link>https://example.com</link>
    <description>Test Description</description>
    <item>
      <title>Item A</title>
      <link>https://example.com/a</link>
      <description>Description A</description>
      <pubDate>Mon, 18 Nov 2024 10:00:00 +0000</pubDate>
      <guid>a</guid>
    </item>
    <item>
      <title>Item B</title>
      <link>https://example.com/b</link>
      <description>Description B</description>
      <pubDate>Mon, 18 Nov 2024 11:00:00 +0000</pubDate>
      <guid>b</guid>
    </item>
  </channel>
</rss>"""

SAMPLE_ATOM_XML = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Test Atom Feed</title>
  <link href="https://example.com"/>
  <id>urn:uuid:feed</id>
  <updated>2026-02-13T10:00:00Z</updated>
  <entry>
    <title>Atom Entry 1</title>
    <link href="https://example.com/entry-1"/>
    <id>urn:uuid:entry-1</id>
    <summary>Summary of entry 1</summary>
    <updated>2026-02-13T10:00:00Z</updated>
  </entry>
</feed>"""

# Documents resolve to these in the fake resolver
PUBLIC_IP = "93.184.216.34"
PUBLIC_HOSTS = {
    "example.com": [PUBLIC_IP],
    "feeds.example.org": ["203.0.113.10"],
    "cdn.example.net": ["198.51.100.7", "2001:db8::7"],
    "internal.example.com": ["10.1.2.3"],
    "loopback.example.com": ["127.0.0.1"],
    "mixed.example.com": [PUBLIC_IP, "192.168.1.20"],
}


def make_resolver(mapping=None, calls=None):
    """An async resolver backed by a dict; unknown hosts fail like DNS would."""
    mapping = PUBLIC_HOSTS if mapping is None else mapping

    async def resolve(host):
        if calls is not None:
            calls.append(host)
        if host in mapping:
            return list(mapping[host])
        try:
            # IP literals resolve to themselves
            socket.inet_pton(socket.AF_INET6 if ":" in host else socket.AF_INET, host)
            return [host]
        except OSError:
            raise socket.gaierror(socket.EAI_NONAME, f"Name or service not known: {host}")

    return resolve


class FakeContent:
    """Stands in for aiohttp's StreamReader."""

    def __init__(self, body: bytes, delay: float = 0):
        self.body = body
        self.delay = delay
        self.bytes_read = 0

    async def iter_chunked(self, n):
        for start in range(0, len(self.body), n):
            if self.delay:
                await asyncio.sleep(self.delay)
            chunk = self.body[start:start + n]
            self.bytes_read += len(chunk)
            yield chunk


class FakeResponse:
    """Stands in for aiohttp.ClientResponse used as an async context manager."""

    def __init__(self, status=200, body=b"", headers=None, reason="OK", content_length=None, delay=0):
        self.status = status
        self.reason = reason
        self.headers = headers or {}
        self.content = FakeContent(body, delay)
        self.content_length = content_length

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False


class FakeSession:
    """Routes GET requests to canned responses and records every request."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.requests = []

    def get(self, url, **kwargs):
        self.requests.append(url)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(status=404, reason="Not Found")
        if isinstance(route, BaseException):
            raise route
        if isinstance(route, list):
            return route.pop(0)
        return route


def redirect(location, status=301):
    return FakeResponse(status=status, reason="Moved", headers={"Location": location})


def rss_response(body=SAMPLE_RSS_XML):
    data = body.encode("utf-8") if isinstance(body, str) else body
    return FakeResponse(status=200, body=data, content_length=len(data))


@pytest.fixture
def temp_db():
    """Provide a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield f"sqlite:///{db_path}"
    # Cleanup
    try:
        os.unlink(db_path)
    except FileNotFoundError:
        pass


@pytest.fixture
def storage(temp_db):
    """A FeedStorage backed by a temporary SQLite database."""
    from noticeboard.storage.database import FeedStorage
    return FeedStorage(temp_db)


@pytest.fixture
def sample_feed(storage):
    """A registered, active feed."""
    return storage.add_feed(name="Example", url="https://example.com/feed.rss")


@pytest.fixture
def resolver():
    return make_resolver()


@pytest.fixture
def sample_rss_bytes():
    return SAMPLE_RSS_XML.encode("utf-8")


@pytest.fixture
def sample_candidates():
    """Two parsed candidates with guids "a" and "b"."""
    from datetime import datetime
    from noticeboard.ingestion.interfaces import CandidateItem
    return [
        CandidateItem(title="Item A", description="Description A", link="https://example.com/a",
                      guid="a", published_at=datetime(2024, 11, 18, 10, 0, 0)),
        CandidateItem(title="Item B", description="Description B", link="https://example.com/b",
                      guid="b", published_at=datetime(2024, 11, 18, 11, 0, 0)),
    ]
