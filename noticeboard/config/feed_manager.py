"""Feed management - CRUD operations for RSS feeds."""

from typing import List, Optional
from urllib.parse import urlsplit

from sqlalchemy.exc import IntegrityError
import structlog

from ..health.tracker import classify
from ..ingestion.fetcher import SafeFetcher
from ..ingestion.parser import FeedParser
from ..storage.database import FeedStorage
from ..storage.interfaces import Feed

logger = structlog.get_logger()


def normalize_feed_url(url: str) -> str:
    """Strip whitespace and require an absolute http(s) URL."""
    url = (url or "").strip()
    if not url:
        raise ValueError("Feed URL is required")
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        raise ValueError(f"Invalid feed URL: {url}")
    if parts.scheme.lower() not in ("http", "https") or not host:
        raise ValueError(f"Feed URL must be an absolute http or https URL: {url}")
    return url


class FeedManager:
    """Manages the feed registry on behalf of operators."""

    def __init__(self, storage: FeedStorage = None, critical_threshold: int = None):
        self.storage = storage or FeedStorage()
        self.critical_threshold = critical_threshold

    def list_feeds(self) -> List[dict]:
        """List all feeds with their derived health status."""
        return [self._with_status(feed) for feed in self.storage.list_feeds()]

    def get_feed(self, feed_id: int) -> Optional[dict]:
        """Get a specific feed by id."""
        feed = self.storage.get_feed(feed_id)
        return self._with_status(feed) if feed else None

    def add_feed(self, url: str, name: str, active: bool = True) -> Feed:
        """Add a new feed."""
        name = (name or "").strip()
        if not name:
            raise ValueError("Feed name is required")
        url = normalize_feed_url(url)

        if self.storage.get_feed_by_url(url):
            raise ValueError(f"Feed with URL already exists: {url}")

        try:
            feed = self.storage.add_feed(name=name, url=url, active=active)
        except IntegrityError:
            raise ValueError(f"Feed with URL already exists: {url}")

        logger.info("feed_added", id=feed.id, name=name, url=url)
        return feed

    def update_feed(self, feed_id: int, **updates) -> bool:
        """Update an existing feed's name, url or active flag."""
        changes = {k: v for k, v in updates.items() if k in ("name", "url", "active")}
        if "url" in changes:
            changes["url"] = normalize_feed_url(changes["url"])
        if "name" in changes:
            changes["name"] = (changes["name"] or "").strip()
            if not changes["name"]:
                raise ValueError("Feed name is required")

        try:
            feed = self.storage.update_feed(feed_id, **changes)
        except IntegrityError:
            raise ValueError(f"Feed with URL already exists: {changes.get('url')}")
        return feed is not None

    def delete_feed(self, feed_id: int) -> bool:
        """Delete a feed together with its items."""
        return self.storage.delete_feed(feed_id)

    def toggle_feed(self, feed_id: int, active: bool) -> bool:
        """Enable or disable a feed."""
        return self.update_feed(feed_id, active=active)

    async def validate_feed_url(self, url: str, fetcher: SafeFetcher = None) -> dict:
        """Check a feed URL by fetching and parsing it, without storing anything."""
        try:
            url = normalize_feed_url(url)
        except ValueError as e:
            return {"valid": False, "reason": "invalid_url", "error": str(e), "item_count": 0}

        fetched = await (fetcher or SafeFetcher()).fetch(url)
        if not fetched.ok:
            return {"valid": False, "reason": fetched.reason.value, "error": fetched.message, "item_count": 0}

        parsed = FeedParser().parse(fetched.value)
        if not parsed.ok:
            return {"valid": False, "reason": parsed.reason.value, "error": parsed.message, "item_count": 0}

        return {"valid": True, "reason": None, "error": None, "item_count": len(parsed.value)}

    def _with_status(self, feed: Feed) -> dict:
        return {
            **feed.to_dict(),
            "status": classify(feed.error_count, self.critical_threshold).value,
        }
