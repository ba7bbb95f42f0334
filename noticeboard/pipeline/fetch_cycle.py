"""One fetch cycle for one feed: fetch, parse, persist, record health."""

import time
from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from ..config.settings import settings
from ..health.interfaces import HealthStatus
from ..health.tracker import HealthTracker, classify
from ..ingestion.fetcher import SafeFetcher
from ..ingestion.interfaces import (
    Failure, FailureReason, FetcherInterface, ParserInterface, Result, Success, utcnow,
)
from ..ingestion.parser import FeedParser
from ..storage.interfaces import Feed, FeedItem

logger = structlog.get_logger()


@dataclass
class PreviewResult:
    """What an operator sees after a manual preview."""
    feed_id: int
    items: List[FeedItem] = field(default_factory=list)
    created_count: int = 0
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "feed_id": self.feed_id,
            "ok": self.ok,
            "created_count": self.created_count,
            "reason": self.failure.reason.value if self.failure else None,
            "message": self.failure.message if self.failure else None,
            "items": [item.to_dict() for item in self.items],
        }


class FeedFetchService:
    """Runs the fetch chain for a feed and records the outcome.

    Normalized failures come back as Failure values. Anything else
    (database down, programming errors) is raised so the retry wrapper
    around scheduled cycles can deal with it.
    """

    def __init__(
        self,
        storage,
        fetcher: FetcherInterface = None,
        parser: ParserInterface = None,
        tracker: HealthTracker = None,
        manual_respects_health_gate: bool = None,
        critical_threshold: int = None,
    ):
        self.storage = storage
        self.fetcher = fetcher or SafeFetcher()
        self.parser = parser or FeedParser()
        self.critical_threshold = critical_threshold or settings.critical_error_threshold
        self.tracker = tracker or HealthTracker(storage, critical_threshold=self.critical_threshold)
        if manual_respects_health_gate is None:
            manual_respects_health_gate = settings.manual_refresh_respects_health_gate
        self.manual_respects_health_gate = manual_respects_health_gate

    async def run(self, feed_id: int, manual: bool = False) -> Optional[Result[int]]:
        """Run one cycle. Returns Success(created_count), a Failure, or None if the feed is gone."""
        feed = self.storage.get_feed(feed_id)
        if feed is None:
            logger.warning("fetch_cycle_skipped", feed_id=feed_id, reason="feed_not_found")
            return None

        if not feed.active:
            logger.info("fetch_cycle_skipped", feed_id=feed_id, reason=FailureReason.FEED_INACTIVE.value)
            return Failure(FailureReason.FEED_INACTIVE, "Feed is inactive")

        if manual and self.manual_respects_health_gate and \
                classify(feed.error_count, self.critical_threshold) is HealthStatus.CRITICAL:
            logger.info("fetch_cycle_skipped", feed_id=feed_id, reason=FailureReason.FEED_CRITICAL.value)
            return Failure(
                FailureReason.FEED_CRITICAL,
                f"Feed has failed {feed.error_count} times in a row",
            )

        start_time = time.time()
        result = await self._fetch_and_store(feed)
        elapsed_ms = int((time.time() - start_time) * 1000)

        if result.ok:
            self.tracker.record_success(feed.id)
            logger.info("fetch_cycle_succeeded", feed_id=feed.id, feed=feed.name,
                        created=result.value, manual=manual, time_ms=elapsed_ms)
        else:
            self.tracker.record_failure(feed.id, result)
            logger.warning("fetch_cycle_failed", feed_id=feed.id, feed=feed.name,
                           reason=result.reason.value, error=result.message,
                           manual=manual, time_ms=elapsed_ms)
        return result

    async def _fetch_and_store(self, feed: Feed) -> Result[int]:
        fetched = await self.fetcher.fetch(feed.url)
        if not fetched.ok:
            return fetched

        if not fetched.value.strip():
            return Failure(FailureReason.EMPTY_RESPONSE, "Empty response from feed")

        parsed = self.parser.parse(fetched.value, now=utcnow())
        if not parsed.ok:
            return parsed

        created = self.storage.save_items(feed.id, parsed.value)
        return Success(created)

    async def refresh(self, feed_id: int) -> Optional[Result[int]]:
        """Operator-triggered cycle; ignores the refresh interval."""
        return await self.run(feed_id, manual=True)

    async def preview(self, feed_id: int, limit: int = None) -> Optional[PreviewResult]:
        """Refresh a feed, then return its latest items and any failure."""
        result = await self.refresh(feed_id)
        if result is None:
            return None

        limit = limit or settings.preview_limit
        if not result.ok:
            return PreviewResult(feed_id=feed_id, failure=result)

        return PreviewResult(
            feed_id=feed_id,
            items=self.storage.get_items(feed_id, limit=limit),
            created_count=result.value,
        )
