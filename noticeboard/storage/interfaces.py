"""Interface definitions for feed and item storage."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Set

from ..health.interfaces import FeedHealth
from ..ingestion.interfaces import CandidateItem, utcnow


@dataclass
class Feed:
    """An operator-registered RSS source."""
    id: Optional[int] = None
    name: str = ""
    url: str = ""
    active: bool = True
    last_fetched_at: Optional[datetime] = None
    last_successful_fetch_at: Optional[datetime] = None
    error_count: int = 0
    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def health(self) -> FeedHealth:
        return FeedHealth(
            error_count=self.error_count,
            last_error=self.last_error,
            last_fetched_at=self.last_fetched_at,
            last_successful_fetch_at=self.last_successful_fetch_at,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "active": self.active,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_fetched_at": self.last_fetched_at.isoformat() if self.last_fetched_at else None,
            "last_successful_fetch_at": (
                self.last_successful_fetch_at.isoformat()
                if self.last_successful_fetch_at else None
            ),
        }


@dataclass
class FeedItem:
    """A stored entry belonging to a feed."""
    id: Optional[int] = None
    feed_id: Optional[int] = None
    title: str = ""
    description: Optional[str] = None
    link: Optional[str] = None
    guid: str = ""
    published_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    feed_name: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "feed_id": self.feed_id,
            "feed_name": self.feed_name,
            "title": self.title,
            "description": self.description,
            "link": self.link,
            "guid": self.guid,
            "published_at": self.published_at.isoformat() if self.published_at else None,
        }


class StorageInterface:
    """Interface for the feed registry and item store."""

    def get_feed(self, feed_id: int) -> Optional[Feed]:
        """Get a feed by id."""
        raise NotImplementedError

    def list_due_feeds(self, now: datetime, refresh_interval, critical_threshold: int) -> List[Feed]:
        """Active, non-critical feeds whose refresh interval has elapsed."""
        raise NotImplementedError

    def existing_guids(self, feed_id: int) -> Set[str]:
        """All guids already stored for a feed."""
        raise NotImplementedError

    def save_items(self, feed_id: int, candidates: List[CandidateItem]) -> int:
        """Insert new candidates, return count of items created."""
        raise NotImplementedError

    def update_health(
        self, feed_id: int, transition: Callable[[FeedHealth], FeedHealth]
    ) -> Optional[FeedHealth]:
        """Apply a health transition to a feed in one transaction."""
        raise NotImplementedError

    def get_items(self, feed_id: int, limit: int = 10) -> List[FeedItem]:
        """Latest items of a feed."""
        raise NotImplementedError
