"""Interface definitions for feed ingestion."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Generic, List, Optional, TypeVar, Union
from enum import Enum


T = TypeVar("T")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class FailureReason(str, Enum):
    """Normalized reasons a fetch cycle can stop short of success."""
    FEED_INACTIVE = "feed_inactive"
    FEED_CRITICAL = "feed_critical"
    INVALID_URL = "invalid_url"
    PRIVATE_IP = "private_ip"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    HTTP_ERROR = "http_error"
    RESPONSE_TOO_LARGE = "response_too_large"
    EMPTY_RESPONSE = "empty_response"
    PARSE_ERROR = "parse_error"


# Skip conditions: reported to the caller but never recorded as feed failures
SKIP_REASONS = frozenset({FailureReason.FEED_INACTIVE, FailureReason.FEED_CRITICAL})


@dataclass(frozen=True)
class Success(Generic[T]):
    """Successful step of the fetch chain."""
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """Failed step of the fetch chain, normalized to (reason, message)."""
    reason: FailureReason
    message: str = ""

    @property
    def ok(self) -> bool:
        return False

    @property
    def is_skip(self) -> bool:
        return self.reason in SKIP_REASONS

    def __str__(self) -> str:
        if self.message:
            return f"{self.reason.value}: {self.message}"
        return self.reason.value


Result = Union[Success[T], Failure]


@dataclass
class CandidateItem:
    """An entry parsed from a feed, not yet persisted."""
    title: str = ""
    description: Optional[str] = None
    link: Optional[str] = None
    guid: Optional[str] = None
    published_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "title": self.title,
            "description": self.description,
            "link": self.link,
            "guid": self.guid,
            "published_at": self.published_at.isoformat() if self.published_at else None,
        }


class FetcherInterface:
    """Interface for feed fetching."""

    async def fetch(self, url: str) -> "Result[bytes]":
        """Fetch the raw feed document at url, single attempt."""
        raise NotImplementedError


class ParserInterface:
    """Interface for feed parsing."""

    def parse(self, content: bytes, now: datetime = None) -> "Result[List[CandidateItem]]":
        """Turn a feed document into candidate items, all or nothing."""
        raise NotImplementedError
