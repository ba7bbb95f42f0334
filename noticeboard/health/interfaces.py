"""Interface definitions for feed health tracking."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class HealthStatus(Enum):
    """Derived health of a feed, from its consecutive failure count."""
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class FeedHealth:
    """The four feed fields the health tracker owns."""
    error_count: int = 0
    last_error: Optional[str] = None
    last_fetched_at: Optional[datetime] = None
    last_successful_fetch_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_fetched_at": self.last_fetched_at.isoformat() if self.last_fetched_at else None,
            "last_successful_fetch_at": (
                self.last_successful_fetch_at.isoformat()
                if self.last_successful_fetch_at else None
            ),
        }
