"""Feed health state machine.

A feed's health lives in four columns: error_count, last_error,
last_fetched_at and last_successful_fetch_at. Every fetch cycle ends by
applying its outcome to those fields through `apply_outcome`, a pure
function the storage layer runs inside a single transaction. Health
status (healthy/warning/critical) is never stored; it is read off
error_count with `classify`.

No state is terminal: a critical feed becomes healthy again on its next
successful fetch.
"""

from datetime import datetime
from typing import Callable, Optional, Union

import structlog

from .interfaces import FeedHealth, HealthStatus
from ..config.settings import settings
from ..ingestion.interfaces import Failure, Success, utcnow

logger = structlog.get_logger()

Outcome = Union[Success, Failure]


def classify(error_count: int, critical_threshold: int = None) -> HealthStatus:
    """Derive health status from a consecutive failure count."""
    if critical_threshold is None:
        critical_threshold = settings.critical_error_threshold
    if error_count <= 0:
        return HealthStatus.HEALTHY
    if error_count < critical_threshold:
        return HealthStatus.WARNING
    return HealthStatus.CRITICAL


def truncate_error(message: str, max_length: int = None) -> str:
    """Bound an error message to max_length characters."""
    max_length = max_length or settings.last_error_max_length
    message = str(message)
    if len(message) <= max_length:
        return message
    return message[:max_length - 3] + "..."


def apply_outcome(
    health: FeedHealth,
    outcome: Outcome,
    now: datetime = None,
    max_error_length: int = None,
) -> FeedHealth:
    """Return the feed health that results from one fetch outcome."""
    now = now or utcnow()

    if outcome.ok:
        return FeedHealth(
            error_count=0,
            last_error=None,
            last_fetched_at=now,
            last_successful_fetch_at=now,
        )

    if outcome.is_skip:
        return health

    return FeedHealth(
        error_count=health.error_count + 1,
        last_error=truncate_error(outcome.message or outcome.reason.value, max_error_length),
        last_fetched_at=now,
        last_successful_fetch_at=health.last_successful_fetch_at,
    )


class HealthTracker:
    """Records fetch outcomes against feeds in storage."""

    def __init__(self, storage, critical_threshold: int = None, max_error_length: int = None):
        self.storage = storage
        self.critical_threshold = critical_threshold or settings.critical_error_threshold
        self.max_error_length = max_error_length or settings.last_error_max_length

    def record(self, feed_id: int, outcome: Outcome, now: datetime = None) -> Optional[FeedHealth]:
        """Apply outcome to the stored health of feed_id; None if the feed is gone."""
        transition: Callable[[FeedHealth], FeedHealth] = lambda health: apply_outcome(
            health, outcome, now=now, max_error_length=self.max_error_length
        )
        updated = self.storage.update_health(feed_id, transition)

        if updated is None:
            logger.warning("health_update_skipped", feed_id=feed_id, reason="feed_not_found")
        elif outcome.ok:
            logger.debug("feed_health_reset", feed_id=feed_id)
        else:
            logger.info(
                "feed_failure_recorded",
                feed_id=feed_id,
                reason=outcome.reason.value,
                error_count=updated.error_count,
                status=self.status(updated.error_count).value,
            )
        return updated

    def record_success(self, feed_id: int, now: datetime = None) -> Optional[FeedHealth]:
        return self.record(feed_id, Success(None), now=now)

    def record_failure(self, feed_id: int, failure: Failure, now: datetime = None) -> Optional[FeedHealth]:
        return self.record(feed_id, failure, now=now)

    def status(self, error_count: int) -> HealthStatus:
        return classify(error_count, self.critical_threshold)
