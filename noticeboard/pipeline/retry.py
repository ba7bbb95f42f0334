"""Execution-level retries around a whole fetch cycle.

Only unexpected exceptions are retried (a worker losing its database
connection, a bug surfacing mid-cycle). Slow or unreachable feeds come
back from the cycle as Failure values and are not retried here; they wait
for the next scheduled tick.
"""

from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential
import structlog

from ..config.settings import settings

logger = structlog.get_logger()

T = TypeVar("T")


def _log_retry(feed_id: int) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        logger.warning(
            "fetch_cycle_retrying",
            feed_id=feed_id,
            attempt=retry_state.attempt_number,
            wait_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
            error=str(retry_state.outcome.exception()),
        )
    return before_sleep


async def run_with_retry(
    unit: Callable[[int], Awaitable[T]],
    feed_id: int,
    attempts: int = None,
    backoff_seconds: float = None,
    sleep: Callable[[float], Awaitable[None]] = None,
) -> Optional[T]:
    """Run unit(feed_id), retrying up to `attempts` times on exceptions.

    Waits backoff_seconds * 2**n between tries (10s, 20s, 40s by default).
    Once retries are exhausted the error is logged and None returned.
    """
    attempts = settings.retry_attempts if attempts is None else attempts
    backoff_seconds = settings.retry_backoff_seconds if backoff_seconds is None else backoff_seconds

    retry_kwargs = dict(
        stop=stop_after_attempt(attempts + 1),
        wait=wait_exponential(multiplier=backoff_seconds, min=0),
        retry=retry_if_exception_type(Exception),
        before_sleep=_log_retry(feed_id),
        reraise=True,
    )
    if sleep is not None:
        retry_kwargs["sleep"] = sleep

    result = None
    try:
        async for attempt in AsyncRetrying(**retry_kwargs):
            with attempt:
                result = await unit(feed_id)
    except Exception as e:
        logger.error("fetch_cycle_gave_up", feed_id=feed_id, attempts=attempts + 1,
                     error=f"{type(e).__name__}: {e}", exc_info=True)
        return None
    return result
