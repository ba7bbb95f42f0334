"""Scheduled dispatch of fetch cycles."""

import asyncio
import functools
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Set

import structlog

from .retry import run_with_retry
from ..config.settings import settings

logger = structlog.get_logger()


class TaskDispatcher:
    """Interface for handing a fetch cycle to an execution substrate."""

    def dispatch(self, feed_id: int) -> None:
        """Enqueue a fetch cycle for feed_id without waiting for it."""
        raise NotImplementedError


class AsyncioDispatcher(TaskDispatcher):
    """Runs each dispatched cycle as its own asyncio task.

    With max_concurrent set, at most that many jobs run at once and the
    rest wait on the semaphore. Jobs built by make_fetch_job bound
    themselves, so the worker leaves it unset. Must be used from inside a
    running event loop.
    """

    def __init__(self, job: Callable[[int], Awaitable], max_concurrent: int = None):
        self.job = job
        self.semaphore = asyncio.Semaphore(max_concurrent) if max_concurrent else None
        self._tasks: Set[asyncio.Task] = set()

    def dispatch(self, feed_id: int) -> None:
        task = asyncio.get_running_loop().create_task(
            self._run(feed_id), name=f"fetch-feed-{feed_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, feed_id: int) -> None:
        if self.semaphore is None:
            await self.job(feed_id)
            return
        async with self.semaphore:
            await self.job(feed_id)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every dispatched cycle to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def make_fetch_job(
    service,
    attempts: int = None,
    backoff_seconds: float = None,
    max_concurrent: int = None,
) -> Callable[[int], Awaitable]:
    """The unit of work the dispatcher runs: one retried fetch cycle.

    A slot is held only while service.run executes, never across retry
    backoff.
    """
    slots = asyncio.Semaphore(max_concurrent or settings.max_concurrent_fetches)

    async def run_cycle(feed_id: int):
        async with slots:
            return await service.run(feed_id)

    return functools.partial(
        run_with_retry, run_cycle, attempts=attempts, backoff_seconds=backoff_seconds
    )


class FetchScheduler:
    """Picks the feeds due for a refresh and dispatches one cycle each."""

    def __init__(
        self,
        storage,
        dispatcher: TaskDispatcher,
        refresh_interval: timedelta = None,
        critical_threshold: int = None,
    ):
        self.storage = storage
        self.dispatcher = dispatcher
        self.refresh_interval = refresh_interval or timedelta(minutes=settings.refresh_interval_minutes)
        self.critical_threshold = critical_threshold or settings.critical_error_threshold

    async def tick(self, now: datetime = None) -> List[int]:
        """Dispatch every due feed; returns the dispatched feed ids."""
        feeds = self.storage.list_due_feeds(
            now=now,
            refresh_interval=self.refresh_interval,
            critical_threshold=self.critical_threshold,
        )

        dispatched = []
        for feed in feeds:
            self.dispatcher.dispatch(feed.id)
            dispatched.append(feed.id)

        logger.info("scheduler_tick", dispatched=len(dispatched), feed_ids=dispatched)
        return dispatched
