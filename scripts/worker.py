"""Production worker for scheduled feed refreshes.

This worker runs as a separate service and handles:
- A scheduling tick (every NB_SCHEDULER_TICK_MINUTES) that dispatches a
  fetch cycle for every active, non-critical feed due for a refresh
- Running those cycles concurrently, each wrapped in execution-level retries
- An hourly health summary of the feed registry

Usage:
    python scripts/worker.py

Environment Variables:
    DATABASE_URL: SQLAlchemy database URL (falls back to NB_DATABASE_URL, then SQLite)
    NB_REFRESH_INTERVAL_MINUTES, NB_MAX_CONCURRENT_FETCHES, NB_RETRY_ATTEMPTS, ...
"""

import os
import sys
import asyncio
import signal

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from noticeboard.config.settings import settings
from noticeboard.pipeline import AsyncioDispatcher, FeedFetchService, FetchScheduler, make_fetch_job
from noticeboard.storage.factory import get_feed_storage

logger = structlog.get_logger()


class FeedWorker:
    """Manages the scheduled fetch tick and the in-flight fetch cycles."""

    def __init__(self):
        self.storage = get_feed_storage()
        self.service = FeedFetchService(self.storage)
        self.dispatcher = AsyncioDispatcher(make_fetch_job(self.service))
        self.fetch_scheduler = FetchScheduler(self.storage, self.dispatcher)
        self.scheduler = AsyncIOScheduler()
        self.stopped = asyncio.Event()

    def setup_jobs(self):
        """Configure scheduled jobs."""
        self.scheduler.add_job(
            self.tick,
            IntervalTrigger(minutes=settings.scheduler_tick_minutes),
            id='fetch_tick',
            name='Dispatch due RSS feeds',
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60 * settings.scheduler_tick_minutes,
        )

        self.scheduler.add_job(
            self.health_check,
            IntervalTrigger(hours=1),
            id='health_check',
            name='Feed health summary',
            replace_existing=True
        )

        logger.info("jobs_configured", count=len(self.scheduler.get_jobs()))

    async def tick(self):
        """Dispatch fetch cycles for every due feed."""
        try:
            dispatched = await self.fetch_scheduler.tick()
            return {"dispatched": len(dispatched), "in_flight": self.dispatcher.in_flight}
        except Exception as e:
            logger.error("job_failed", job="fetch_tick", error=str(e))
            return {"error": str(e)}

    async def health_check(self):
        """Log a summary of feed health."""
        try:
            stats = self.storage.get_stats()
            if stats["critical_feeds"]:
                logger.warning("critical_feeds_present", count=stats["critical_feeds"])
            logger.info("health_check", **stats)
            return {"status": "healthy", "stats": stats}
        except Exception as e:
            logger.error("health_check_failed", error=str(e))
            return {"status": "unhealthy", "error": str(e)}

    def start(self):
        """Start the worker."""
        self.setup_jobs()
        self.scheduler.start()
        logger.info("worker_started", jobs=len(self.scheduler.get_jobs()))

    async def stop(self):
        """Stop scheduling, then let in-flight fetch cycles finish."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        await self.dispatcher.drain()
        logger.info("worker_stopped")


async def main():
    """Main entry point."""
    worker = FeedWorker()

    # Handle graceful shutdown
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, worker.stopped.set)

    worker.start()

    # Run immediately on startup
    logger.info("running_initial_tasks")
    await worker.tick()
    await worker.health_check()

    await worker.stopped.wait()
    logger.info("shutdown_signal_received")
    await worker.stop()


if __name__ == "__main__":
    asyncio.run(main())
