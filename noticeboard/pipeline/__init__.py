"""Fetch pipeline orchestration."""

from .fetch_cycle import FeedFetchService, PreviewResult
from .retry import run_with_retry
from .scheduler import AsyncioDispatcher, FetchScheduler, TaskDispatcher, make_fetch_job

__all__ = [
    "FeedFetchService", "PreviewResult", "run_with_retry",
    "AsyncioDispatcher", "FetchScheduler", "TaskDispatcher", "make_fetch_job",
]
