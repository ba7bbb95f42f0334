"""Feed ingestion - fetching and parsing RSS feeds."""

from .interfaces import (
    CandidateItem, Failure, FailureReason, Success,
    FetcherInterface, ParserInterface,
)
from .url_guard import UrlGuard
from .fetcher import SafeFetcher
from .parser import FeedParser

__all__ = [
    "CandidateItem", "Failure", "FailureReason", "Success",
    "FetcherInterface", "ParserInterface",
    "UrlGuard", "SafeFetcher", "FeedParser",
]
