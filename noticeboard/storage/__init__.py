"""Database storage and models."""

from .database import FeedStorage
from .interfaces import Feed, FeedItem, StorageInterface
from .models import FeedModel, FeedItemModel, init_db

__all__ = ["FeedStorage", "Feed", "FeedItem", "StorageInterface", "FeedModel", "FeedItemModel", "init_db"]
