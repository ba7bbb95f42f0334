"""SQLAlchemy models for the notice board feed database."""

from datetime import datetime, timezone

from sqlalchemy import (
    create_engine, event, Column, Integer, String, Text, Boolean, DateTime,
    ForeignKey, Index, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class FeedModel(Base):
    """Database model for RSS feed sources."""
    __tablename__ = "feeds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    url = Column(String(2048), unique=True, nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    # Health (owned by the fetch cycle)
    last_fetched_at = Column(DateTime)
    last_successful_fetch_at = Column(DateTime)
    error_count = Column(Integer, default=0, nullable=False)
    last_error = Column(Text)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    items = relationship(
        "FeedItemModel",
        back_populates="feed",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("error_count >= 0", name="ck_feeds_error_count_non_negative"),
        Index("idx_feeds_active", "active"),
    )


class FeedItemModel(Base):
    """Database model for items fetched from a feed."""
    __tablename__ = "feed_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    feed_id = Column(Integer, ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False)

    title = Column(String(1024), nullable=False)
    description = Column(Text)
    link = Column(String(2048))
    guid = Column(String(2048), nullable=False)

    published_at = Column(DateTime)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    feed = relationship("FeedModel", back_populates="items")

    __table_args__ = (
        # Concurrent fetch cycles of one feed rely on this, not on locks
        UniqueConstraint("feed_id", "guid", name="uq_feed_items_feed_guid"),
        Index("idx_feed_items_feed_published", "feed_id", "published_at"),
    )


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_db(database_url: str):
    """Initialize database and create all tables."""
    engine = create_engine(database_url, echo=False)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    Base.metadata.create_all(engine)
    return engine
