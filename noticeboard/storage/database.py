"""Database operations for feeds and feed items."""

from datetime import datetime, timedelta
from typing import Callable, List, Optional, Set
from pathlib import Path

from sqlalchemy import or_
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import DataError, IntegrityError
import structlog

from .interfaces import Feed, FeedItem, StorageInterface
from .models import FeedModel, FeedItemModel, init_db
from ..config.settings import settings
from ..health.interfaces import FeedHealth
from ..ingestion.interfaces import CandidateItem, utcnow

logger = structlog.get_logger()

TITLE_MAX_LENGTH = FeedItemModel.__table__.c.title.type.length
LINK_MAX_LENGTH = FeedItemModel.__table__.c.link.type.length


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."


class FeedStorage(StorageInterface):
    """SQLAlchemy-backed feed registry and item store."""

    def __init__(self, database_url: str = None):
        if database_url is None:
            database_url = settings.database_url

        # Ensure data directory exists
        if database_url.startswith("sqlite:///"):
            db_path = database_url.replace("sqlite:///", "")
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.engine = init_db(database_url)
        self.Session = sessionmaker(bind=self.engine)

    # --- Feed registry ---

    def add_feed(self, name: str, url: str, active: bool = True) -> Feed:
        """Insert a new feed. Raises IntegrityError if the URL is taken."""
        session = self.Session()
        try:
            model = FeedModel(name=name, url=url, active=active, error_count=0)
            session.add(model)
            session.commit()
            logger.info("feed_created", id=model.id, url=url[:100])
            return self._model_to_feed(model)
        except IntegrityError:
            session.rollback()
            raise
        finally:
            session.close()

    def update_feed(self, feed_id: int, **fields) -> Optional[Feed]:
        """Update operator-editable fields (name, url, active)."""
        session = self.Session()
        try:
            model = session.get(FeedModel, feed_id)
            if not model:
                return None
            for key, value in fields.items():
                if key in ("name", "url", "active"):
                    setattr(model, key, value)
            session.commit()
            logger.info("feed_updated", id=feed_id, fields=sorted(fields))
            return self._model_to_feed(model)
        except IntegrityError:
            session.rollback()
            raise
        finally:
            session.close()

    def delete_feed(self, feed_id: int) -> bool:
        """Delete a feed and, by cascade, its items."""
        session = self.Session()
        try:
            model = session.get(FeedModel, feed_id)
            if not model:
                return False
            session.delete(model)
            session.commit()
            logger.info("feed_deleted", id=feed_id)
            return True
        finally:
            session.close()

    def get_feed(self, feed_id: int) -> Optional[Feed]:
        """Get feed by id."""
        session = self.Session()
        try:
            model = session.get(FeedModel, feed_id)
            return self._model_to_feed(model) if model else None
        finally:
            session.close()

    def get_feed_by_url(self, url: str) -> Optional[Feed]:
        """Get feed by URL."""
        session = self.Session()
        try:
            model = session.query(FeedModel)\
                .filter(FeedModel.url == url)\
                .first()
            return self._model_to_feed(model) if model else None
        finally:
            session.close()

    def list_feeds(self) -> List[Feed]:
        """All feeds ordered by name."""
        session = self.Session()
        try:
            models = session.query(FeedModel).order_by(FeedModel.name).all()
            return [self._model_to_feed(m) for m in models]
        finally:
            session.close()

    def list_due_feeds(
        self,
        now: datetime = None,
        refresh_interval: timedelta = None,
        critical_threshold: int = None,
    ) -> List[Feed]:
        """Active, non-critical feeds never fetched or not fetched within refresh_interval."""
        now = now or utcnow()
        if refresh_interval is None:
            refresh_interval = timedelta(minutes=settings.refresh_interval_minutes)
        if critical_threshold is None:
            critical_threshold = settings.critical_error_threshold

        session = self.Session()
        try:
            models = session.query(FeedModel)\
                .filter(FeedModel.active == True)\
                .filter(FeedModel.error_count < critical_threshold)\
                .filter(or_(
                    FeedModel.last_fetched_at.is_(None),
                    FeedModel.last_fetched_at <= now - refresh_interval,
                ))\
                .order_by(FeedModel.id)\
                .all()
            return [self._model_to_feed(m) for m in models]
        finally:
            session.close()

    def update_health(
        self, feed_id: int, transition: Callable[[FeedHealth], FeedHealth]
    ) -> Optional[FeedHealth]:
        """Read a feed's health, apply transition, write the result back.

        Runs in one transaction. Two cycles racing on the same feed resolve
        as last write wins.
        """
        session = self.Session()
        try:
            model = session.get(FeedModel, feed_id)
            if not model:
                return None

            current = FeedHealth(
                error_count=model.error_count or 0,
                last_error=model.last_error,
                last_fetched_at=model.last_fetched_at,
                last_successful_fetch_at=model.last_successful_fetch_at,
            )
            updated = transition(current)

            model.error_count = updated.error_count
            model.last_error = updated.last_error
            model.last_fetched_at = updated.last_fetched_at
            model.last_successful_fetch_at = updated.last_successful_fetch_at
            session.commit()
            return updated
        finally:
            session.close()

    # --- Items ---

    def existing_guids(self, feed_id: int) -> Set[str]:
        """All guids already stored for a feed, in one query."""
        session = self.Session()
        try:
            rows = session.query(FeedItemModel.guid)\
                .filter(FeedItemModel.feed_id == feed_id)\
                .all()
            return {row[0] for row in rows}
        finally:
            session.close()

    def save_item(self, feed_id: int, candidate: CandidateItem) -> Optional[int]:
        """Save one item, return ID or None if it could not be inserted."""
        session = self.Session()
        try:
            link = candidate.link
            if link and len(link) > LINK_MAX_LENGTH:
                # A cut-off link is broken; keep the item without it
                link = None
            model = FeedItemModel(
                feed_id=feed_id,
                title=_truncate(candidate.title, TITLE_MAX_LENGTH),
                description=candidate.description,
                link=link,
                guid=candidate.guid,
                published_at=candidate.published_at,
            )
            session.add(model)
            session.commit()
            item_id = model.id
            logger.debug("item_saved", id=item_id, feed_id=feed_id, guid=candidate.guid[:100])
            return item_id
        except (IntegrityError, DataError) as e:
            session.rollback()
            logger.warning("item_save_failed", feed_id=feed_id,
                           guid=candidate.guid[:100], error=str(e.orig))
            return None
        finally:
            session.close()

    def save_items(self, feed_id: int, candidates: List[CandidateItem]) -> int:
        """Insert candidates whose guid is new for the feed; return count created.

        A failed insert (for instance a duplicate written by an overlapping
        cycle) is logged and skipped without affecting the rest of the batch.
        """
        seen = self.existing_guids(feed_id)
        saved_count = 0

        for candidate in candidates:
            if not candidate.guid or not candidate.title:
                logger.warning("item_skipped_incomplete", feed_id=feed_id,
                               guid=candidate.guid, title=candidate.title[:100])
                continue
            if candidate.guid in seen:
                continue
            if self.save_item(feed_id, candidate) is not None:
                saved_count += 1
            seen.add(candidate.guid)

        logger.info("items_saved", feed_id=feed_id, count=saved_count, total=len(candidates))
        return saved_count

    def get_items(self, feed_id: int, limit: int = 10) -> List[FeedItem]:
        """Latest items of one feed, newest first."""
        session = self.Session()
        try:
            models = session.query(FeedItemModel)\
                .filter(FeedItemModel.feed_id == feed_id)\
                .order_by(FeedItemModel.published_at.desc(), FeedItemModel.created_at.desc())\
                .limit(limit)\
                .all()
            return [self._model_to_item(m) for m in models]
        finally:
            session.close()

    def recent_items(self, limit: int = None) -> List[FeedItem]:
        """Latest items across all active feeds, for the public dashboard."""
        limit = limit or settings.recent_items_limit
        session = self.Session()
        try:
            rows = session.query(FeedItemModel, FeedModel.name)\
                .join(FeedModel, FeedItemModel.feed_id == FeedModel.id)\
                .filter(FeedModel.active == True)\
                .order_by(FeedItemModel.published_at.desc(), FeedItemModel.created_at.desc())\
                .limit(limit)\
                .all()
            return [self._model_to_item(m, feed_name=name) for m, name in rows]
        finally:
            session.close()

    def count_items(self, feed_id: int = None) -> int:
        """Count stored items, optionally for one feed."""
        session = self.Session()
        try:
            query = session.query(FeedItemModel)
            if feed_id is not None:
                query = query.filter(FeedItemModel.feed_id == feed_id)
            return query.count()
        finally:
            session.close()

    def get_stats(self, critical_threshold: int = None) -> dict:
        """Get database statistics."""
        if critical_threshold is None:
            critical_threshold = settings.critical_error_threshold
        session = self.Session()
        try:
            total = session.query(FeedModel).count()
            active = session.query(FeedModel)\
                .filter(FeedModel.active == True).count()
            healthy = session.query(FeedModel)\
                .filter(FeedModel.error_count == 0).count()
            critical = session.query(FeedModel)\
                .filter(FeedModel.error_count >= critical_threshold).count()

            return {
                "total_feeds": total,
                "active_feeds": active,
                "healthy_feeds": healthy,
                "warning_feeds": total - healthy - critical,
                "critical_feeds": critical,
                "total_items": session.query(FeedItemModel).count(),
            }
        finally:
            session.close()

    def _model_to_feed(self, model: FeedModel) -> Feed:
        """Convert database model to Feed."""
        return Feed(
            id=model.id,
            name=model.name,
            url=model.url,
            active=bool(model.active),
            last_fetched_at=model.last_fetched_at,
            last_successful_fetch_at=model.last_successful_fetch_at,
            error_count=model.error_count or 0,
            last_error=model.last_error,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _model_to_item(self, model: FeedItemModel, feed_name: str = None) -> FeedItem:
        """Convert database model to FeedItem."""
        return FeedItem(
            id=model.id,
            feed_id=model.feed_id,
            title=model.title,
            description=model.description,
            link=model.link,
            guid=model.guid,
            published_at=model.published_at,
            created_at=model.created_at,
            feed_name=feed_name,
        )
