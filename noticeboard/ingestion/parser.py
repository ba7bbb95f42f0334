"""RSS/Atom parsing into candidate items using feedparser."""

import io
from datetime import datetime
from typing import List, Optional

import feedparser
from feedparser.exceptions import CharacterEncodingOverride, NonXMLContentType
import structlog

from .interfaces import CandidateItem, Failure, FailureReason, ParserInterface, Result, Success, utcnow

logger = structlog.get_logger()

# bozo exceptions feedparser raises for documents it still parsed correctly
BENIGN_BOZO_EXCEPTIONS = (CharacterEncodingOverride, NonXMLContentType)


class FeedParser(ParserInterface):
    """Turns a fetched feed document into an ordered list of CandidateItems."""

    def parse(self, content: bytes, now: datetime = None) -> Result[List[CandidateItem]]:
        """Parse content; all items or a parse_error, never a partial list."""
        now = now or utcnow()
        # A stream keeps feedparser from treating the body as a path or URL
        parsed = feedparser.parse(io.BytesIO(content))

        if parsed.bozo and not isinstance(parsed.bozo_exception, BENIGN_BOZO_EXCEPTIONS):
            logger.warning("feed_parse_failed", error=str(parsed.bozo_exception))
            return Failure(
                FailureReason.PARSE_ERROR,
                f"Failed to parse RSS feed: {parsed.bozo_exception}",
            )

        if not parsed.get("version"):
            return Failure(
                FailureReason.PARSE_ERROR,
                "Failed to parse RSS feed: not a recognized RSS or Atom document",
            )

        items = [self._parse_entry(entry, now) for entry in parsed.entries]
        logger.debug("feed_parsed", version=parsed.version, items=len(items))
        return Success(items)

    def _parse_entry(self, entry, now: datetime) -> CandidateItem:
        """Parse a feed entry into a CandidateItem."""
        link = entry.get("link") or None
        guid = entry.get("id") or entry.get("guid") or link

        return CandidateItem(
            title=(entry.get("title") or "").strip(),
            description=entry.get("summary") or entry.get("description") or None,
            link=link,
            guid=guid,
            published_at=_parse_date(entry) or now,
        )


def _parse_date(entry) -> Optional[datetime]:
    """Publication date of an entry as naive UTC, if it carries one."""
    for attr in ("published_parsed", "updated_parsed"):
        parsed = entry.get(attr)
        if parsed:
            try:
                return datetime(*parsed[:6])
            except (TypeError, ValueError):
                pass
    return None
