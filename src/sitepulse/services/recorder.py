"""Event recorder - persists pageviews and first-seen visitors.

The two writes are independent: each runs in its own session, so a failed
visitor insert never blocks the pageview and vice versa. A duplicate visitor
key means another request won the first-write race, which is success.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sitepulse.models.pageview import Pageview
from sitepulse.models.visitor import Visitor
from sitepulse.schemas.track import PageviewDraft
from sitepulse.services.broadcast import InsertBroadcaster
from sitepulse.services.identity import Identity

logger = logging.getLogger(__name__)


class PageviewWriteError(Exception):
    """The pageview row could not be stored."""


class RecordResult:
    """Outcome of recording one request."""

    __slots__ = ("pageview_id", "visitor_created")

    def __init__(self, pageview_id: int, visitor_created: bool) -> None:
        self.pageview_id = pageview_id
        self.visitor_created = visitor_created


class EventRecorder:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        broadcaster: InsertBroadcaster | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._broadcaster = broadcaster

    async def record(self, draft: PageviewDraft, identity: Identity) -> RecordResult:
        """Store one pageview and, for a new identity, one visitor row.

        Raises PageviewWriteError when the pageview insert fails. Visitor
        insert failures are logged and reported through ``visitor_created``.
        """
        visitor_created = False
        if identity.is_new:
            visitor_created = await self.record_visitor(identity.visitor_id, draft.site_id)

        pageview_id = await self.record_pageview(draft, identity.visitor_id)
        return RecordResult(pageview_id=pageview_id, visitor_created=visitor_created)

    async def record_visitor(self, visitor_id: str, site_id: str) -> bool:
        """Insert a visitor row; return True if this call created it."""
        async with self._session_factory() as session:
            session.add(Visitor(id=visitor_id, site_id=site_id))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug("Visitor %s already exists; keeping first write", visitor_id)
                return False
            except SQLAlchemyError:
                await session.rollback()
                logger.exception("Failed to insert visitor %s", visitor_id)
                return False

        logger.debug("New unique visitor %s on site %s", visitor_id, site_id)
        self._notify("unique_visitors", site_id)
        return True

    async def record_pageview(self, draft: PageviewDraft, visitor_id: str) -> int:
        """Insert exactly one pageview row and return its id."""
        pageview = Pageview(
            site_id=draft.site_id,
            path=draft.path,
            referrer=draft.referrer,
            user_agent=draft.user_agent,
            browser_language=draft.browser_language,
            screen_resolution=draft.screen_resolution,
            viewport_width=draft.viewport_width,
            viewport_height=draft.viewport_height,
            user_id=draft.user_id,
            visitor_id=visitor_id,
            country=draft.country,
            latitude=draft.latitude,
            longitude=draft.longitude,
        )
        async with self._session_factory() as session:
            session.add(pageview)
            try:
                await session.flush()
                pageview_id = pageview.id
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.exception("Failed to insert pageview for site %s", draft.site_id)
                raise PageviewWriteError(str(exc)) from exc

        self._notify("pageviews", draft.site_id)
        return pageview_id

    def _notify(self, table: str, site_id: str) -> None:
        if self._broadcaster is not None:
            self._broadcaster.publish(table, site_id)
