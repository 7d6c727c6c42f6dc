"""Live sync coordinator - keeps a viewer's aggregates current.

The coordinator owns exactly one subscription set (pageviews and
unique_visitors) for the site being viewed and re-runs the full aggregation
whenever an insert is announced for it. It never updates counters in place.
Notifications that arrive while a refresh is running are coalesced: they
mark the view dirty and one follow-up refresh runs when the current one
ends.

Refreshes can overlap: a filter change may race a notification-triggered
refresh. Each refresh carries a generation token ``(epoch, seq)``. The epoch
changes whenever the viewed context (site or date range) changes; in-flight
refreshes of the old context are cancelled, and anything that still arrives
for it is dropped. Within one epoch a result is applied only if it was issued
after the last applied one, so a slow older query cannot overwrite a newer
result.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from sitepulse.schemas.stats import SiteStats, StatsQuery
from sitepulse.services.aggregation import AggregationError
from sitepulse.services.broadcast import (
    TABLES,
    InsertBroadcaster,
    InsertNotification,
    Subscription,
)

logger = logging.getLogger(__name__)

Aggregate = Callable[[StatsQuery], Awaitable[SiteStats]]


class SubscriptionHandle:
    """The live subscriptions held for one site."""

    def __init__(self, site_id: str, subscriptions: list[Subscription]) -> None:
        self.site_id = site_id
        self.subscriptions = subscriptions
        self.active = True


class SubscriptionRegistry:
    """At most one live handle per site, keyed by site id."""

    def __init__(
        self,
        transport: InsertBroadcaster,
        callback: Callable[[InsertNotification], None],
    ) -> None:
        self._transport = transport
        self._callback = callback
        self._handles: dict[str, SubscriptionHandle] = {}

    def attach(self, site_id: str) -> SubscriptionHandle:
        handle = self._handles.get(site_id)
        if handle is not None and handle.active:
            return handle

        subscriptions = [
            self._transport.subscribe(table, site_id, self._callback) for table in TABLES
        ]
        handle = SubscriptionHandle(site_id, subscriptions)
        self._handles[site_id] = handle
        logger.debug("Attached live subscriptions for site %s", site_id)
        return handle

    def release(self, handle: SubscriptionHandle) -> None:
        if not handle.active:
            return
        handle.active = False
        for subscription in handle.subscriptions:
            self._transport.unsubscribe(subscription)
        if self._handles.get(handle.site_id) is handle:
            del self._handles[handle.site_id]
        logger.debug("Released live subscriptions for site %s", handle.site_id)

    def release_all(self) -> None:
        for handle in list(self._handles.values()):
            self.release(handle)

    @property
    def live_sites(self) -> list[str]:
        return list(self._handles)


class ViewState:
    """What the viewer currently displays."""

    def __init__(
        self,
        site_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> None:
        self.site_id = site_id
        self.start_date = start_date
        self.end_date = end_date
        self.stats: SiteStats | None = None
        self.error: str | None = None
        self.generation = 0

    def query(self) -> StatsQuery:
        return StatsQuery(
            site_id=self.site_id,
            start_date=self.start_date,
            end_date=self.end_date,
        )


class LiveSyncCoordinator:
    def __init__(
        self,
        aggregate: Aggregate,
        transport: InsertBroadcaster,
        publish: Callable[[ViewState], Awaitable[None]] | None = None,
    ) -> None:
        self._aggregate = aggregate
        self._transport = transport
        self._publish = publish
        self._registry = SubscriptionRegistry(transport, self._on_insert)
        self._handle: SubscriptionHandle | None = None
        self._tasks: set[asyncio.Task] = set()
        self._pending: asyncio.Task | None = None
        self._dirty = False
        self._epoch = 0
        self._seq = 0
        self._applied_seq = 0
        self.state = ViewState()

        transport.add_drop_listener(self.handle_transport_drop)

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Context changes
    # ------------------------------------------------------------------

    def view_site(
        self,
        site_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> asyncio.Task:
        """Switch to another site, replacing the subscription set, and refresh."""
        query = StatsQuery(site_id=site_id, start_date=start_date, end_date=end_date)

        if self._handle is not None:
            self._registry.release(self._handle)
            self._handle = None
        self._new_context()

        self.state = ViewState(query.site_id, query.start_date, query.end_date)
        self._handle = self._registry.attach(site_id)
        return self._schedule_refresh()

    def set_range(
        self, start_date: datetime | None = None, end_date: datetime | None = None
    ) -> asyncio.Task:
        """Change the date filter for the viewed site and refresh."""
        if self.state.site_id is None:
            raise RuntimeError("No site is being viewed")
        query = StatsQuery(site_id=self.state.site_id, start_date=start_date, end_date=end_date)

        self._new_context()
        self.state.start_date = query.start_date
        self.state.end_date = query.end_date
        return self._schedule_refresh()

    def clear_range(self) -> asyncio.Task:
        return self.set_range(None, None)

    def _new_context(self) -> None:
        self._epoch += 1
        self._applied_seq = 0
        self._dirty = False
        for task in list(self._tasks):
            task.cancel()

    # ------------------------------------------------------------------
    # Refreshing
    # ------------------------------------------------------------------

    def _is_current(self, epoch: int, seq: int) -> bool:
        return epoch == self._epoch and seq > self._applied_seq

    async def refresh(self) -> bool:
        """Re-run the aggregation for the current context.

        Returns True if the result (or error) was applied, False if it was
        superseded before it arrived.
        """
        state = self.state
        if state.site_id is None:
            return False

        self._seq += 1
        epoch, seq = self._epoch, self._seq
        query = state.query()

        try:
            stats = await self._aggregate(query)
        except AggregationError as exc:
            if not self._is_current(epoch, seq):
                return False
            self._applied_seq = seq
            # Keep what is on screen; an error is not "zero traffic".
            state.error = str(exc)
            state.generation = seq
            logger.warning("Live refresh %d for site %s failed: %s", seq, query.site_id, exc)
            await self._emit(state)
            return True

        if not self._is_current(epoch, seq):
            logger.debug("Discarding stale refresh %d for site %s", seq, query.site_id)
            return False

        self._applied_seq = seq
        state.stats = stats
        state.error = None
        state.generation = seq
        await self._emit(state)
        return True

    async def _emit(self, state: ViewState) -> None:
        if self._publish is not None:
            await self._publish(state)

    async def _run_refresh(self) -> None:
        try:
            await self.refresh()
            while self._dirty:
                self._dirty = False
                await self.refresh()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Live refresh crashed for site %s", self.state.site_id)

    def _schedule_refresh(self) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._run_refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._pending = task
        return task

    def _request_refresh(self) -> None:
        """Refresh now, or once more after the refresh already running."""
        if self._pending is not None and not self._pending.done():
            self._dirty = True
            return
        self._schedule_refresh()

    def _on_insert(self, notification: InsertNotification) -> None:
        if self._handle is None or notification.site_id != self._handle.site_id:
            return
        self._request_refresh()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def handle_transport_drop(self) -> None:
        """Re-attach the viewed site's subscriptions after the transport dropped them."""
        if self._handle is None:
            return
        site_id = self._handle.site_id
        self._registry.release(self._handle)
        self._handle = self._registry.attach(site_id)
        logger.info("Resubscribed live updates for site %s", site_id)
        # Inserts may have been missed while disconnected
        self._request_refresh()

    async def close(self) -> None:
        self._transport.remove_drop_listener(self.handle_transport_drop)
        self._registry.release_all()
        self._handle = None
        self._epoch += 1
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
