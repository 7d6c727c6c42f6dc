"""In-process insert notifications keyed by table and site.

The recorder publishes one notification per committed row; live viewers
subscribe per ``(table, site_id)``. Notifications carry no row data, only
the fact that something changed.
"""

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Literal

logger = logging.getLogger(__name__)

Table = Literal["pageviews", "unique_visitors"]
TABLES: tuple[Table, ...] = ("pageviews", "unique_visitors")


class InsertNotification:
    """Something was inserted into ``table`` for ``site_id``."""

    __slots__ = ("table", "site_id")

    def __init__(self, table: Table, site_id: str) -> None:
        self.table = table
        self.site_id = site_id

    def __repr__(self) -> str:
        return f"InsertNotification(table={self.table!r}, site_id={self.site_id!r})"


Callback = Callable[[InsertNotification], None]


class Subscription:
    """A single registered callback; inert once unsubscribed."""

    def __init__(self, table: Table, site_id: str, callback: Callback) -> None:
        self.table = table
        self.site_id = site_id
        self.callback = callback
        self.active = True


class InsertBroadcaster:
    """Subscribe/unsubscribe transport for insert notifications."""

    def __init__(self) -> None:
        self._subscriptions: dict[tuple[str, str], list[Subscription]] = defaultdict(list)
        self._drop_listeners: list[Callable[[], None]] = []

    def subscribe(self, table: Table, site_id: str, callback: Callback) -> Subscription:
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        subscription = Subscription(table, site_id, callback)
        self._subscriptions[(table, site_id)].append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        key = (subscription.table, subscription.site_id)
        subscriptions = self._subscriptions.get(key)
        if not subscriptions:
            return
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if not subscriptions:
            del self._subscriptions[key]

    def subscriber_count(self, table: Table, site_id: str) -> int:
        return len(self._subscriptions.get((table, site_id), ()))

    def publish(self, table: Table, site_id: str) -> None:
        """Deliver a notification to every live subscriber of the key.

        A failing callback is logged and does not stop delivery to the rest.
        """
        notification = InsertNotification(table, site_id)
        for subscription in list(self._subscriptions.get((table, site_id), ())):
            if not subscription.active:
                continue
            try:
                subscription.callback(notification)
            except Exception:
                logger.exception("Insert notification callback failed for %r", notification)

    def add_drop_listener(self, listener: Callable[[], None]) -> None:
        self._drop_listeners.append(listener)

    def remove_drop_listener(self, listener: Callable[[], None]) -> None:
        if listener in self._drop_listeners:
            self._drop_listeners.remove(listener)

    def reset(self) -> None:
        """Drop every subscription, as a lost transport would, and tell listeners.

        A failing listener is logged and the rest are still told.
        """
        for subscriptions in self._subscriptions.values():
            for subscription in subscriptions:
                subscription.active = False
        self._subscriptions.clear()
        logger.warning("Insert broadcaster reset; all subscriptions dropped")
        for listener in list(self._drop_listeners):
            try:
                listener()
            except Exception:
                logger.exception("Drop listener %r failed", listener)
