"""In-process change feed for shipment updates.

Writers publish row changes after their transaction commits; subscribers
register a callback per table with an optional equality filter, for example
``{"shipment_id": 42}``. Delivery is best-effort and lossy. A subscriber that
reconnects re-fetches current state (``/track/<number>.json``) rather than
replaying missed changes. An external pub/sub transport plugs in by
subscribing here and forwarding messages.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from flask import Flask, current_app

logger = logging.getLogger(__name__)

ChangeCallback = Callable[["Change"], None]

EXTENSION_KEY = "change_feed"


@dataclass(frozen=True)
class Change:
    """A single row change delivered to subscribers."""

    table: str
    event: str
    row: Mapping[str, Any]


@dataclass(eq=False)
class Subscription:
    table: str
    callback: ChangeCallback
    filter: Dict[str, Any] = field(default_factory=dict)
    _feed: Optional["ChangeFeed"] = field(default=None, repr=False)

    def matches(self, change: Change) -> bool:
        if change.table != self.table:
            return False
        return all(change.row.get(column) == value for column, value in self.filter.items())

    def unsubscribe(self) -> None:
        if self._feed is not None:
            self._feed.remove(self)
            self._feed = None


class ChangeFeed:
    """Registry of subscriptions keyed by table name."""

    def __init__(self) -> None:
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        filter: Optional[Mapping[str, Any]] = None,
    ) -> Subscription:
        subscription = Subscription(
            table=table, callback=callback, filter=dict(filter or {}), _feed=self
        )
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, table: str, row: Mapping[str, Any], event: str = "UPDATE") -> int:
        """Deliver a change to matching subscribers.

        A failing callback is logged and does not prevent delivery to the
        remaining subscribers, nor does it propagate to the writer.

        Returns:
            int: Number of callbacks that completed without error.
        """

        change = Change(table=table, event=event, row=dict(row))
        with self._lock:
            targets = [sub for sub in self._subscriptions if sub.matches(change)]

        delivered = 0
        for subscription in targets:
            try:
                subscription.callback(change)
            except Exception:
                logger.exception("Change feed subscriber failed for %s %s", event, table)
                continue
            delivered += 1
        return delivered

    def __len__(self) -> int:
        return len(self._subscriptions)


def init_change_feed(app: Flask) -> ChangeFeed:
    feed = ChangeFeed()
    app.extensions[EXTENSION_KEY] = feed
    return feed


def get_change_feed() -> ChangeFeed:
    """Return the feed registered on the active application."""

    return current_app.extensions[EXTENSION_KEY]


__all__ = [
    "Change",
    "ChangeFeed",
    "Subscription",
    "get_change_feed",
    "init_change_feed",
]
