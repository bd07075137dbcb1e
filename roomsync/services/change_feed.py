# roomsync/services/change_feed.py

from __future__ import annotations

import abc
from typing import Callable, Dict, List

from roomsync.core.logging import get_logger
from roomsync.models.models import ChangeEvent

logger = get_logger(__name__)

Handler = Callable[[ChangeEvent], None]


def room_topic(room_id: str) -> str:
    """Feed topic carrying the insert/delete events of one room."""
    return f"room:{room_id}"


# ============================================================================
# SUBSCRIPTION HANDLE
# ============================================================================

class FeedSubscription:
    """
    Handle returned by ChangeFeed.subscribe().

    cancel() releases the subscription. It must be called exactly once when
    the room is left; extra calls are logged and ignored.
    """

    def __init__(self, topic: str, handler: Handler, release: Callable[["FeedSubscription"], None]) -> None:
        self.topic = topic
        self.handler = handler
        self._release = release
        self.cancelled = False

    def deliver(self, event: ChangeEvent) -> None:
        if not self.cancelled:
            self.handler(event)

    def cancel(self) -> None:
        if self.cancelled:
            logger.debug("Subscription on %s already cancelled", self.topic)
            return
        self.cancelled = True
        self._release(self)


class ChangeFeed(abc.ABC):
    """Push-based stream of insert/delete notifications, keyed by topic."""

    @abc.abstractmethod
    def subscribe(self, topic: str, handler: Handler) -> FeedSubscription:
        ...

    @abc.abstractmethod
    async def publish(self, topic: str, event: ChangeEvent) -> None:
        ...

    async def close(self) -> None:
        return None


# ============================================================================
# IN-PROCESS FEED
# ============================================================================

class InMemoryChangeFeed(ChangeFeed):
    """
    Registers subscriptions and broadcasts events to every listener of a topic.

    Data Structures:
        subscriptions: Maps topic -> list of live FeedSubscription handles
                       Example: {"room:uuid-123": [sub1, sub2]}

    Delivery is synchronous and in publish order. A handler that raises is
    logged and does not prevent delivery to the other subscribers.
    """

    def __init__(self) -> None:
        self.subscriptions: Dict[str, List[FeedSubscription]] = {}

    def subscribe(self, topic: str, handler: Handler) -> FeedSubscription:
        subscription = FeedSubscription(topic, handler, self._unsubscribe)
        self.subscriptions.setdefault(topic, []).append(subscription)
        logger.info("✓ Subscribed to '%s' (%d listeners)", topic, len(self.subscriptions[topic]))
        return subscription

    def _unsubscribe(self, subscription: FeedSubscription) -> None:
        subs = self.subscriptions.get(subscription.topic)
        if not subs:
            return
        try:
            subs.remove(subscription)
        except ValueError:
            return
        if not subs:
            # Clean up empty topics
            del self.subscriptions[subscription.topic]
        logger.info("✗ Unsubscribed from '%s'", subscription.topic)

    def listener_count(self, topic: str) -> int:
        return len(self.subscriptions.get(topic, []))

    async def publish(self, topic: str, event: ChangeEvent) -> None:
        listeners = list(self.subscriptions.get(topic, []))  # Copy to avoid modification during iteration
        if not listeners:
            logger.debug("[routing] Skipped publish: %s has 0 subscribers", topic)
            return

        for subscription in listeners:
            try:
                subscription.deliver(event)
            except Exception:
                logger.exception("Change feed handler failed on %s", topic)
