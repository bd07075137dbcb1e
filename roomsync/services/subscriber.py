# roomsync/services/subscriber.py
from __future__ import annotations

from typing import Callable

from roomsync.core.logging import get_logger
from roomsync.models.models import ChangeEvent, Message, Room
from roomsync.services.change_feed import ChangeFeed, FeedSubscription, room_topic

logger = get_logger(__name__)


def subscribe(
    feed: ChangeFeed,
    room: Room,
    on_insert: Callable[[Message], None],
    on_delete: Callable[[str], None],
) -> FeedSubscription:
    """
    Open one live subscription scoped to room and dispatch each event.

    Exactly one callback runs per insert or delete, in transport order.
    Events carrying another room's id are dropped. The returned handle must
    be cancelled once when the room is left, otherwise the subscription
    leaks. There is no reconnect at this layer.
    """

    def _handle(event: ChangeEvent) -> None:
        if event.record.room_id != room.id:
            logger.warning("Dropping %s event for foreign room %s", event.kind, event.record.room_id)
            return
        if event.kind == "insert":
            on_insert(event.record)
        else:
            on_delete(event.record.id)

    return feed.subscribe(room_topic(room.id), _handle)
