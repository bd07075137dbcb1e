# roomsync/services/history.py
from __future__ import annotations

from typing import List

from roomsync.core.logging import get_logger
from roomsync.core.errors import BootstrapError
from roomsync.models.models import Message, Room
from roomsync.services.room_store import RoomStore, sort_messages

logger = get_logger(__name__)


async def load_history(room_store: RoomStore, room: Room) -> List[Message]:
    """
    Fetch a room's backlog in creation order with a single request.

    Raises:
        BootstrapError: the request failed. Not retried.
    """
    try:
        messages = await room_store.list_messages(room.id)
    except Exception as e:
        logger.error("Error loading history for room %s: %s", room.id, e)
        raise BootstrapError() from e

    logger.info("✓ Loaded %d messages for '%s'", len(messages), room.slug)
    # Re-sort locally; the tie-break on id is not guaranteed by every store
    return sort_messages(messages)
