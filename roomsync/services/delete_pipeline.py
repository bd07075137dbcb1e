# roomsync/services/delete_pipeline.py
from __future__ import annotations

from typing import Callable

from roomsync.core.logging import get_logger
from roomsync.core.errors import DeleteError
from roomsync.models.models import DeleteOutcome, Room, RoomEvent
from roomsync.services.room_store import RoomStore

logger = get_logger(__name__)


class DeletePipeline:
    """
    Requests removal of a message and reconciles the local view.

    After a successful delete request it emits a local_delete (the feed
    echo may arrive late or not at all), then re-fetches the whole room and
    emits a reseed, which the store merges with feed events applied while
    the read was in flight. It is a full read on every delete, which is
    fine for small rooms.

    Events go through emit, normally the owning session's queue, so the
    store is still only mutated by one task.
    """

    def __init__(self, room_store: RoomStore, emit: Callable[[RoomEvent], None]) -> None:
        self.room_store = room_store
        self.emit = emit

    async def remove(self, room: Room, message_id: str) -> DeleteOutcome:
        try:
            await self.room_store.delete_message(message_id)
        except Exception as e:
            logger.error("Error deleting message %s: %s", message_id, e)
            raise DeleteError("Failed to delete the message") from e

        self.emit(RoomEvent.local_delete(message_id))

        try:
            messages = await self.room_store.list_messages(room.id)
        except Exception as e:
            # The local removal stays; the next successful read repairs drift
            logger.warning("Re-fetch after deleting %s failed: %s", message_id, e)
            return DeleteOutcome(message_id=message_id, refetched=False)

        self.emit(RoomEvent.reseed(messages))
        logger.info("✓ Deleted message %s from '%s'", message_id, room.slug)
        return DeleteOutcome(message_id=message_id, refetched=True)
