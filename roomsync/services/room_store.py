# roomsync/services/room_store.py
from __future__ import annotations

import abc
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from roomsync.core.logging import get_logger
from roomsync.core.errors import RoomConflictError
from roomsync.models.models import ChangeEvent, Message, NewMessage, Room, utcnow
from roomsync.services.change_feed import ChangeFeed, room_topic

logger = get_logger(__name__)


def sort_messages(messages: List[Message]) -> List[Message]:
    """Creation order, with id as a stable tie-break."""
    return sorted(messages, key=lambda m: m.sort_key)


class RoomStore(abc.ABC):
    """
    Authoritative backing store for rooms and their messages.

    Every write publishes the matching ChangeEvent on the room's feed topic
    after it is committed, which is the echo clients rely on.
    """

    @abc.abstractmethod
    async def find(self, slug: str) -> Optional[Room]:
        ...

    @abc.abstractmethod
    async def create(self, name: str, slug: str) -> Room:
        """Create a room. Raises RoomConflictError if the slug is taken."""

    @abc.abstractmethod
    async def list_messages(self, room_id: str) -> List[Message]:
        """All messages of a room ordered by (created_at, id)."""

    @abc.abstractmethod
    async def insert_message(self, fields: NewMessage) -> Message:
        ...

    @abc.abstractmethod
    async def delete_message(self, message_id: str) -> None:
        ...


# ============================================================================
# IN-MEMORY BACKING STORE
# ============================================================================

class InMemoryRoomStore(RoomStore):
    """
    Process-local backing store.

    Attributes:
        rooms: Maps room_id -> Room
        slugs: Maps slug -> room_id (the unique constraint on slug)
        messages: Maps message_id -> Message

    Usage:
        feed = InMemoryChangeFeed()
        store = InMemoryRoomStore(feed)
        room = await store.create("Public Chat Room", "public")
    """

    def __init__(self, feed: ChangeFeed) -> None:
        self.feed = feed
        self.rooms: Dict[str, Room] = {}
        self.slugs: Dict[str, str] = {}
        self.messages: Dict[str, Message] = {}
        self._last_created: Optional[datetime] = None

    async def find(self, slug: str) -> Optional[Room]:
        room_id = self.slugs.get(slug)
        return self.rooms.get(room_id) if room_id else None

    async def create(self, name: str, slug: str) -> Room:
        if slug in self.slugs:
            raise RoomConflictError(slug)
        room = Room(id=str(uuid.uuid4()), name=name, slug=slug, created_at=utcnow())
        self.rooms[room.id] = room
        self.slugs[slug] = room.id
        logger.info(f"✓ Created room: {room.name} ({room.slug})")
        return room

    def _next_timestamp(self) -> datetime:
        # Strictly increasing, so creation order survives a coarse clock
        now = utcnow()
        if self._last_created is not None and now <= self._last_created:
            now = self._last_created + timedelta(microseconds=1)
        self._last_created = now
        return now

    async def list_messages(self, room_id: str) -> List[Message]:
        return sort_messages([m for m in self.messages.values() if m.room_id == room_id])

    async def insert_message(self, fields: NewMessage) -> Message:
        if fields.room_id not in self.rooms:
            raise KeyError(f"Unknown room {fields.room_id}")
        message = Message(
            id=str(uuid.uuid4()),
            created_at=self._next_timestamp(),
            **fields.model_dump(),
        )
        self.messages[message.id] = message
        await self.feed.publish(room_topic(message.room_id), ChangeEvent(kind="insert", record=message))
        return message

    async def delete_message(self, message_id: str) -> None:
        message = self.messages.pop(message_id, None)
        if message is None:
            # Deleting a missing row matches zero rows, like a SQL DELETE
            return
        old_row = Message(id=message.id, room_id=message.room_id)
        await self.feed.publish(room_topic(message.room_id), ChangeEvent(kind="delete", record=old_row))
