# roomsync/services/redis_room_store.py
from __future__ import annotations

import uuid
from typing import List, Optional

import redis.asyncio as redis

from roomsync.core.logging import get_logger
from roomsync.core.errors import RoomConflictError
from roomsync.models.models import ChangeEvent, Message, NewMessage, Room, utcnow
from roomsync.services.change_feed import ChangeFeed, room_topic
from roomsync.services.room_store import RoomStore, sort_messages

logger = get_logger(__name__)


class RedisRoomStore(RoomStore):
    """
    Backing store kept in Redis, shared by every backend instance.

    Key layout:
        roomsync:slug:<slug>            -> room_id (SET NX, the slug unique constraint)
        roomsync:room:<room_id>         -> Room JSON
        roomsync:messages:<room_id>     -> sorted set of message ids, score = created_at epoch
        roomsync:message:<message_id>   -> Message JSON

    Writes publish their ChangeEvent through the given feed once committed.
    """

    PREFIX = "roomsync"

    def __init__(self, client: redis.Redis, feed: ChangeFeed) -> None:
        self.client = client
        self.feed = feed

    def _key(self, *parts: str) -> str:
        return ":".join((self.PREFIX,) + parts)

    async def find(self, slug: str) -> Optional[Room]:
        room_id = await self.client.get(self._key("slug", slug))
        if room_id is None:
            return None
        raw = await self.client.get(self._key("room", room_id))
        return Room.model_validate_json(raw) if raw else None

    async def create(self, name: str, slug: str) -> Room:
        room = Room(id=str(uuid.uuid4()), name=name, slug=slug, created_at=utcnow())
        # Write the record first so a winning slug never points at nothing
        await self.client.set(self._key("room", room.id), room.model_dump_json())
        claimed = await self.client.set(self._key("slug", slug), room.id, nx=True)
        if not claimed:
            await self.client.delete(self._key("room", room.id))
            raise RoomConflictError(slug)
        logger.info(f"✓ Created room: {room.name} ({room.slug})")
        return room

    async def list_messages(self, room_id: str) -> List[Message]:
        ids = await self.client.zrange(self._key("messages", room_id), 0, -1)
        if not ids:
            return []
        raws = await self.client.mget([self._key("message", i) for i in ids])
        return sort_messages([Message.model_validate_json(raw) for raw in raws if raw])

    async def insert_message(self, fields: NewMessage) -> Message:
        message = Message(id=str(uuid.uuid4()), created_at=utcnow(), **fields.model_dump())
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.set(self._key("message", message.id), message.model_dump_json())
            pipe.zadd(self._key("messages", message.room_id), {message.id: message.created_at.timestamp()})
            await pipe.execute()
        await self.feed.publish(room_topic(message.room_id), ChangeEvent(kind="insert", record=message))
        return message

    async def delete_message(self, message_id: str) -> None:
        raw = await self.client.get(self._key("message", message_id))
        if raw is None:
            return
        message = Message.model_validate_json(raw)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.delete(self._key("message", message_id))
            pipe.zrem(self._key("messages", message.room_id), message_id)
            await pipe.execute()
        old_row = Message(id=message.id, room_id=message.room_id)
        await self.feed.publish(room_topic(message.room_id), ChangeEvent(kind="delete", record=old_row))
