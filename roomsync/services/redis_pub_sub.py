# roomsync/services/redis_pub_sub.py
from __future__ import annotations

import asyncio
from typing import Optional

import redis.asyncio as redis
from pydantic import ValidationError

from roomsync.core.logging import get_logger
from roomsync.core.config import settings
from roomsync.models.models import ChangeEvent
from roomsync.services.change_feed import ChangeFeed, FeedSubscription, Handler, InMemoryChangeFeed

logger = get_logger(__name__)

ROOM_PATTERN = "room:*"


def redis_url(host: str, port: int, access_key: str = "", ssl: bool = False) -> str:
    scheme = "rediss" if ssl else "redis"
    auth = f":{access_key}@" if access_key else ""
    return f"{scheme}://{auth}{host}:{port}"


class RedisChangeFeed(ChangeFeed):
    """
    Change feed carried over Redis Pub/Sub.

    Architecture:
        - Every room publishes to its own channel "room:<room_id>"
        - ONE pattern subscription ("room:*") per process
        - Received events are routed in memory to the local subscribers of
          that channel, so joining a room never opens another Redis connection

    Payloads are ChangeEvent JSON: {"kind": "insert", "record": {...}}.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        client: Optional[redis.Redis] = None,
    ):
        self.host = host
        self.port = port
        self.client = client
        self.pubsub = None
        self.access_key = settings.REDIS_ACCESS_KEY
        self._local = InMemoryChangeFeed()
        self._listener: Optional[asyncio.Task] = None

    async def connect(self):
        """Establish async connection to Redis."""
        if self.client is None:
            self.client = redis.from_url(
                redis_url(self.host, self.port, self.access_key, settings.REDIS_SSL),
                decode_responses=True,
            )
        await self.client.ping()
        logger.info(f"✓ Connected to Redis at {self.host}:{self.port}")

    def start(self) -> asyncio.Task:
        """Start the background listener on the current event loop."""
        if self._listener is None:
            self._listener = asyncio.create_task(self.listen(ROOM_PATTERN))
        return self._listener

    def subscribe(self, topic: str, handler: Handler) -> FeedSubscription:
        return self._local.subscribe(topic, handler)

    async def publish(self, topic: str, event: ChangeEvent) -> None:
        """Publish a change event to a room channel."""
        await self.client.publish(topic, event.model_dump_json())
        logger.info(f"📤 Published {event.kind} to Redis channel '{topic}'")

    async def dispatch(self, channel: str, data: str) -> None:
        """Decode one raw payload and route it to local subscribers."""
        try:
            event = ChangeEvent.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Dropping malformed change event on '{channel}': {e}")
            return
        logger.info(f"➡ Redis: Routing {event.kind} id={event.record.id} to {channel}")
        await self._local.publish(channel, event)

    async def listen(self, channel: str):
        """
        Listen to Redis and route events to local subscribers.

        For all rooms, call this with a pattern:
            await feed.listen("room:*")
        """
        self.pubsub = self.client.pubsub()

        # Support pattern matching for multiple rooms
        if "*" in channel:
            await self.pubsub.psubscribe(channel)
            logger.info(f"✓ Subscribed to Redis pattern '{channel}'")
        else:
            await self.pubsub.subscribe(channel)
            logger.info(f"✓ Subscribed to Redis channel '{channel}'")

        async for message in self.pubsub.listen():
            if message["type"] in ("message", "pmessage"):
                await self.dispatch(message["channel"], message["data"])

    async def close(self):
        """Close connections."""
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self.pubsub:
            await self.pubsub.punsubscribe()
            await self.pubsub.aclose()
        if self.client:
            await self.client.aclose()
        logger.info("Redis connection closed")
