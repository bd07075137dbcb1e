# roomsync/core/state.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from roomsync.core.config import settings
from roomsync.models.models import Identity
from roomsync.services.blob_store import BlobStore, LocalBlobStore
from roomsync.services.change_feed import ChangeFeed, InMemoryChangeFeed
from roomsync.services.connection_manager import ConnectionManager
from roomsync.services.redis_pub_sub import RedisChangeFeed
from roomsync.services.redis_room_store import RedisRoomStore
from roomsync.services.room_store import InMemoryRoomStore, RoomStore
from roomsync.services.session import ChangeListener, RoomSession
from roomsync.services.transcription import TranscriptionAdapter

# Global singletons for app state. Startup swaps in the Redis backends
# when PUB_SUB_SERVICE=redis.
change_feed: ChangeFeed = InMemoryChangeFeed()
room_store: RoomStore = InMemoryRoomStore(change_feed)
blob_store: BlobStore = LocalBlobStore(settings.ATTACHMENTS_DIR, settings.ATTACHMENTS_BASE_URL)
transcriber: TranscriptionAdapter = TranscriptionAdapter()
redis_service: Optional[RedisChangeFeed] = None


def new_session(identity: Identity, on_change: Optional[ChangeListener] = None) -> RoomSession:
    """Build a session against whatever backends are currently installed."""
    return RoomSession(
        room_store=room_store,
        feed=change_feed,
        blob_store=blob_store,
        identity=identity,
        transcriber=transcriber,
        on_change=on_change,
    )


def use_memory_backend() -> None:
    """Install fresh in-process backends (used at startup and by tests)."""
    global change_feed, room_store
    change_feed = InMemoryChangeFeed()
    room_store = InMemoryRoomStore(change_feed)



async def start_backend() -> None:
    """Install the backends named by PUB_SUB_SERVICE."""
    global change_feed, room_store, redis_service
    if settings.PUB_SUB_SERVICE == "redis":
        redis_service = RedisChangeFeed(host=settings.REDIS_HOST, port=settings.REDIS_PORT)
        await redis_service.connect()

        change_feed = redis_service
        room_store = RedisRoomStore(redis_service.client, redis_service)

        # Start the pattern listener in background
        redis_service.start()
    else:
        use_memory_backend()


async def stop_backend() -> None:
    global redis_service
    if redis_service is not None:
        await redis_service.close()
        redis_service = None


connection_manager = ConnectionManager(session_factory=new_session)

app_start_time: datetime = datetime.now(timezone.utc)
