# roomsync/services/session.py
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, Tuple

from roomsync.core.logging import get_logger
from roomsync.core.errors import BootstrapError, ChatError
from roomsync.models.models import (
    DeleteOutcome,
    Identity,
    Message,
    MessageView,
    OutgoingAttachment,
    Room,
    RoomEvent,
    SendOutcome,
)
from roomsync.services.blob_store import BlobStore
from roomsync.services.change_feed import ChangeFeed, FeedSubscription
from roomsync.services.delete_pipeline import DeletePipeline
from roomsync.services.history import load_history
from roomsync.services.message_store import LocalMessageStore
from roomsync.services.presenter import present_all
from roomsync.services.room_resolver import RoomResolver
from roomsync.services.room_store import RoomStore
from roomsync.services.send_pipeline import SendPipeline
from roomsync.services.subscriber import subscribe
from roomsync.services.transcription import TranscriptionAdapter, append_to_draft

logger = get_logger(__name__)

ChangeListener = Callable[[Tuple[Message, ...]], Awaitable[None]]


# ============================================================================
# JOINED ROOM SESSION
# ============================================================================

class RoomSession:
    """
    One client's membership in one room.

    The session owns a LocalMessageStore and a queue of RoomEvents. Feed
    callbacks and the pipelines only enqueue; a single consumer task applies
    events in arrival order, so the store is never mutated concurrently.

    Lifecycle:
        1. join(slug): resolve the room, subscribe (events start buffering),
           load the backlog, seed the store, then start the consumer
        2. send() / remove() / transcribe() while joined
        3. leave(): cancel the feed subscription once and stop the consumer

    Subscribing before the backlog read means nothing published in between
    is missed; duplicates from that window are absorbed by idempotent insert.
    The backlog is always applied before any buffered feed event.

    The identity is passed in once at construction and never re-read.
    """

    def __init__(
        self,
        room_store: RoomStore,
        feed: ChangeFeed,
        blob_store: BlobStore,
        identity: Identity,
        transcriber: Optional[TranscriptionAdapter] = None,
        on_change: Optional[ChangeListener] = None,
    ) -> None:
        self.room_store = room_store
        self.feed = feed
        self.blob_store = blob_store
        self.identity = identity
        self.transcriber = transcriber
        self.on_change = on_change

        self.store = LocalMessageStore()
        self.queue: asyncio.Queue[RoomEvent] = asyncio.Queue()
        self.room: Optional[Room] = None
        self.draft: str = ""
        self.closed = False

        self.resolver = RoomResolver(room_store)
        self.sender = SendPipeline(room_store, blob_store)
        self.deleter = DeletePipeline(room_store, self.emit)

        self._subscription: Optional[FeedSubscription] = None
        self._consumer: Optional[asyncio.Task] = None

    # -------------------------
    # Lifecycle
    # -------------------------
    async def join(self, slug: str) -> Room:
        if self.room is not None:
            raise ChatError(f"Session already joined '{self.room.slug}'")

        room = await self.resolver.resolve(slug)
        self._subscription = subscribe(
            self.feed,
            room,
            on_insert=lambda message: self.emit(RoomEvent.insert(message)),
            on_delete=lambda message_id: self.emit(RoomEvent.delete(message_id)),
        )
        try:
            backlog = await load_history(self.room_store, room)
        except BootstrapError:
            self._subscription.cancel()
            self._subscription = None
            raise

        self.room = room
        self.store.seed(backlog)
        self._consumer = asyncio.create_task(self._run())
        logger.info("→ %s joined '%s' (%d messages)", self.identity.username, room.slug, len(backlog))
        if self.on_change is not None:
            await self._notify()
        return room

    async def leave(self) -> None:
        if self.closed:
            return
        self.closed = True

        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

        if self.room is not None:
            logger.info("← %s left '%s'", self.identity.username, self.room.slug)

    # -------------------------
    # Event application
    # -------------------------
    def emit(self, event: RoomEvent) -> None:
        """Queue an event for the consumer. Dropped once the session is closed."""
        if self.closed:
            logger.debug("Discarding %s event for closed session", event.kind)
            return
        self.queue.put_nowait(event)

    async def _run(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                if self.store.apply(event) and self.on_change is not None:
                    await self._notify()
            except Exception:
                logger.exception("Failed to apply %s event", event.kind)
            finally:
                self.queue.task_done()

    async def _notify(self) -> None:
        try:
            await self.on_change(self.store.snapshot())
        except Exception:
            logger.exception("Change listener failed")

    async def settle(self) -> None:
        """Wait until every queued event has been applied."""
        await self.queue.join()

    # -------------------------
    # Reads
    # -------------------------
    def snapshot(self) -> Tuple[Message, ...]:
        return self.store.snapshot()

    def views(self) -> List[MessageView]:
        return present_all(self.store.snapshot(), self.identity, self.blob_store)

    # -------------------------
    # Actions
    # -------------------------
    def _require_room(self) -> Room:
        if self.room is None or self.closed:
            raise ChatError("Not joined to a room")
        return self.room

    async def send(self, text: Optional[str] = None, attachment: Optional[OutgoingAttachment] = None) -> SendOutcome:
        """Send text (default: the current draft). The draft is cleared only on success."""
        room = self._require_room()
        outcome = await self.sender.send(room, self.identity, self.draft if text is None else text, attachment)
        self.emit(RoomEvent.local_send(outcome.message))
        self.draft = ""
        return outcome

    async def remove(self, message_id: str) -> DeleteOutcome:
        room = self._require_room()
        return await self.deleter.remove(room, message_id)

    async def transcribe(self, audio: bytes) -> str:
        """Transcribe audio and append the text to the draft. Returns the new text ('' on failure)."""
        if self.transcriber is None:
            self.transcriber = TranscriptionAdapter()
        text = await self.transcriber.transcribe(audio)
        self.draft = append_to_draft(self.draft, text)
        return text
