# roomsync/services/room_resolver.py
from __future__ import annotations

from typing import Optional

from roomsync.core.logging import get_logger
from roomsync.core.config import settings
from roomsync.core.errors import BootstrapError, RoomConflictError
from roomsync.models.models import Room
from roomsync.services.room_store import RoomStore

logger = get_logger(__name__)


def default_room_name(slug: str) -> str:
    """Display name given to a room created on first use of its slug."""
    if slug == settings.DEFAULT_ROOM_SLUG:
        return settings.DEFAULT_ROOM_NAME
    return slug.replace("-", " ").replace("_", " ").title()


class RoomResolver:
    """
    Resolves a human-readable slug to the canonical Room, creating it lazily.

    Two sessions racing on a never-seen slug may both try to create it. The
    backing store enforces slug uniqueness, so the loser gets a
    RoomConflictError and re-reads the winner: all sessions converge on the
    same room id. Any other failure is a BootstrapError and is not retried.
    """

    def __init__(self, room_store: RoomStore) -> None:
        self.room_store = room_store

    async def resolve(self, slug: str, name: Optional[str] = None) -> Room:
        slug = slug.strip()
        if not slug:
            raise BootstrapError("Chat unavailable: empty room slug")

        try:
            room = await self.room_store.find(slug)
            if room is not None:
                return room

            try:
                room = await self.room_store.create(name or default_room_name(slug), slug)
            except RoomConflictError:
                logger.info("Room '%s' created concurrently, re-reading", slug)
                room = await self.room_store.find(slug)
                if room is None:
                    raise BootstrapError(f"Chat unavailable: room '{slug}' vanished after conflict")
            return room
        except BootstrapError:
            raise
        except Exception as e:
            logger.error("Error resolving room '%s': %s", slug, e)
            raise BootstrapError() from e
