from __future__ import annotations

import asyncio

import pytest

from roomsync.core.errors import BootstrapError
from roomsync.models.models import NewMessage
from roomsync.services.history import load_history
from roomsync.services.room_resolver import RoomResolver, default_room_name
from roomsync.services.room_store import InMemoryRoomStore


def test_resolve_creates_public_room_once(room_store: InMemoryRoomStore):
    async def scenario():
        first = await RoomResolver(room_store).resolve("public")
        second = await RoomResolver(room_store).resolve("public")
        return first, second

    first, second = asyncio.run(scenario())
    assert first.slug == second.slug == "public"
    assert first.name == "Public Chat Room"
    assert first.id == second.id
    assert len(room_store.rooms) == 1


def test_default_name_for_other_slugs():
    assert default_room_name("team-chat") == "Team Chat"


class RacyRoomStore(InMemoryRoomStore):
    """Another client creates the room between our find() and create()."""

    def __init__(self, feed):
        super().__init__(feed)
        self.finds = 0

    async def find(self, slug):
        self.finds += 1
        if self.finds == 1:
            await super().create("Created Elsewhere", slug)
            return None
        return await super().find(slug)


def test_resolve_converges_after_create_conflict(feed):
    store = RacyRoomStore(feed)
    room = asyncio.run(RoomResolver(store).resolve("public"))

    assert room.name == "Created Elsewhere"
    assert store.finds == 2
    assert len(store.rooms) == 1


class BrokenRoomStore(InMemoryRoomStore):
    async def find(self, slug):
        raise ConnectionError("store offline")

    async def list_messages(self, room_id):
        raise ConnectionError("store offline")


def test_lookup_failure_is_bootstrap_error(feed):
    with pytest.raises(BootstrapError):
        asyncio.run(RoomResolver(BrokenRoomStore(feed)).resolve("public"))


def test_empty_slug_is_bootstrap_error(room_store):
    with pytest.raises(BootstrapError):
        asyncio.run(RoomResolver(room_store).resolve("   "))


def test_history_failure_is_bootstrap_error(feed, room_store):
    room = asyncio.run(RoomResolver(room_store).resolve("public"))
    with pytest.raises(BootstrapError):
        asyncio.run(load_history(BrokenRoomStore(feed), room))


def test_history_is_in_creation_order(room_store, alice):
    async def scenario():
        room = await RoomResolver(room_store).resolve("public")
        for text in ("one", "two", "three"):
            await room_store.insert_message(NewMessage(room_id=room.id, sender_name=alice.username, content=text))
        return await load_history(room_store, room)

    history = asyncio.run(scenario())
    assert [m.content for m in history] == ["one", "two", "three"]
    assert [m.sort_key for m in history] == sorted(m.sort_key for m in history)
