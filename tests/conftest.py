"""Pytest configuration and shared fixtures."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from roomsync.models.models import Identity, Message
from roomsync.services.blob_store import LocalBlobStore
from roomsync.services.change_feed import InMemoryChangeFeed
from roomsync.services.room_store import InMemoryRoomStore

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_message():
    """Factory for messages whose created_at is T0 + seconds."""
    def _make(message_id, seconds: float = 0, room_id: str = "room-1", sender: str = "alice", content: str = "hi") -> Message:
        return Message(
            id=message_id,
            room_id=room_id,
            sender_name=sender,
            content=content,
            created_at=T0 + timedelta(seconds=seconds),
        )
    return _make


@pytest.fixture
def feed() -> InMemoryChangeFeed:
    return InMemoryChangeFeed()


@pytest.fixture
def room_store(feed: InMemoryChangeFeed) -> InMemoryRoomStore:
    return InMemoryRoomStore(feed)


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs", base_url="/attachments")


@pytest.fixture
def alice() -> Identity:
    return Identity(username="alice")


@pytest.fixture
def bob() -> Identity:
    return Identity(username="bob")
