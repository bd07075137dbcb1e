from __future__ import annotations

import asyncio

import pytest

from roomsync.core.errors import AttachmentRejectedError, EmptyMessageError, SubmissionError, UploadError
from roomsync.models.models import Identity, OutgoingAttachment, Room
from roomsync.services.blob_store import BlobStore
from roomsync.services.presenter import present
from roomsync.services.room_resolver import RoomResolver
from roomsync.services.room_store import InMemoryRoomStore, RoomStore
from roomsync.services.send_pipeline import SendPipeline, attachment_key

ROOM = Room(id="room-1", name="Public Chat Room", slug="public")
PNG = OutgoingAttachment(filename="file.png", media_type="image/png", data=b"\x89PNG fake")


class UntouchableRoomStore(RoomStore):
    """Fails the test on any network call."""

    async def find(self, slug):
        raise AssertionError("network call")

    async def create(self, name, slug):
        raise AssertionError("network call")

    async def list_messages(self, room_id):
        raise AssertionError("network call")

    async def insert_message(self, fields):
        raise AssertionError("network call")

    async def delete_message(self, message_id):
        raise AssertionError("network call")


class UntouchableBlobStore(BlobStore):
    async def upload(self, key, data, content_type):
        raise AssertionError("network call")

    def public_url(self, path):
        return f"https://cdn.example/{path}"


class FixedPathBlobStore(BlobStore):
    def __init__(self, path="123-file.png"):
        self.path = path
        self.uploads = []

    async def upload(self, key, data, content_type):
        self.uploads.append((key, data, content_type))
        return self.path

    def public_url(self, path):
        return f"https://cdn.example/{path}"


class FailingBlobStore(FixedPathBlobStore):
    async def upload(self, key, data, content_type):
        raise OSError("bucket unavailable")


class FailingInsertStore(InMemoryRoomStore):
    async def insert_message(self, fields):
        raise ConnectionError("insert failed")


def test_empty_message_rejected_before_network(alice):
    pipeline = SendPipeline(UntouchableRoomStore(), UntouchableBlobStore())
    with pytest.raises(EmptyMessageError):
        asyncio.run(pipeline.send(ROOM, alice, "", None))
    with pytest.raises(EmptyMessageError):
        asyncio.run(pipeline.send(ROOM, alice, "   \n", None))


def test_bad_attachments_rejected_before_network(alice):
    pipeline = SendPipeline(UntouchableRoomStore(), UntouchableBlobStore(), max_attachment_bytes=4)
    with pytest.raises(AttachmentRejectedError):
        asyncio.run(pipeline.send(ROOM, alice, "", PNG))

    exe = OutgoingAttachment(filename="a.exe", media_type="application/x-msdownload", data=b"x")
    pipeline = SendPipeline(UntouchableRoomStore(), UntouchableBlobStore())
    with pytest.raises(AttachmentRejectedError):
        asyncio.run(pipeline.send(ROOM, alice, "look", exe))


def test_attachment_key_prefixes_time():
    assert attachment_key("file.png", now_ms=123) == "123-file.png"


def test_uploaded_path_is_referenced_by_message(room_store, alice, bob):
    blobs = FixedPathBlobStore("123-file.png")

    async def scenario():
        room = await RoomResolver(room_store).resolve("public")
        return await SendPipeline(room_store, blobs).send(room, alice, "", PNG)

    outcome = asyncio.run(scenario())
    message = outcome.message

    assert outcome.uploaded_path == "123-file.png"
    assert message.attachment.path == "123-file.png"
    assert message.attachment.media_type == "image/png"
    assert message.content == ""
    assert blobs.uploads[0][0].endswith("-file.png")

    as_bob = present(message, bob, blobs)
    assert as_bob.is_mine is False
    assert as_bob.can_delete is False
    assert as_bob.attachment_kind == "image"
    assert as_bob.attachment_url == "https://cdn.example/123-file.png"

    as_alice = present(message, alice, blobs)
    assert as_alice.is_mine and as_alice.can_delete


def test_upload_failure_aborts_before_submission(room_store, alice):
    async def scenario():
        room = await RoomResolver(room_store).resolve("public")
        await SendPipeline(room_store, FailingBlobStore()).send(room, alice, "with file", PNG)

    with pytest.raises(UploadError):
        asyncio.run(scenario())
    assert room_store.messages == {}


def test_submission_failure_is_distinct(feed, alice):
    store = FailingInsertStore(feed)
    blobs = FixedPathBlobStore()

    async def scenario():
        room = await RoomResolver(store).resolve("public")
        await SendPipeline(store, blobs).send(room, alice, "hello", PNG)

    with pytest.raises(SubmissionError):
        asyncio.run(scenario())
    # The blob was uploaded and is now orphaned
    assert len(blobs.uploads) == 1


def test_send_trims_text_and_uses_identity(room_store):
    async def scenario():
        room = await RoomResolver(room_store).resolve("public")
        return await SendPipeline(room_store, FixedPathBlobStore()).send(room, Identity(username="carol"), "  hi there  ")

    message = asyncio.run(scenario()).message
    assert message.content == "hi there"
    assert message.sender_name == "carol"
    assert message.attachment is None
