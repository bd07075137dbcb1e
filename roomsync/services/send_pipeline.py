# roomsync/services/send_pipeline.py
from __future__ import annotations

import time
from typing import Optional

from roomsync.core.logging import get_logger
from roomsync.core.config import settings
from roomsync.core.errors import AttachmentRejectedError, EmptyMessageError, SubmissionError, UploadError
from roomsync.models.models import Attachment, Identity, NewMessage, OutgoingAttachment, Room, SendOutcome
from roomsync.services.blob_store import BlobStore
from roomsync.services.room_store import RoomStore

logger = get_logger(__name__)

ALLOWED_ATTACHMENT_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
})


def attachment_key(filename: str, now_ms: Optional[int] = None) -> str:
    """Collision-resistant blob key: millisecond timestamp prefix + original name."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{now_ms}-{filename}"


def validate_outgoing(text: str, attachment: Optional[OutgoingAttachment], max_bytes: int) -> None:
    """Reject a message before any network call is made."""
    if not text.strip() and attachment is None:
        raise EmptyMessageError()
    if attachment is None:
        return
    if attachment.size > max_bytes:
        raise AttachmentRejectedError(
            f"Attachment too large: {attachment.size} bytes (max {max_bytes})"
        )
    if attachment.media_type not in ALLOWED_ATTACHMENT_TYPES:
        raise AttachmentRejectedError(f"Attachment type not allowed: {attachment.media_type}")


class SendPipeline:
    """
    Validates, uploads the attachment (if any), then submits the message.

    Flow:
        1. Validate locally (EmptyMessageError / AttachmentRejectedError)
        2. Upload attachment under "<epoch_ms>-<filename>" (UploadError aborts the send)
        3. Insert the message record (SubmissionError; an uploaded blob stays orphaned)

    The pipeline never touches a LocalMessageStore. The change feed's insert
    echo is what makes the message appear, which avoids double entries.
    """

    def __init__(
        self,
        room_store: RoomStore,
        blob_store: BlobStore,
        max_attachment_bytes: Optional[int] = None,
    ) -> None:
        self.room_store = room_store
        self.blob_store = blob_store
        self.max_attachment_bytes = max_attachment_bytes or settings.MAX_ATTACHMENT_BYTES

    async def send(
        self,
        room: Room,
        identity: Identity,
        text: str,
        attachment: Optional[OutgoingAttachment] = None,
    ) -> SendOutcome:
        validate_outgoing(text, attachment, self.max_attachment_bytes)

        stored: Optional[Attachment] = None
        if attachment is not None:
            key = attachment_key(attachment.filename)
            try:
                path = await self.blob_store.upload(key, attachment.data, attachment.media_type)
            except Exception as e:
                logger.error("Error uploading attachment %s: %s", key, e)
                raise UploadError("Failed to upload attachment") from e
            stored = Attachment(path=path, media_type=attachment.media_type)

        fields = NewMessage(
            room_id=room.id,
            sender_name=identity.username,
            content=text.strip(),
            attachment=stored,
        )
        try:
            message = await self.room_store.insert_message(fields)
        except Exception as e:
            logger.error("Error sending message to room %s: %s", room.id, e)
            raise SubmissionError("Failed to send your message") from e

        logger.info("📤 %s sent message %s to '%s'", identity.username, message.id, room.slug)
        return SendOutcome(message=message, uploaded_path=stored.path if stored else None)
