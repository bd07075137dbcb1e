# roomsync/core/errors.py
"""
Error taxonomy for the room synchronization engine.

Only BootstrapError is fatal to a joined session. Everything else is
recoverable by retrying the action that raised it.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base class for every error raised by roomsync."""


class BootstrapError(ChatError):
    """Room lookup/creation or history load failed: the chat is unavailable."""

    def __init__(self, message: str = "Chat unavailable") -> None:
        super().__init__(message)


class RoomConflictError(ChatError):
    """A room with this slug already exists in the backing store."""

    def __init__(self, slug: str) -> None:
        super().__init__(f"Room with slug '{slug}' already exists")
        self.slug = slug


class ValidationError(ChatError):
    """Outgoing message rejected before any network call."""


class EmptyMessageError(ValidationError):
    def __init__(self) -> None:
        super().__init__("Message needs text or an attachment")


class AttachmentRejectedError(ValidationError):
    pass


class UploadError(ChatError):
    """Attachment upload failed; no message record was created."""


class SubmissionError(ChatError):
    """Message insert failed (an already uploaded blob may be orphaned)."""


class DeleteError(ChatError):
    pass


class TranscriptionError(ChatError):
    """Raised by speech backends. Never escapes the transcription adapter."""
