# roomsync/models/models.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Room(BaseModel):
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str
    name: str
    slug: str
    created_at: datetime = Field(default_factory=utcnow)


class Attachment(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    media_type: str


class Message(BaseModel):
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str
    room_id: str
    sender_name: str = ""
    content: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    attachment: Optional[Attachment] = None

    @property
    def sort_key(self) -> Tuple[datetime, str]:
        return (self.created_at, self.id)


class NewMessage(BaseModel):
    """Fields a client submits; the backing store assigns id and created_at."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    room_id: str
    sender_name: str
    content: str = ""
    attachment: Optional[Attachment] = None


class Identity(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str = Field(min_length=1, max_length=20)

    @field_validator("username", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value


class OutgoingAttachment(BaseModel):
    filename: str
    media_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class ChangeEvent(BaseModel):
    """
    A change-feed notification. For deletes only record.id (and room_id)
    is meaningful: the record may be a partial old row.
    """

    kind: Literal["insert", "delete"]
    record: Message


class RoomEvent(BaseModel):
    """Tagged event consumed by a joined session, applied in arrival order."""

    kind: Literal["insert", "delete", "local_send", "local_delete", "reseed"]
    message: Optional[Message] = None
    message_id: Optional[str] = None
    messages: List[Message] = Field(default_factory=list)

    @classmethod
    def insert(cls, message: Message) -> "RoomEvent":
        return cls(kind="insert", message=message)

    @classmethod
    def delete(cls, message_id: str) -> "RoomEvent":
        return cls(kind="delete", message_id=message_id)

    @classmethod
    def local_send(cls, message: Message) -> "RoomEvent":
        return cls(kind="local_send", message=message)

    @classmethod
    def local_delete(cls, message_id: str) -> "RoomEvent":
        return cls(kind="local_delete", message_id=message_id)

    @classmethod
    def reseed(cls, messages: List[Message]) -> "RoomEvent":
        return cls(kind="reseed", messages=list(messages))


class MessageView(BaseModel):
    """A message as one particular viewer renders it."""

    id: str
    sender_name: str
    content: str
    created_at: datetime
    is_mine: bool
    can_delete: bool
    sender_color: str
    attachment_url: Optional[str] = None
    attachment_kind: Optional[Literal["image", "pdf", "document", "file"]] = None
    attachment_type: Optional[str] = None


class SendOutcome(BaseModel):
    message: Message
    uploaded_path: Optional[str] = None


class DeleteOutcome(BaseModel):
    message_id: str
    refetched: bool
