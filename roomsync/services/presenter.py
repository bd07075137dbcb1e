# roomsync/services/presenter.py
from __future__ import annotations

from typing import Iterable, List, Optional

from roomsync.models.models import Identity, Message, MessageView
from roomsync.services.blob_store import BlobStore

SENDER_COLORS = (
    "blue",
    "purple",
    "pink",
    "amber",
    "emerald",
    "cyan",
    "indigo",
)


def sender_color(name: str) -> str:
    """Stable colour per sender: sum of code points into a fixed palette."""
    return SENDER_COLORS[sum(ord(c) for c in name) % len(SENDER_COLORS)]


def attachment_kind(media_type: str) -> str:
    if media_type.startswith("image/"):
        return "image"
    if media_type == "application/pdf":
        return "pdf"
    if "word" in media_type or media_type == "text/plain":
        return "document"
    return "file"


def present(message: Message, viewer: Identity, blob_store: Optional[BlobStore] = None) -> MessageView:
    """Render a message for one viewer. Only the sender gets a delete control."""
    is_mine = message.sender_name == viewer.username
    view = MessageView(
        id=message.id,
        sender_name=message.sender_name,
        content=message.content,
        created_at=message.created_at,
        is_mine=is_mine,
        can_delete=is_mine,
        sender_color=sender_color(message.sender_name),
    )
    if message.attachment is not None:
        view.attachment_kind = attachment_kind(message.attachment.media_type)
        view.attachment_type = message.attachment.media_type
        if blob_store is not None:
            view.attachment_url = blob_store.public_url(message.attachment.path)
    return view


def present_all(messages: Iterable[Message], viewer: Identity, blob_store: Optional[BlobStore] = None) -> List[MessageView]:
    return [present(m, viewer, blob_store) for m in messages]
