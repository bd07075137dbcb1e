# roomsync/api/websocket.py

from __future__ import annotations

import base64
import binascii
import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from roomsync.core.logging import get_logger
from roomsync.core import state
from roomsync.core.config import settings
from roomsync.core.errors import (
    BootstrapError,
    ChatError,
    DeleteError,
    SubmissionError,
    UploadError,
    ValidationError,
)
from roomsync.models.models import Identity, OutgoingAttachment
from roomsync.services.transcription import append_to_draft

logger = get_logger(__name__)

router = APIRouter()


def error_payload(exc: Exception) -> dict:
    """Map an exception to the error frame sent to the client."""
    if isinstance(exc, BootstrapError):
        kind = "bootstrap"
    elif isinstance(exc, ValidationError):
        kind = "validation"
    elif isinstance(exc, UploadError):
        kind = "upload"
    elif isinstance(exc, SubmissionError):
        kind = "submission"
    elif isinstance(exc, DeleteError):
        kind = "delete"
    else:
        kind = "request"
    return {"type": "error", "error": kind, "message": str(exc)}


def text_field(message: dict, key: str) -> str:
    """Read an optional string field of a request; anything else is a validation error."""
    value = message.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"'{key}' must be a string")
    return value


def decode_base64(value: object, what: str) -> bytes:
    try:
        return base64.b64decode(value if value is not None else "", validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise ValidationError(f"{what} is not valid base64") from e


def decode_attachment(raw: object) -> OutgoingAttachment:
    if not isinstance(raw, dict):
        raise ValidationError("Attachment must be an object")
    data = decode_base64(raw.get("data"), "Attachment data")
    try:
        return OutgoingAttachment(
            filename=raw.get("filename", "attachment"),
            media_type=raw.get("media_type", "application/octet-stream"),
            data=data,
        )
    except PydanticValidationError as e:
        raise ValidationError("Attachment filename and media_type must be strings") from e


# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, username: str = ""):
    """
    WebSocket endpoint for one client of the shared room.

    Protocol:
    =========

    Client -> Server Actions:
    -------------------------
    Join Room (slug defaults to the public room):
        {"action": "join", "slug": "public"}
        Response: {"type": "room_joined", "room": {...}, "online_count": 1}
                  then {"type": "snapshot", "messages": [...], "pending": []}

    Send Message:
        {"action": "send", "content": "hi",
         "attachment": {"filename": "a.png", "media_type": "image/png", "data": "<base64>"}}
        Response: {"type": "message_sent", "message_id": "..."}

    Delete Message:
        {"action": "delete", "message_id": "..."}
        Response: {"type": "message_deleted", "message_id": "...", "refetched": true}

    Transcribe Audio:
        {"action": "transcribe", "audio": "<base64>", "draft": "current text"}
        Response: {"type": "transcribed", "text": "...", "draft": "current text ..."}

    Leave Room:
        {"action": "leave"}
        Response: {"type": "room_left", "room_id": "..."}

    Server -> Client Messages:
    -------------------------
    Snapshot (after every change of the local view):
        {"type": "snapshot", "messages": [{"id": ..., "is_mine": true, "can_delete": true, ...}]}

    Error:
        {"type": "error", "error": "bootstrap|validation|upload|submission|delete|request", "message": "..."}

    Messages never come back as a direct reply to "send": they appear in
    the next snapshot once the change feed echoes the insert.
    """
    try:
        identity = Identity(username=username)
    except PydanticValidationError:
        await websocket.accept()
        await websocket.send_json({"type": "error", "error": "validation", "message": "Username required"})
        await websocket.close(code=1008)
        return

    await state.connection_manager.connect(websocket, identity)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
                if not isinstance(message, dict):
                    raise ChatError("Request must be a JSON object")
                action = message.get("action")
                logger.info(f"Websocket input: Action: {action}, User: {identity.username}")

                if action == "join":
                    slug = message.get("slug") or settings.DEFAULT_ROOM_SLUG
                    await state.connection_manager.join_room(websocket, slug)

                elif action == "leave":
                    await state.connection_manager.leave_room(websocket)

                elif action == "send":
                    session = state.connection_manager.session_for(websocket)
                    if session is None:
                        raise ChatError("Join a room first")
                    attachment = None
                    if message.get("attachment"):
                        attachment = decode_attachment(message["attachment"])
                    outcome = await session.send(text_field(message, "content"), attachment)
                    await websocket.send_json({"type": "message_sent", "message_id": outcome.message.id})

                elif action == "delete":
                    session = state.connection_manager.session_for(websocket)
                    if session is None:
                        raise ChatError("Join a room first")
                    outcome = await session.remove(str(message.get("message_id", "")))
                    await websocket.send_json({"type": "message_deleted", **outcome.model_dump()})

                elif action == "transcribe":
                    audio = decode_base64(message.get("audio"), "Audio")
                    draft = text_field(message, "draft")
                    text = await state.transcriber.transcribe(audio)
                    await websocket.send_json({"type": "transcribed", "text": text, "draft": append_to_draft(draft, text)})

                else:
                    await websocket.send_json(
                        {
                            "type": "error",
                            "error": "request",
                            "message": f"Unknown action: {action}",
                        }
                    )

            except json.JSONDecodeError:
                await websocket.send_json(
                    {
                        "type": "error",
                        "error": "request",
                        "message": "Invalid JSON",
                    }
                )
            except ChatError as e:
                await websocket.send_json(error_payload(e))

    except WebSocketDisconnect:
        await state.connection_manager.disconnect(websocket)
    except Exception as e:
        logger.error("WebSocket error: %s", e)
        await state.connection_manager.disconnect(websocket)
