# roomsync/api/routes/rooms.py

from typing import List

from fastapi import APIRouter, HTTPException

from roomsync.core import state
from roomsync.core.errors import BootstrapError
from roomsync.models.models import Message, Room
from roomsync.services.history import load_history
from roomsync.services.room_resolver import RoomResolver

router = APIRouter()

# ============================================================================
# ROOM ENDPOINTS
# ============================================================================

async def _resolve(slug: str) -> Room:
    try:
        return await RoomResolver(state.room_store).resolve(slug)
    except BootstrapError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/rooms/{slug}", response_model=Room)
async def get_room(slug: str):
    """
    Resolve a room by slug.

    The room is created with its default name on first use, so this never
    returns 404.

    Raises:
        HTTPException: 503 if the backing store is unavailable
    """
    return await _resolve(slug)


@router.get("/rooms/{slug}/messages", response_model=List[Message])
async def list_messages(slug: str):
    """
    Get the room's backlog, ordered by creation time.

    Raises:
        HTTPException: 503 if the room or its history cannot be loaded
    """
    room = await _resolve(slug)
    try:
        return await load_history(state.room_store, room)
    except BootstrapError as e:
        raise HTTPException(status_code=503, detail=str(e))
