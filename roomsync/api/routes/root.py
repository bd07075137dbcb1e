# roomsync/api/routes/root.py

from fastapi import APIRouter

from roomsync.core.config import settings

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and its features.
    """
    return {
        "message": "roomsync - shared room chat",
        "version": "1.0",
        "backend": settings.PUB_SUB_SERVICE,
        "default_room": settings.DEFAULT_ROOM_SLUG,
        "features": ["change_feed", "attachments", "voice_to_text"],
        "endpoints": {
            "websocket": "/ws",
            "rooms": "/rooms/{slug}",
            "messages": "/rooms/{slug}/messages",
            "attachments": "/attachments/{path}",
            "health": "/health",
        },
    }
