# roomsync/api/routes/health.py

from datetime import datetime, timezone

from fastapi import APIRouter

from roomsync.core import state
from roomsync.core.config import settings

router = APIRouter()

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns current system status, connection and joined-session counts.

    Returns:
        dict: Status, backend, connection count, session count, uptime
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    return {
        "status": "healthy",
        "backend": settings.PUB_SUB_SERVICE,
        "connections": len(state.connection_manager.connection_users),
        "sessions": len(state.connection_manager.sessions),
        "uptime_hours": round(uptime_seconds / 3600, 2),
    }
