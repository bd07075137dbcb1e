# roomsync/main.py

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roomsync.core import state
from roomsync.core.config import settings
from roomsync.core.logging import setup_logging, get_logger
from roomsync.api.routes import root, health, rooms, attachments
from roomsync.api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = get_logger(__name__)

# FastAPI app
app = FastAPI(title="roomsync - Shared Room Chat")

# CORS (relaxed; any named user is trusted)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST routes
app.include_router(root.router)
app.include_router(health.router)
app.include_router(rooms.router)
app.include_router(attachments.router)

# WebSocket routes
app.include_router(websocket_module.router)


@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Application starting - backend=%s", settings.PUB_SUB_SERVICE)

    await state.start_backend()


@app.on_event("shutdown")
async def on_shutdown():
    for websocket in list(state.connection_manager.connection_users):
        await state.connection_manager.disconnect(websocket)
    await state.stop_backend()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("roomsync.main:app", host="0.0.0.0", port=8000)
