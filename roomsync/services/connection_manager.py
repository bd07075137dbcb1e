# roomsync/services/connection_manager.py

from __future__ import annotations

from typing import Callable, Dict, Optional
from fastapi import WebSocket

from roomsync.core.logging import get_logger
from roomsync.models.models import Identity
from roomsync.services.session import ChangeListener, RoomSession

logger = get_logger(__name__)

SessionFactory = Callable[[Identity, Optional[ChangeListener]], RoomSession]

# ============================================================================
# WEBSOCKET CONNECTION MANAGER
# ============================================================================

class ConnectionManager:
    """
    Maps WebSocket connections to their joined RoomSession.

    Each connection has at most one session. The session owns the local
    message view; this class only wires its change notifications back to
    the socket as rendered snapshots.

    Data Structures:
        sessions: Maps WebSocket -> RoomSession (only while joined)
        connection_users: Maps WebSocket -> Identity
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self.session_factory = session_factory
        self.sessions: Dict[WebSocket, RoomSession] = {}
        self.connection_users: Dict[WebSocket, Identity] = {}

    async def connect(self, websocket: WebSocket, identity: Identity) -> None:
        """
        Accept a new WebSocket connection.

        Note:
            User is not automatically joined to a room. They must send a
            "join" action first.
        """
        await websocket.accept()
        self.connection_users[websocket] = identity
        logger.info("✓ User %s connected. Total: %d", identity.username, len(self.connection_users))

    async def disconnect(self, websocket: WebSocket) -> None:
        """Leave any joined room and forget the connection."""
        await self.leave_room(websocket, notify=False)
        identity = self.connection_users.pop(websocket, None)
        if identity is not None:
            logger.info("✗ User %s disconnected. Total: %d", identity.username, len(self.connection_users))

    def session_for(self, websocket: WebSocket) -> Optional[RoomSession]:
        return self.sessions.get(websocket)

    async def join_room(self, websocket: WebSocket, slug: str) -> RoomSession:
        """
        Join a room by slug, replacing any previous session of this connection.

        Process:
            1. Leave the current room (cancels its feed subscription)
            2. Create a session and join (resolve, subscribe, load backlog)
            3. Send confirmation, then the rendered snapshot

        Raises:
            BootstrapError: room or backlog unavailable
        """
        identity = self.connection_users[websocket]
        await self.leave_room(websocket, notify=False)

        session = self.session_factory(identity, None)

        async def push_snapshot(_snapshot) -> None:
            await self.send_snapshot(websocket, session)

        room = await session.join(slug)
        session.on_change = push_snapshot
        self.sessions[websocket] = session

        logger.info("→ %s joined '%s'", identity.username, room.slug)
        await websocket.send_json(
            {
                "type": "room_joined",
                "room": room.model_dump(mode="json"),
                "online_count": self.online_count(room.id),
            }
        )
        await self.send_snapshot(websocket, session)
        return session

    async def leave_room(self, websocket: WebSocket, notify: bool = True) -> None:
        session = self.sessions.pop(websocket, None)
        if session is None:
            return
        await session.leave()
        if notify and session.room is not None:
            await websocket.send_json({"type": "room_left", "room_id": session.room.id})

    async def send_snapshot(self, websocket: WebSocket, session: RoomSession) -> None:
        await websocket.send_json(
            {
                "type": "snapshot",
                "messages": [view.model_dump(mode="json") for view in session.views()],
                "pending": sorted(session.store.pending),
            }
        )

    def online_count(self, room_id: str) -> int:
        return sum(1 for s in self.sessions.values() if s.room is not None and s.room.id == room_id)
