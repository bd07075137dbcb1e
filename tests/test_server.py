from __future__ import annotations

import base64
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from roomsync.core import state
from roomsync.main import app
from roomsync.services.blob_store import LocalBlobStore
from roomsync.services.room_store import InMemoryRoomStore
from roomsync.services.transcription import TranscriptionAdapter


def receive_until(ws, done):
    """Collect frames until done(frames) holds. Snapshot pushes may interleave with replies."""
    frames = []
    while not done(frames):
        frames.append(ws.receive_json())
    return frames


def has(frames, kind, predicate=lambda f: True):
    return any(f["type"] == kind and predicate(f) for f in frames)


def join(ws, slug="public"):
    ws.send_json({"action": "join", "slug": slug})
    joined = ws.receive_json()
    snapshot = ws.receive_json()
    return joined, snapshot


@pytest.fixture
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(state, "blob_store", LocalBlobStore(tmp_path / "blobs", "/attachments"))
    monkeypatch.setattr(state, "transcriber", TranscriptionAdapter(backend=lambda audio: {"text": "from voice"}))
    with TestClient(app) as c:
        yield c


def test_root_and_health(client: TestClient):
    assert client.get("/").json()["default_room"] == "public"
    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["sessions"] == 0


def test_resolve_room_is_idempotent(client: TestClient):
    first = client.get("/rooms/public")
    second = client.get("/rooms/public")
    assert first.status_code == 200
    assert first.json()["name"] == "Public Chat Room"
    assert first.json()["id"] == second.json()["id"]
    assert client.get("/rooms/public/messages").json() == []


def test_store_outage_is_503(client: TestClient, monkeypatch: pytest.MonkeyPatch):
    class Offline(InMemoryRoomStore):
        async def find(self, slug):
            raise ConnectionError("offline")

    monkeypatch.setattr(state, "room_store", Offline(state.change_feed))
    assert client.get("/rooms/public").status_code == 503


def test_join_send_and_delete_over_websocket(client: TestClient):
    with client.websocket_connect("/ws?username=alice") as ws:
        joined, snapshot = join(ws)
        assert joined["type"] == "room_joined"
        assert joined["room"]["slug"] == "public"
        assert snapshot == {"type": "snapshot", "messages": [], "pending": []}

        ws.send_json({"action": "send", "content": "hello"})
        frames = receive_until(
            ws, lambda fs: has(fs, "message_sent") and has(fs, "snapshot", lambda f: f["messages"])
        )
        message_id = next(f["message_id"] for f in frames if f["type"] == "message_sent")
        view = next(f for f in frames if f["type"] == "snapshot")["messages"][0]
        assert view["id"] == message_id
        assert view["is_mine"] is True and view["can_delete"] is True

        ws.send_json({"action": "delete", "message_id": message_id})
        frames = receive_until(
            ws, lambda fs: has(fs, "message_deleted") and has(fs, "snapshot", lambda f: f["messages"] == [])
        )
        deleted = next(f for f in frames if f["type"] == "message_deleted")
        assert deleted == {"type": "message_deleted", "message_id": message_id, "refetched": True}

        assert client.get("/rooms/public/messages").json() == []


def test_other_client_sees_message_as_not_mine(client: TestClient):
    with client.websocket_connect("/ws?username=alice") as alice_ws, \
            client.websocket_connect("/ws?username=bob") as bob_ws:
        join(alice_ws)
        join(bob_ws)

        alice_ws.send_json({"action": "send", "content": "hi bob"})
        receive_until(alice_ws, lambda fs: has(fs, "message_sent"))

        frames = receive_until(bob_ws, lambda fs: has(fs, "snapshot", lambda f: f["messages"]))
        view = frames[-1]["messages"][0]
        assert view["sender_name"] == "alice"
        assert view["is_mine"] is False
        assert view["can_delete"] is False


def test_attachment_upload_and_download(client: TestClient):
    png = b"\x89PNG\r\n\x1a\nfake"
    with client.websocket_connect("/ws?username=alice") as ws:
        join(ws)
        ws.send_json(
            {
                "action": "send",
                "content": "",
                "attachment": {
                    "filename": "file.png",
                    "media_type": "image/png",
                    "data": base64.b64encode(png).decode(),
                },
            }
        )
        frames = receive_until(ws, lambda fs: has(fs, "snapshot", lambda f: f["messages"]))
        view = [f for f in frames if f["type"] == "snapshot"][-1]["messages"][0]

    assert view["attachment_kind"] == "image"
    assert view["attachment_type"] == "image/png"
    assert view["attachment_url"].startswith("/attachments/")
    assert view["attachment_url"].endswith("-file.png")

    response = client.get(view["attachment_url"])
    assert response.status_code == 200
    assert response.content == png
    assert client.get("/attachments/missing.png").status_code == 404


def test_validation_errors_are_reported(client: TestClient):
    with client.websocket_connect("/ws?username=alice") as ws:
        ws.send_json({"action": "send", "content": "too early"})
        assert ws.receive_json()["error"] == "request"

        join(ws)
        ws.send_json({"action": "send", "content": "   "})
        error = ws.receive_json()
        assert error == {"type": "error", "error": "validation", "message": "Message needs text or an attachment"}

        ws.send_text("not json")
        assert ws.receive_json()["message"] == "Invalid JSON"

        ws.send_json({"action": "dance"})
        assert ws.receive_json()["message"] == "Unknown action: dance"


def test_transcribe_appends_to_draft(client: TestClient):
    with client.websocket_connect("/ws?username=alice") as ws:
        ws.send_json({"action": "transcribe", "audio": base64.b64encode(b"\x00\x01").decode(), "draft": "typed"})
        assert ws.receive_json() == {"type": "transcribed", "text": "from voice", "draft": "typed from voice"}


def test_leave_room(client: TestClient):
    with client.websocket_connect("/ws?username=alice") as ws:
        joined, _ = join(ws)
        ws.send_json({"action": "leave"})
        assert ws.receive_json() == {"type": "room_left", "room_id": joined["room"]["id"]}


def test_username_required(client: TestClient):
    with client.websocket_connect("/ws") as ws:
        error = ws.receive_json()
    assert error["error"] == "validation"


def test_malformed_fields_are_validation_errors(client: TestClient):
    with client.websocket_connect("/ws?username=alice") as ws:
        join(ws)
        bad_requests = [
            {"action": "send", "content": 42},
            {"action": "send", "content": "x", "attachment": "not-an-object"},
            {"action": "send", "content": "x", "attachment": {"filename": 7, "data": ""}},
            {"action": "send", "content": "x", "attachment": {"data": "@@@"}},
            {"action": "transcribe", "audio": 12},
            {"action": "transcribe", "audio": "", "draft": ["typed"]},
        ]
        for request in bad_requests:
            ws.send_json(request)
            assert ws.receive_json()["error"] == "validation"

        # The socket survives all of them
        ws.send_json({"action": "leave"})
        assert ws.receive_json()["type"] == "room_left"
