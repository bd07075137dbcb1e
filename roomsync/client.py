# roomsync/client.py
"""Terminal client: joins the shared room in-process against the configured backend."""

from __future__ import annotations

import argparse
import asyncio
import mimetypes
import os
import sys
from typing import AsyncIterator, Callable, Dict, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from roomsync.core import state
from roomsync.core.config import settings
from roomsync.core.errors import ChatError
from roomsync.core.logging import get_logger, setup_logging
from roomsync.models.models import Identity, Message, MessageView, OutgoingAttachment
from roomsync.services.identity import IdentityStore
from roomsync.services.session import RoomSession

logger = get_logger(__name__)

Output = Callable[[str], None]

HELP = """Commands:
  <text>           send the draft with <text> appended
  /send            send the current draft
  /voice PATH      transcribe an audio file into the draft
  /attach PATH     send the draft with a file attached
  /delete ID       delete one of your messages
  /quit            leave the room"""


def resolve_identity(store: IdentityStore, username: Optional[str] = None) -> Optional[Identity]:
    """A name given on the command line is remembered; otherwise the stored one is used."""
    if username:
        return store.remember(username)
    return store.load_identity()


def render(view: MessageView) -> str:
    line = f"[{view.created_at:%H:%M}] {view.sender_name}: {view.content}"
    if view.attachment_kind is not None:
        line += f" ({view.attachment_kind}: {view.attachment_url or view.attachment_type})"
    if view.can_delete:
        line += f"  #{view.id}"
    return line


def read_attachment(path: str) -> OutgoingAttachment:
    media_type, _ = mimetypes.guess_type(path)
    with open(path, "rb") as f:
        data = f.read()
    return OutgoingAttachment(
        filename=os.path.basename(path),
        media_type=media_type or "application/octet-stream",
        data=data,
    )


async def stdin_lines() -> AsyncIterator[str]:
    while True:
        # readline blocks, keep it off the loop so feed events keep flowing
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            return
        yield line.rstrip("\n")


class ChatPrinter:
    """Prints messages as they appear in the session's view, and removals."""

    def __init__(self, session_ref: Dict[str, RoomSession], output: Output) -> None:
        self.session_ref = session_ref
        self.output = output
        self.shown: Dict[str, MessageView] = {}

    async def __call__(self, snapshot: Tuple[Message, ...]) -> None:
        session = self.session_ref["session"]
        views = {view.id: view for view in session.views()}
        for message_id, view in self.shown.items():
            if message_id not in views:
                self.output(f"✗ removed: {view.sender_name}: {view.content}")
        for message_id, view in views.items():
            if message_id not in self.shown:
                self.output(render(view))
        self.shown = views


async def handle(session: RoomSession, line: str, output: Output) -> bool:
    """Run one input line. Returns False when the client should leave."""
    command, _, argument = line.strip().partition(" ")
    argument = argument.strip()

    if command == "/quit":
        return False
    if command == "/help":
        output(HELP)
    elif command == "/send":
        await session.send()
    elif command == "/voice":
        with open(argument, "rb") as f:
            text = await session.transcribe(f.read())
        output(f"🎤 draft: {session.draft}" if text else "🎤 nothing recognised")
    elif command == "/attach":
        await session.send(attachment=read_attachment(argument))
    elif command == "/delete":
        outcome = await session.remove(argument)
        if not outcome.refetched:
            output("⚠ deleted, but the room could not be re-read")
    elif command.startswith("/"):
        output(f"Unknown command: {command} (try /help)")
    elif line.strip():
        session.draft = f"{session.draft} {line.strip()}".strip()
        await session.send()
    return True


async def run_chat(
    identity: Identity,
    lines: AsyncIterator[str],
    output: Output = print,
    slug: Optional[str] = None,
) -> None:
    session_ref: Dict[str, RoomSession] = {}
    session = state.new_session(identity, on_change=ChatPrinter(session_ref, output))
    session_ref["session"] = session

    room = await session.join(slug or settings.DEFAULT_ROOM_SLUG)
    output(f"→ joined {room.name} as {identity.username}")
    try:
        async for line in lines:
            try:
                if not await handle(session, line, output):
                    break
            except (ChatError, OSError) as e:
                output(f"✗ {e}")
            await session.settle()
    finally:
        await session.leave()
        output(f"← left {room.name}")


async def _main(identity: Identity, slug: Optional[str]) -> None:
    await state.start_backend()
    try:
        await run_chat(identity, stdin_lines(), slug=slug)
    finally:
        await state.stop_backend()


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Chat in the shared room from a terminal.")
    parser.add_argument("--username", help="display name (remembered for next time)")
    parser.add_argument("--room", default=None, help=f"room slug (default: {settings.DEFAULT_ROOM_SLUG})")
    parser.add_argument("--identity-file", default=None, help="where the chosen name is stored")
    args = parser.parse_args(argv)

    setup_logging()
    store = IdentityStore(args.identity_file)
    try:
        identity = resolve_identity(store, args.username)
    except PydanticValidationError:
        print("Username must be 1-20 characters", file=sys.stderr)
        return 2
    if identity is None:
        print("No stored username; pass --username NAME", file=sys.stderr)
        return 2

    try:
        asyncio.run(_main(identity, args.room))
    except ChatError as e:
        logger.error("Chat unavailable: %s", e)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
