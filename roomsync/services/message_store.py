# roomsync/services/message_store.py
from __future__ import annotations

import bisect
from typing import Dict, Iterable, List, Set, Tuple

from roomsync.core.logging import get_logger
from roomsync.models.models import Message, RoomEvent

logger = get_logger(__name__)

# Deleted ids remembered to reject stale insert echoes, oldest evicted first
MAX_TOMBSTONES = 1000


def _sort_key(message: Message):
    return message.sort_key


# ============================================================================
# LOCAL MESSAGE STORE
# ============================================================================

class LocalMessageStore:
    """
    Ordered, eventually-consistent mirror of one room's messages.

    Pure state plus merge rules: no transport, no UI. It is mutated from a
    single task only, so there is no locking.

    Invariants:
        - never two entries with the same id
        - always sorted by (created_at, id)

    Merge rules:
        - seed() replaces everything (the initial backlog)
        - apply_insert() is idempotent, and ignores ids this store has seen
          deleted: ids are never reused, so such an insert is a stale echo
        - apply_delete() of an absent id is a silent no-op
        - a reseed (re-fetch after a local delete) replaces everything too,
          except that it never revives a deleted id and keeps feed inserts
          applied since the local delete that the read did not see

    Usage:
        store = LocalMessageStore()
        store.seed(backlog)
        store.apply_insert(message)
        store.apply_delete(message.id)
        store.snapshot()
    """

    def __init__(self) -> None:
        self._by_id: Dict[str, Message] = {}
        self._ordered: List[Message] = []
        # Insertion-ordered so the oldest tombstone is evicted first
        self._deleted: Dict[str, None] = {}
        # Feed inserts applied since the last local delete
        self._inserted_since_delete: Set[str] = set()
        # Locally submitted messages whose insert echo has not arrived yet
        self.pending: Set[str] = set()

    def __len__(self) -> int:
        return len(self._ordered)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._by_id

    def seed(self, messages: Iterable[Message]) -> None:
        by_id: Dict[str, Message] = {}
        for message in messages:
            by_id.setdefault(message.id, message)
        self._by_id = by_id
        self._ordered = sorted(by_id.values(), key=_sort_key)
        # Authoritative state: anything it contains is no longer pending
        self.pending.difference_update(by_id)

    def reseed(self, messages: Iterable[Message]) -> bool:
        """
        Merge the result of a re-fetch. Returns whether the snapshot changed.

        The read may have happened before feed events that were already
        applied here, so deleted ids stay deleted and inserts seen since
        the local delete survive even when the read missed them.
        """
        before = self.snapshot()
        fetched = [m for m in messages if m.id not in self._deleted]
        fetched_ids = {m.id for m in fetched}
        fetched.extend(
            self._by_id[message_id]
            for message_id in self._inserted_since_delete
            if message_id in self._by_id and message_id not in fetched_ids
        )
        self.seed(fetched)
        self._inserted_since_delete.clear()
        return before != self.snapshot()

    def apply_insert(self, message: Message) -> bool:
        self.pending.discard(message.id)
        if message.id in self._by_id or message.id in self._deleted:
            return False
        self._by_id[message.id] = message
        bisect.insort(self._ordered, message, key=_sort_key)
        self._inserted_since_delete.add(message.id)
        return True

    def apply_delete(self, message_id: str) -> bool:
        self._remember_deleted(message_id)
        self.pending.discard(message_id)
        self._inserted_since_delete.discard(message_id)
        message = self._by_id.pop(message_id, None)
        if message is None:
            return False
        self._ordered.remove(message)
        return True

    def _remember_deleted(self, message_id: str) -> None:
        self._deleted.pop(message_id, None)
        self._deleted[message_id] = None
        while len(self._deleted) > MAX_TOMBSTONES:
            del self._deleted[next(iter(self._deleted))]

    def snapshot(self) -> Tuple[Message, ...]:
        return tuple(self._ordered)

    def ids(self) -> List[str]:
        return [m.id for m in self._ordered]

    def apply(self, event: RoomEvent) -> bool:
        """Apply one tagged session event. Returns whether the snapshot changed."""
        if event.kind == "insert":
            return self.apply_insert(event.message)
        if event.kind == "delete":
            return self.apply_delete(event.message_id)
        if event.kind == "local_delete":
            # Start a fresh window for the re-fetch that follows
            self._inserted_since_delete.clear()
            return self.apply_delete(event.message_id)
        if event.kind == "local_send":
            # No optimistic insert: the feed echo is the source of truth
            if event.message.id not in self._by_id and event.message.id not in self._deleted:
                self.pending.add(event.message.id)
            return False
        if event.kind == "reseed":
            return self.reseed(event.messages)
        logger.warning("Ignoring unknown room event %s", event.kind)
        return False
