import itertools
import threading
from datetime import datetime, timezone
from typing import Optional

from .base import (
    BookingSink,
    MemoryItem,
    MemoryStore,
    MessageStore,
    StateStore,
    StoredMessage,
    SummaryOverlapError,
    SummaryRecord,
    SummaryStore,
)


class InMemoryStore(MessageStore, StateStore, MemoryStore, SummaryStore, BookingSink):
    """
    Process-local implementation of every store interface.
    Used by the test-suite and for running the assistant without a database.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._summary_ids = itertools.count(1)
        self.messages: dict[str, list[StoredMessage]] = {}
        self.states: dict[str, dict] = {}
        self.memories: list[dict] = []
        self.summaries: dict[str, list[SummaryRecord]] = {}
        self.bookings: list[dict] = []

    # messages
    def append_message(self, conversation_id: str, sender: str, text: str) -> int:
        with self._lock:
            msg_id = next(self._ids)
            self.messages.setdefault(conversation_id, []).append({
                "id": msg_id,
                "conversation_id": conversation_id,
                "sender": sender,
                "text": text,
                "created_at": datetime.now(timezone.utc),
            })
            return msg_id

    def list_messages(self, conversation_id: str) -> list[StoredMessage]:
        with self._lock:
            return [dict(m) for m in self.messages.get(conversation_id, [])]

    # state
    def load_state(self, conversation_id: str) -> dict:
        with self._lock:
            return dict(self.states.get(conversation_id) or {})

    def save_state(self, conversation_id: str, state: dict) -> None:
        with self._lock:
            self.states[conversation_id] = dict(state)

    # memories
    def list_memories(self, user_id: str, conversation_id: Optional[str] = None) -> list[MemoryItem]:
        with self._lock:
            rows = [
                m for m in self.memories
                if m["user_id"] == user_id
                and (conversation_id is None or m["conversation_id"] in (None, conversation_id))
            ]
        rows.sort(key=lambda m: m["importance"], reverse=True)
        return [{"type": m["type"], "content": m["content"], "importance": m["importance"]} for m in rows]

    def add_memory(self, user_id, conversation_id, memory_type, content, importance=5) -> None:
        with self._lock:
            self.memories.append({
                "user_id": user_id,
                "conversation_id": conversation_id,
                "type": memory_type,
                "content": content,
                "importance": importance,
            })

    # summaries
    def list_summaries(self, conversation_id: str) -> list[SummaryRecord]:
        with self._lock:
            return [dict(s) for s in self.summaries.get(conversation_id, [])]

    def add_summary(self, summary: SummaryRecord) -> SummaryRecord:
        conversation_id = summary["conversation_id"]
        with self._lock:
            existing = self.summaries.setdefault(conversation_id, [])
            covered = {i for s in existing for i in s["summarized_message_ids"]}
            overlap = covered & set(summary["summarized_message_ids"])
            if overlap:
                raise SummaryOverlapError(conversation_id, overlap)
            stored = dict(summary)
            stored["id"] = next(self._summary_ids)
            stored["created_at"] = datetime.now(timezone.utc)
            existing.append(stored)
            return dict(stored)

    # bookings
    def submit(self, user_id, conversation_id, agent, data) -> int:
        with self._lock:
            self.bookings.append({
                "user_id": user_id,
                "conversation_id": conversation_id,
                "agent": agent,
                "details": dict(data),
            })
            return len(self.bookings)
