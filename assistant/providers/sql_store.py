from typing import Optional

from sqlalchemy import select, update

from assistant.models import (
    Conversation,
    ConversationSummary,
    Message,
    Setting,
    TransportRequest,
    UserMemory,
)
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


def _summary_to_record(row: ConversationSummary) -> SummaryRecord:
    return {
        "id": row.id,
        "conversation_id": row.conversation_id,
        "summary_text": row.summary_text,
        "key_points": list(row.key_points or []),
        "important_info": dict(row.important_info or {}),
        "message_count": row.message_count,
        "first_message_id": row.first_message_id,
        "last_message_id": row.last_message_id,
        "summarized_message_ids": list(row.summarized_message_ids or []),
        "first_message_at": row.first_message_at,
        "last_message_at": row.last_message_at,
        "created_at": row.created_at,
    }


class SqlStore(MessageStore, StateStore, MemoryStore, SummaryStore, BookingSink):
    """
    SQLAlchemy-backed stores.
    One short-lived session per call, same as the request handlers.
    """

    def __init__(self, session_factory=None):
        if session_factory is None:
            from assistant.db import SessionLocal
            session_factory = SessionLocal
        self.session_factory = session_factory

    def _ensure_conversation(self, db, conversation_id: str, user_id: str = "", role: str = "guest") -> Conversation:
        conv = db.get(Conversation, conversation_id)
        if not conv:
            conv = Conversation(id=conversation_id, user_id=user_id, role=role, state={})
            db.add(conv)
            db.flush()
        return conv

    def ensure_conversation(self, conversation_id: str, user_id: str = "", role: str = "guest") -> None:
        db = self.session_factory()
        try:
            conv = self._ensure_conversation(db, conversation_id, user_id, role)
            if user_id and not conv.user_id:
                conv.user_id = user_id
            conv.role = role or conv.role
            db.commit()
        finally:
            db.close()

    # messages
    def append_message(self, conversation_id: str, sender: str, text: str) -> int:
        db = self.session_factory()
        try:
            self._ensure_conversation(db, conversation_id)
            msg = Message(conversation_id=conversation_id, sender=sender, content=text, meta={})
            db.add(msg)
            db.commit()
            return msg.id
        finally:
            db.close()

    def list_messages(self, conversation_id: str) -> list[StoredMessage]:
        db = self.session_factory()
        try:
            rows = db.scalars(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.id)
            ).all()
            return [
                {
                    "id": m.id,
                    "conversation_id": m.conversation_id,
                    "sender": m.sender,
                    "text": m.content,
                    "created_at": m.created_at,
                }
                for m in rows
            ]
        finally:
            db.close()

    # state
    def load_state(self, conversation_id: str) -> dict:
        db = self.session_factory()
        try:
            conv = db.get(Conversation, conversation_id)
            return dict(conv.state or {}) if conv else {}
        finally:
            db.close()

    def save_state(self, conversation_id: str, state: dict) -> None:
        db = self.session_factory()
        try:
            conv = self._ensure_conversation(db, conversation_id)
            conv.state = dict(state)
            db.commit()
        finally:
            db.close()

    # memories
    def list_memories(self, user_id: str, conversation_id: Optional[str] = None) -> list[MemoryItem]:
        db = self.session_factory()
        try:
            q = select(UserMemory).where(UserMemory.user_id == user_id)
            if conversation_id:
                q = q.where(
                    (UserMemory.conversation_id == conversation_id)
                    | (UserMemory.conversation_id.is_(None))
                )
            q = q.order_by(UserMemory.importance.desc(), UserMemory.id.desc())
            return [
                {"type": m.memory_type, "content": m.content, "importance": m.importance}
                for m in db.scalars(q).all()
            ]
        finally:
            db.close()

    def add_memory(self, user_id, conversation_id, memory_type, content, importance=5) -> None:
        db = self.session_factory()
        try:
            db.add(UserMemory(
                user_id=user_id,
                conversation_id=conversation_id,
                memory_type=memory_type,
                content=content,
                importance=importance,
            ))
            db.commit()
        finally:
            db.close()

    # summaries
    def list_summaries(self, conversation_id: str) -> list[SummaryRecord]:
        db = self.session_factory()
        try:
            rows = db.scalars(
                select(ConversationSummary)
                .where(ConversationSummary.conversation_id == conversation_id)
                .order_by(ConversationSummary.id)
            ).all()
            return [_summary_to_record(r) for r in rows]
        finally:
            db.close()

    def add_summary(self, summary: SummaryRecord) -> SummaryRecord:
        conversation_id = summary["conversation_id"]
        db = self.session_factory()
        try:
            # write lock before coverage is read; sqlite ignores FOR UPDATE, a no-op UPDATE is honoured everywhere
            db.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(id=Conversation.id)
                .execution_options(synchronize_session=False)
            )
            covered = set()
            for ids in db.scalars(
                select(ConversationSummary.summarized_message_ids)
                .where(ConversationSummary.conversation_id == conversation_id)
            ).all():
                covered.update(ids or [])
            overlap = covered & set(summary["summarized_message_ids"])
            if overlap:
                db.rollback()
                raise SummaryOverlapError(conversation_id, overlap)

            row = ConversationSummary(
                conversation_id=conversation_id,
                summary_text=summary["summary_text"],
                key_points=list(summary.get("key_points") or []),
                important_info=dict(summary.get("important_info") or {}),
                message_count=summary.get("message_count", 0),
                first_message_id=summary.get("first_message_id"),
                last_message_id=summary.get("last_message_id"),
                summarized_message_ids=list(summary["summarized_message_ids"]),
                first_message_at=summary.get("first_message_at"),
                last_message_at=summary.get("last_message_at"),
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return _summary_to_record(row)
        finally:
            db.close()

    # bookings
    def submit(self, user_id, conversation_id, agent, data) -> int:
        db = self.session_factory()
        try:
            req = TransportRequest(
                user_id=user_id,
                conversation_id=conversation_id,
                agent=agent,
                details=dict(data),
            )
            db.add(req)
            db.commit()
            return req.id
        finally:
            db.close()

    # settings
    def get_setting(self, key: str) -> Optional[str]:
        db = self.session_factory()
        try:
            row = db.get(Setting, key)
            return row.value if row else None
        finally:
            db.close()
