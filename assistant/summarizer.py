"""
Conversation history compaction.

Once a conversation has piled up enough un-summarized messages, everything but
the most recent window is folded into a short summary record. Consumers read
history through `read_for_context`, which returns the summaries plus whatever
no summary covers yet, so the context they see stays bounded.
"""
import logging
import re
from typing import Optional

from assistant.config import SUMMARY_KEEP_RECENT, SUMMARY_THRESHOLD
from assistant.providers.base import (
    MessageStore,
    StoredMessage,
    SummaryOverlapError,
    SummaryRecord,
    SummaryStore,
)

logger = logging.getLogger(__name__)

_NAME_PATTERNS = [
    re.compile(r"(?:my name is|me llamo|mi nombre es)\s+([^.,;!?\n]+)", re.IGNORECASE),
    # "I'm Ana Rojas" only when followed by a capitalized word
    re.compile(r"\b(?:I am|I'm|[Ss]oy)\s+([A-Z][\w'-]+(?:\s+[A-Z][\w'-]+)?)"),
]
_PHONE = re.compile(
    r"(?:phone|cell|mobile|number|tel[eé]fono|celular|fono)\b[^\d+]{0,12}(\+?\d[\d\s-]{5,}\d)",
    re.IGNORECASE,
)
_ADDRESS = re.compile(
    r"(?:address|direcci[oó]n|i live at|located at)\b[\s:]*(?:is\s+)?([^.,;!?\n]+)",
    re.IGNORECASE,
)

# (keywords, service_type); checked in order, a later message overrides an earlier one
_SERVICES = [
    (("wheelchair", "workshop", "taller", "silla"), "wheelchair_workshop"),
    (("transport", "trip", "ride", "transporte", "viaje", "llevar"), "transport"),
    (("accountant", "accounting", "bookkeeping", "contador", "contabilidad"), "accounting"),
]

SERVICE_LABELS = {
    "wheelchair_workshop": "Wheelchair workshop",
    "transport": "Inclusive transport",
    "accounting": "Accounting services",
}


def extract_facts(text: str) -> dict[str, str]:
    """
    Best-effort facts mentioned in one message.
    Keys: client_name, client_phone, client_address, service_type (each optional).
    """
    facts: dict[str, str] = {}
    if not text:
        return facts

    for pat in _NAME_PATTERNS:
        m = pat.search(text)
        if m:
            facts["client_name"] = m.group(1).strip()
            break

    m = _PHONE.search(text)
    if m:
        facts["client_phone"] = re.sub(r"\s+", " ", m.group(1)).strip()

    m = _ADDRESS.search(text)
    if m:
        facts["client_address"] = m.group(1).strip()

    lowered = text.lower()
    for keywords, service in _SERVICES:
        if any(k in lowered for k in keywords):
            facts["service_type"] = service
            break
    return facts


def _key_points(info: dict[str, str]) -> list[str]:
    points = []
    if info.get("client_name"):
        points.append(f"Customer: {info['client_name']}")
    if info.get("client_phone"):
        points.append(f"Phone: {info['client_phone']}")
    if info.get("client_address"):
        points.append(f"Address: {info['client_address']}")
    if info.get("service_type"):
        points.append(f"Service request: {SERVICE_LABELS.get(info['service_type'], info['service_type'])}")
    return points


class HistoryCompactor:
    def __init__(
        self,
        messages: MessageStore,
        summaries: SummaryStore,
        threshold: int = SUMMARY_THRESHOLD,
        keep_recent: int = SUMMARY_KEEP_RECENT,
    ):
        if keep_recent >= threshold:
            raise ValueError("keep_recent must be smaller than threshold")
        self.messages = messages
        self.summaries = summaries
        self.threshold = threshold
        self.keep_recent = keep_recent

    def _uncovered(self, conversation_id: str) -> tuple[list[StoredMessage], list[SummaryRecord]]:
        summaries = self.summaries.list_summaries(conversation_id)
        covered = {i for s in summaries for i in s.get("summarized_message_ids") or []}
        rest = [m for m in self.messages.list_messages(conversation_id) if m["id"] not in covered]
        return rest, summaries

    def should_compact(self, conversation_id: str) -> bool:
        uncovered, _ = self._uncovered(conversation_id)
        return len(uncovered) >= self.threshold

    def compact(self, conversation_id: str) -> Optional[SummaryRecord]:
        uncovered, _ = self._uncovered(conversation_id)
        if len(uncovered) < self.threshold:
            return None

        to_summarize = uncovered[:len(uncovered) - self.keep_recent]

        info: dict[str, str] = {}
        for msg in to_summarize:
            info.update(extract_facts(msg.get("text") or ""))
        points = _key_points(info)

        service = SERVICE_LABELS.get(info.get("service_type", ""), "general enquiries")
        summary_text = f"Conversation with {info.get('client_name') or 'the customer'} about {service}."
        if points:
            summary_text += " " + ". ".join(points) + "."

        record: SummaryRecord = {
            "conversation_id": conversation_id,
            "summary_text": summary_text,
            "key_points": points,
            "important_info": info,
            "message_count": len(to_summarize),
            "first_message_id": to_summarize[0]["id"],
            "last_message_id": to_summarize[-1]["id"],
            "summarized_message_ids": [m["id"] for m in to_summarize],
            "first_message_at": to_summarize[0].get("created_at"),
            "last_message_at": to_summarize[-1].get("created_at"),
        }
        try:
            saved = self.summaries.add_summary(record)
        except SummaryOverlapError as e:
            # another compaction of this conversation got there first
            logger.info("skipping summary for %s: %s", conversation_id, e)
            return None

        logger.info(
            "summarized %d messages of %s (%d kept live)",
            len(to_summarize), conversation_id, len(uncovered) - len(to_summarize),
        )
        return saved

    def read_for_context(self, conversation_id: str) -> dict:
        recent, summaries = self._uncovered(conversation_id)
        covered = sum(len(s.get("summarized_message_ids") or []) for s in summaries)
        return {
            "summaries": summaries,
            "recentMessages": recent,
            "totalMessageCount": covered + len(recent),
        }

    def load_history(self, conversation_id: str) -> dict:
        """Compact if due, then return the bounded history view."""
        if self.should_compact(conversation_id):
            self.compact(conversation_id)
        return self.read_for_context(conversation_id)


def format_history(view: dict) -> list[dict]:
    """
    Flatten a `read_for_context` view for display: one synthetic assistant entry
    holding every summary, followed by the live messages.
    """
    entries = [
        {"id": m["id"], "sender": m["sender"], "text": m["text"], "created_at": m.get("created_at")}
        for m in view.get("recentMessages") or []
    ]
    summaries = view.get("summaries") or []
    if summaries:
        body = "\n\n".join(s["summary_text"] for s in summaries)
        entries.insert(0, {
            "id": f"summary-{summaries[0].get('id')}",
            "sender": "assistant",
            "text": (
                f"📋 **Summary of earlier conversation:**\n\n{body}\n\n"
                f"_Showing the last {len(entries)} messages._"
            ),
            "created_at": summaries[0].get("created_at"),
        })
    return entries
