"""
Guided slot-filling flows.

A flow is a table of steps: step N (1-based) collects one slot, and the step
after the last slot asks for a yes/no confirmation. Adding a new flow means
adding a table to AGENTS; the supervisor only knows the agent's name.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from assistant.graph.intent import is_affirmative, parse_date_maybe
from assistant.graph.state import ConversationState, TurnResult
from assistant.menus import hub_menu_id, render_menu
from assistant.providers.base import BookingSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotStep:
    slot: str
    label: str
    prompt: str
    retry: str
    min_length: int = 1
    icon: str = "•"

    def accepts(self, text: str) -> bool:
        return len((text or "").strip()) >= self.min_length


@dataclass(frozen=True)
class SlotFillingAgent:
    name: str
    steps: list[SlotStep]
    intro: str
    confirm_prompt: str
    committed_text: str
    cancelled_text: str
    date_slots: tuple[str, ...] = field(default_factory=tuple)

    @property
    def confirm_step(self) -> int:
        return len(self.steps) + 1

    def start(self) -> TurnResult:
        first = self.steps[0]
        return {
            "text": f"{self.intro}\n\n{first.prompt}",
            "menu_id": None,
            "options": None,
            "action": None,
            "next_state": {"mode": self.name, "step": 1, "data": {}},
        }

    def summary(self, data: dict[str, str]) -> str:
        lines = []
        for s in self.steps:
            value = data.get(s.slot, "")
            if s.slot in self.date_slots:
                iso = parse_date_maybe(value)
                if iso and iso != value:
                    value = f"{value} ({iso})"
            lines.append(f"{s.icon} {s.label}: {value}")
        return "\n".join(lines)

    def handle(
        self,
        text: str,
        state: ConversationState,
        role: str,
        display_name: Optional[str] = None,
        user_id: str = "",
        conversation_id: Optional[str] = None,
        sink: Optional[BookingSink] = None,
    ) -> TurnResult:
        step = state.get("step") or 1
        data = dict(state.get("data") or {})

        if step >= self.confirm_step:
            return self._confirm(text, data, role, display_name, user_id, conversation_id, sink)

        current = self.steps[step - 1]
        raw = (text or "").strip()
        if not current.accepts(raw):
            return {
                "text": f"{current.retry} {current.prompt}",
                "menu_id": None,
                "options": None,
                "action": None,
                "next_state": {"mode": self.name, "step": step, "data": data},
            }

        data[current.slot] = raw
        next_step = step + 1
        if next_step == self.confirm_step:
            reply = self.confirm_prompt.format(summary=self.summary(data))
        else:
            reply = self.steps[next_step - 1].prompt

        return {
            "text": reply,
            "menu_id": None,
            "options": None,
            "action": None,
            "next_state": {"mode": self.name, "step": next_step, "data": data},
        }

    def _confirm(self, text, data, role, display_name, user_id, conversation_id, sink) -> TurnResult:
        hub = render_menu(hub_menu_id(role), display_name)

        if not is_affirmative(text):
            logger.info("agent %s cancelled at confirmation (conversation=%s)", self.name, conversation_id)
            hub["text"] = self.cancelled_text
            return hub

        if sink is not None:
            try:
                ref = sink.submit(user_id, conversation_id, self.name, data)
                logger.info("agent %s committed request %s (conversation=%s)", self.name, ref, conversation_id)
            except Exception:
                # the reply is a hand-off notice; an operator follows up either way
                logger.exception("agent %s could not store request (conversation=%s)", self.name, conversation_id)

        hub["text"] = self.committed_text
        return hub


TRANSPORT_BOOKING = SlotFillingAgent(
    name="booking_transport",
    intro="🚐 Let's schedule your transport trip. I'll ask you three quick questions.",
    steps=[
        SlotStep(
            slot="date",
            label="Date",
            icon="📅",
            prompt="What day do you need the trip? (e.g. tomorrow, 21/10)",
            retry="I didn't catch the date.",
            min_length=2,
        ),
        SlotStep(
            slot="time",
            label="Time",
            icon="🕒",
            prompt="At what time should we pick you up?",
            retry="I didn't catch the time.",
        ),
        SlotStep(
            slot="route",
            label="Route",
            icon="📍",
            prompt="Where from and where to? (e.g. home - clinic)",
            retry="Please tell me the pick-up and drop-off places.",
            min_length=3,
        ),
    ],
    confirm_prompt="Please check your request:\n\n{summary}\n\nShall I send it? (yes / no)",
    committed_text=(
        "✅ Your transport request has been registered. "
        "Our team will contact you to confirm the vehicle and the final time."
    ),
    cancelled_text="Okay, the request was cancelled. Nothing was sent.",
    date_slots=("date",),
)

AGENTS: dict[str, SlotFillingAgent] = {
    TRANSPORT_BOOKING.name: TRANSPORT_BOOKING,
}


def get_agent(name: str) -> Optional[SlotFillingAgent]:
    return AGENTS.get(name)
