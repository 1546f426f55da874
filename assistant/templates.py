"""
Canned replies outside the menu flow.

A template fires when one of its triggers appears in the message (or it has no
triggers at all, which makes it the catch-all). Among the templates that fire
and pass their memory gate, the highest priority wins; ties go to the one
declared first.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, TypedDict

from assistant.graph.intent import normalize_input
from assistant.providers.base import MemoryItem, MemoryStore, MessageStore

logger = logging.getLogger(__name__)

CONTACT_INFO = (
    "You can reach us on WhatsApp at +56 9 9006 2213. "
    "Our office is at Juan Martinez 616, Iquique. "
)

_PLACEHOLDER = re.compile(r"{{[^}]+}}")


@dataclass(frozen=True)
class MemoryGate:
    type: Optional[str] = None
    min_importance: int = 0

    def satisfied_by(self, memory: MemoryItem) -> bool:
        if self.type and memory.get("type") != self.type:
            return False
        return (memory.get("importance") or 0) >= self.min_importance


@dataclass(frozen=True)
class ResponseTemplate:
    template: str
    priority: int
    triggers: tuple[str, ...] = field(default_factory=tuple)
    requires_memory: Optional[MemoryGate] = None

    def matches(self, normalized: str) -> bool:
        if not self.triggers:
            return True
        return any(normalize_input(t) in normalized for t in self.triggers)

    def eligible(self, memories: list[MemoryItem]) -> bool:
        if self.requires_memory is None:
            return True
        return any(self.requires_memory.satisfied_by(m) for m in memories)


class ResponseContext(TypedDict, total=False):
    user_name: Optional[str]
    user_type: str
    company_name: Optional[str]
    phone: Optional[str]
    memories: list[MemoryItem]
    recent_messages: list[dict]


TEMPLATES: list[ResponseTemplate] = [
    ResponseTemplate(
        triggers=("hello", "hey there", "good morning", "good afternoon", "good evening", "hola", "buenos dias"),
        template="{{greeting}}, {{userName}}! {{welcomeMessage}} How can I help you today?",
        priority=10,
    ),
    ResponseTemplate(
        triggers=("goodbye", "bye", "see you", "chao", "adios"),
        template="{{goodbye}}, {{userName}}. {{closingMessage}} Have a great day!",
        priority=10,
    ),
    ResponseTemplate(
        triggers=("service", "what do you offer", "what do you do", "company"),
        template=(
            "{{companyInfo}} We offer accounting and advisory services. "
            "Would you like details about a particular service?"
        ),
        priority=8,
    ),
    ResponseTemplate(
        triggers=("contact", "phone", "email", "address", "where are you"),
        template="{{contactInfo}} If you need anything else, just ask.",
        priority=8,
    ),
    ResponseTemplate(
        triggers=("procedure", "steps", "how to", "guide", "help with", "tax office"),
        template="I can help with several procedures. Pick the one you need from the menu below.",
        priority=9,
    ),
    ResponseTemplate(
        triggers=("thanks", "thank you", "gracias"),
        template="{{appreciation}} It's a pleasure to help, {{userName}}! I'm here if you need anything else.",
        priority=7,
    ),
    ResponseTemplate(
        triggers=("remember", "do you know", "i told you", "i mentioned"),
        template="{{memoryRecall}} Based on what you've shared, {{personalizedResponse}}",
        priority=9,
        requires_memory=MemoryGate(min_importance=5),
    ),
    ResponseTemplate(
        template="{{defaultResponse}} If you need help with something specific, just ask.",
        priority=1,
    ),
]

USER_TYPE_MESSAGES = {
    "guest": {
        "greeting": "Hello",
        "welcomeMessage": "Welcome to the assistant.",
        "closingMessage": "It was a pleasure helping you.",
        "defaultResponse": "Thanks for reaching out. I'm here to help with any question about our services.",
    },
    "client_new": {
        "greeting": "Hello",
        "welcomeMessage": "It's great to have you as a client.",
        "closingMessage": "We're here to support you.",
        "defaultResponse": "As a new client, I'm here to help with anything you need. What can I do for you?",
    },
    "client": {
        "greeting": "Hello",
        "welcomeMessage": "Good to see you again.",
        "closingMessage": "We're still here for you.",
        "defaultResponse": "I know your history with us. How can I help you today?",
    },
    "inclusion": {
        "greeting": "Hello",
        "welcomeMessage": "Welcome to the assistant.",
        "closingMessage": "It was a pleasure helping you.",
        "defaultResponse": "Thanks for reaching out. I'm here to help with any question about our services.",
    },
}

_QUESTION_WORDS = ("how", "what", "when", "where", "why", "como", "que", "cuando", "donde")


def find_best_template(
    user_input: str,
    memories: Optional[list[MemoryItem]] = None,
    templates: Optional[list[ResponseTemplate]] = None,
) -> Optional[ResponseTemplate]:
    templates = TEMPLATES if templates is None else templates
    normalized = normalize_input(user_input)
    memories = memories or []

    candidates = [t for t in templates if t.matches(normalized) and t.eligible(memories)]
    if not candidates:
        return None
    # sorted() is stable, so equal priorities keep declaration order
    return sorted(candidates, key=lambda t: -t.priority)[0]


def replace_template_variables(template: str, variables: dict[str, str]) -> str:
    result = template
    for key, value in variables.items():
        result = result.replace("{{" + key + "}}", value or "")
    result = _PLACEHOLDER.sub("", result)
    return re.sub(r"\s+", " ", result).strip()


def format_client_name(user_name: Optional[str]) -> str:
    name = user_name.strip() if isinstance(user_name, str) else ""
    if not name or name == "undefined":
        return "valued customer"
    if "guest" in name.lower():
        m = re.search(r"(\d+)", name)
        if m:
            return f"Guest {m.group(1)}"
    return name


def generate_contextual_messages(context: ResponseContext) -> dict[str, str]:
    base = USER_TYPE_MESSAGES.get(context.get("user_type") or "guest", USER_TYPE_MESSAGES["guest"])
    variables = dict(base)
    variables.update({
        "userName": format_client_name(context.get("user_name")),
        "appreciation": "You're welcome!",
        "goodbye": "Goodbye",
        "contactInfo": CONTACT_INFO,
        "companyInfo": f"I see you're with {context['company_name']}." if context.get("company_name") else "",
    })

    memories = context.get("memories") or []
    if memories:
        variables["memoryRecall"] = f"Yes, I remember that {memories[0]['content'].lower()}."
        variables["personalizedResponse"] = "I can help you better with that information."
    else:
        variables["memoryRecall"] = ""
        variables["personalizedResponse"] = "I'm here to help."
    return variables


def _is_question(user_input: str) -> bool:
    text = normalize_input(user_input)
    return text.endswith("?") or any(re.search(rf"\b{w}\b", text) for w in _QUESTION_WORDS)


def respond(user_input: str, context: ResponseContext) -> str:
    memories = context.get("memories") or []
    template = find_best_template(user_input, memories)
    variables = generate_contextual_messages(context)
    if template is None:
        return variables["defaultResponse"]

    if template.requires_memory is not None:
        relevant = sorted(
            (m for m in memories if template.requires_memory.satisfied_by(m)),
            key=lambda m: -(m.get("importance") or 0),
        )
        if relevant:
            variables["personalizedResponse"] = (
                f"I remember that {relevant[0]['content'].lower()}. "
                "Would you like help with something related?"
            )

    response = replace_template_variables(template.template, variables)

    if not template.triggers and _is_question(user_input):
        response = (
            f'I understand your question about "{user_input.strip()}". '
            f"{variables['defaultResponse']} Could you give me a few more details?"
        )
    return response


def build_context(
    user_id: str,
    conversation_id: Optional[str],
    user_type: str = "guest",
    user_name: Optional[str] = None,
    memory_store: Optional[MemoryStore] = None,
    message_store: Optional[MessageStore] = None,
) -> ResponseContext:
    """Gather what the templates can use; a missing source just leaves its fields empty."""
    memories: list[MemoryItem] = []
    if memory_store is not None:
        try:
            memories = memory_store.list_memories(user_id, conversation_id)
        except Exception:
            logger.warning("could not load memories for %s", user_id, exc_info=True)

    recent: list[dict] = []
    if message_store is not None and conversation_id:
        try:
            recent = [
                {"text": m["text"], "sender": m["sender"]}
                for m in message_store.list_messages(conversation_id)[-5:]
            ]
        except Exception:
            logger.warning("could not load recent messages for %s", conversation_id, exc_info=True)

    return {
        "user_name": user_name,
        "user_type": user_type,
        "memories": memories,
        "recent_messages": recent,
    }


# ---------------------------
# Memory capture
# ---------------------------
IMPORTANT_KEYWORDS = (
    "my name is", "i am", "i'm", "name",
    "company", "i work at", "my company is",
    "phone", "mobile", "number", "email", "e-mail",
    "address", "i live in", "located in",
    "i prefer", "i like", "i don't like", "i enjoy",
    "i need", "i require", "i'm looking for",
)
PREFERENCE_KEYWORDS = ("i prefer", "i like", "i don't like", "i enjoy")
IDENTITY_KEYWORDS = ("name", "company", "phone", "email", "address")


def detect_important_info(user_input: str) -> dict:
    """
    Decide whether a user message is worth keeping as a memory.
    Returns {"should_save": bool, "type": str|None, "keywords": [...]}.
    """
    text = (user_input or "").lower()
    found = [k for k in IMPORTANT_KEYWORDS if k in text]
    if not found:
        return {"should_save": False, "type": None, "keywords": []}

    if any(k in text for k in PREFERENCE_KEYWORDS):
        memory_type = "preference"
    elif any(k in text for k in IDENTITY_KEYWORDS):
        memory_type = "important_info"
    else:
        memory_type = "fact"
    return {"should_save": True, "type": memory_type, "keywords": found}
