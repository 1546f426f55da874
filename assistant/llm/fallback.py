# assistant/llm/fallback.py
import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Dict, Optional

from assistant.config import ASSISTANT_NAME, LLM_TIMEOUT_SECONDS
from assistant.graph.intent import normalize_input
from assistant.graph.state import ConversationState, TurnResult
from assistant.links import find_links, link_options
from assistant.menus import (
    CLIENT,
    GUEST,
    MENUS,
    SUGGESTABLE_MENUS,
    numbered_options,
    render_menu,
    root_menu_id,
    safe_display_name,
)
from assistant.providers.base import CredentialResolver, GenerativeService, MemoryItem

logger = logging.getLogger(__name__)

NOT_UNDERSTOOD_TEXT = "Sorry, I didn't quite understand that. Could you pick one of these options?"

_QUOTA_MARKERS = ("429", "RESOURCE_EXHAUSTED", "quota")
_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)

# generative calls run here so a hung call can be abandoned after the timeout
_EXECUTOR = ThreadPoolExecutor(max_workers=4, thread_name_prefix="fallback-llm")


PROMPT_TEMPLATE = """
You are {assistant}, the virtual assistant of an accounting and services company.

USER: {name} | ROLE: {role}
CURRENT STATE: {state}

USER MEMORIES (things you must remember):
{memories}

OFFICIAL LINKS FOR THIS MESSAGE (shown to the user as buttons, mention them when they help):
{links}

CONVERSATION SO FAR:
{history}

GOALS:
1. Answer the user's question briefly and helpfully.
2. If the user sounds lost or vague ("I don't know", "help me", "what do I do"), reply with empathy
   and suggest the menu "{lost_menu}".
3. Role '{client}' means an existing customer: focus on service and support.
   Role '{guest}' means a prospect: find out which service they need and, if they show
   real interest, offer to have an expert contact them.
4. Never address the user as "undefined".
5. Always suggest ONE menu that fits your answer. Allowed menu ids for this role:
   {menu_ids}
   Never invent other ids.

Reply ONLY with valid JSON, no explanations:
{{
  "text": "your reply",
  "suggested_menu_id": "one of the allowed ids or null",
  "show_lead_form": false
}}

User: {message}
"""


def _strip_fences(txt: str) -> str:
    return _FENCE.sub("", txt or "").strip()


def parse_reply(raw: str) -> Dict[str, Any]:
    """
    Validate the model reply against {"text": str, "suggested_menu_id"?: str, "show_lead_form"?: bool}.
    Raises ValueError for anything else.
    """
    txt = _strip_fences(raw)
    try:
        data = json.loads(txt)
    except json.JSONDecodeError:
        m = re.search(r"\{.*\}", txt, re.DOTALL)
        if not m:
            raise ValueError(f"reply is not JSON: {txt[:80]!r}") from None
        data = json.loads(m.group(0))

    if not isinstance(data, dict):
        raise ValueError(f"reply is {type(data).__name__}, expected an object")
    text = data.get("text")
    if not isinstance(text, str) or not text.strip():
        raise ValueError("reply has no text")
    menu_id = data.get("suggested_menu_id")
    if menu_id is not None and not isinstance(menu_id, str):
        raise ValueError("suggested_menu_id must be a string")
    lead_form = data.get("show_lead_form")
    if lead_form is not None and not isinstance(lead_form, bool):
        raise ValueError("show_lead_form must be a boolean")

    return {"text": text.strip(), "suggested_menu_id": menu_id or None, "show_lead_form": lead_form}


def _format_memories(memories: Optional[list[MemoryItem]]) -> str:
    recent = (memories or [])[:5]
    if not recent:
        return "No previous memories."
    return "\n".join(
        f"- [{'IMPORTANT' if (m.get('importance') or 0) >= 7 else 'Info'}] {m.get('content', '')}"
        for m in recent
    )


def _format_history(history: Optional[dict]) -> str:
    if not history:
        return "(new conversation)"
    parts = [f"[summary] {s['summary_text']}" for s in history.get("summaries") or []]
    for msg in (history.get("recentMessages") or [])[-10:]:
        who = "User" if msg.get("sender") == "user" else "Assistant"
        parts.append(f"{who}: {msg.get('text', '')}")
    return "\n".join(parts) or "(new conversation)"


def _format_links(links) -> str:
    if not links:
        return "None."
    return "\n".join(f"- {link['title']}: {link['description']}" for link in links)


class FallbackAdapter:
    """
    Last step of the cascade: ask the generative service for a reply.

    Every failure (missing key, timeout, transport error, malformed JSON) ends in
    the same root-menu reply; nothing raised here reaches the supervisor.
    """

    def __init__(
        self,
        generative: GenerativeService,
        credentials: CredentialResolver,
        timeout: float = LLM_TIMEOUT_SECONDS,
        assistant_name: str = ASSISTANT_NAME,
    ):
        self.generative = generative
        self.credentials = credentials
        self.timeout = timeout
        self.assistant_name = assistant_name

    def build_prompt(self, text, role, display_name, state, memories=None, history=None, links=None) -> str:
        role = role if role in SUGGESTABLE_MENUS else GUEST
        return PROMPT_TEMPLATE.format(
            assistant=self.assistant_name,
            name=safe_display_name(display_name),
            role=role,
            state=json.dumps(state or {}, ensure_ascii=False, default=str),
            memories=_format_memories(memories),
            history=_format_history(history),
            links=_format_links(links),
            lost_menu="guest_guide" if role == GUEST else "client_root",
            client=CLIENT,
            guest=GUEST,
            menu_ids=", ".join(SUGGESTABLE_MENUS[role]),
            message=json.dumps(text, ensure_ascii=False),
        )

    def degraded(self, role: str, display_name: Optional[str]) -> TurnResult:
        out = render_menu(root_menu_id(role), display_name)
        out["text"] = NOT_UNDERSTOOD_TEXT
        return out

    def _complete(self, prompt: str) -> str:
        future = _EXECUTOR.submit(self.generative.complete, prompt)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            raise TimeoutError(f"generative call exceeded {self.timeout}s") from None

    def respond(
        self,
        user_id: str,
        text: str,
        role: str,
        display_name: Optional[str],
        state: ConversationState,
        memories: Optional[list[MemoryItem]] = None,
        history: Optional[dict] = None,
    ) -> TurnResult:
        try:
            api_key = self.credentials.get_api_key()
        except Exception:
            logger.exception("credential lookup failed (user=%s)", user_id)
            api_key = None
        if not api_key:
            logger.info("no generative credential configured; showing root menu (user=%s)", user_id)
            return self.degraded(role, display_name)

        links = find_links(normalize_input(text))
        try:
            prompt = self.build_prompt(text, role, display_name, state, memories, history, links)
            reply = parse_reply(self._complete(prompt))
        except Exception as e:
            if any(marker in str(e) for marker in _QUOTA_MARKERS):
                logger.warning("generative service over quota (user=%s): %s", user_id, e)
            else:
                logger.exception("generative fallback failed (user=%s)", user_id)
            return self.degraded(role, display_name)

        out: TurnResult = {
            "text": reply["text"],
            "menu_id": None,
            "options": None,
            "action": None,
            "next_state": dict(state or {}),
        }
        if reply["show_lead_form"] is not None:
            out["lead_form"] = reply["show_lead_form"]

        menu_id = reply["suggested_menu_id"]
        if menu_id and menu_id in MENUS:
            rendered = render_menu(menu_id, display_name)
            out["menu_id"] = menu_id
            out["options"] = rendered["options"]
            out["next_state"] = rendered["next_state"]
            return out
        if menu_id:
            logger.info("ignoring unknown suggested menu %r (user=%s)", menu_id, user_id)

        if links:
            options = link_options(links)
            out["options"] = numbered_options(options)
            out["next_state"]["lastOptions"] = options
        return out
