import logging
from typing import Optional

from langgraph.graph import StateGraph, END

from assistant.agents.booking import get_agent
from assistant.graph.intent import (
    detect_agent_trigger,
    find_static_match,
    is_global_command,
    normalize_input,
    parse_selection,
)
from assistant.graph.state import (
    IDLE,
    ConversationState,
    TurnResult,
    TurnState,
    add_trace,
    coerce_state,
)
from assistant.llm.fallback import FallbackAdapter
from assistant.menus import (
    CONTACT_SUPPORT,
    GET_DOCUMENT,
    HELP_TEXTS,
    LINK,
    NAVIGATE,
    SHOW_MENU,
    SHOW_TUTORIAL,
    render_menu,
    root_menu_id,
)
from assistant.providers.base import BookingSink, MemoryStore
from assistant.summarizer import HistoryCompactor

logger = logging.getLogger(__name__)

ROUTES = ("global_command", "agent", "menu_selection", "agent_start", "static_menu", "fallback")

DIRECTIVE_TEXTS = {
    NAVIGATE: "Taking you to {label}.",
    LINK: "Opening {label} 🔗",
    GET_DOCUMENT: "Fetching your document: {label} 📄",
    CONTACT_SUPPORT: "I'll connect you with a member of our team. Someone will reach out shortly. 🙋",
}


def decide_route(normalized: str, state: ConversationState, role: str) -> str:
    """
    Fixed-priority cascade; first match wins:
    global command > active agent > numeric menu pick > agent trigger > static keyword > fallback.
    """
    if is_global_command(normalized):
        return "global_command"
    if state.get("mode", IDLE) != IDLE:
        return "agent"
    n = parse_selection(normalized)
    if n is not None and n <= len(state.get("lastOptions") or []):
        return "menu_selection"
    if detect_agent_trigger(normalized):
        return "agent_start"
    if find_static_match(normalized, role):
        return "static_menu"
    return "fallback"


def select_option(option: dict, state: ConversationState, display_name: Optional[str]) -> TurnResult:
    """Execute a picked menu option. Any pick consumes the pending menu."""
    action = option.get("action")
    params = option.get("params") or {}

    if action == SHOW_MENU:
        return render_menu(params.get("menu", ""), display_name)

    label = option.get("label", "")
    if action == SHOW_TUTORIAL:
        text = HELP_TEXTS.get(params.get("id", ""), "That guide isn't available yet.")
    else:
        text = DIRECTIVE_TEXTS.get(action, "{label}").format(label=label)

    next_state: ConversationState = {"mode": IDLE, "step": 0, "data": {}}
    if state.get("lastMenuId"):
        next_state["lastMenuId"] = state["lastMenuId"]
    return {
        "text": text,
        "menu_id": None,
        "options": None,
        "action": {"type": action, "payload": dict(params), "option_id": option.get("id")},
        "next_state": next_state,
    }


class Supervisor:
    """
    Per-turn entry point. `route` never raises: anything unexpected ends in the
    role's root menu with an apology.
    """

    def __init__(
        self,
        fallback: FallbackAdapter,
        booking_sink: Optional[BookingSink] = None,
        memory_store: Optional[MemoryStore] = None,
        compactor: Optional[HistoryCompactor] = None,
    ):
        self.fallback = fallback
        self.booking_sink = booking_sink
        self.memory_store = memory_store
        self.compactor = compactor
        self.graph = self.build_graph()

    # ---------------------------
    # Nodes
    # ---------------------------
    def node_normalize(self, ts: TurnState) -> TurnState:
        ts["normalized"] = normalize_input(ts.get("user_input") or "")
        ts["state"] = coerce_state(ts.get("state"))
        ts["route"] = decide_route(ts["normalized"], ts["state"], ts.get("role") or "guest")
        add_trace(ts, "route", {"route": ts["route"], "mode": ts["state"]["mode"]})
        logger.debug("turn for %s routed to %s", ts.get("user_id"), ts["route"])
        return ts

    def node_global_command(self, ts: TurnState) -> TurnState:
        ts["result"] = render_menu(root_menu_id(ts.get("role")), ts.get("display_name"))
        return ts

    def node_agent(self, ts: TurnState) -> TurnState:
        state = ts["state"]
        agent = get_agent(state["mode"])
        if agent is None:
            logger.warning("conversation %s is in unknown agent %r; resetting", ts.get("conversation_id"), state["mode"])
            ts["result"] = render_menu(root_menu_id(ts.get("role")), ts.get("display_name"))
            return ts

        ts["result"] = agent.handle(
            ts.get("user_input") or "",
            state,
            role=ts.get("role") or "guest",
            display_name=ts.get("display_name"),
            user_id=ts.get("user_id") or "",
            conversation_id=ts.get("conversation_id"),
            sink=self.booking_sink,
        )
        add_trace(ts, "agent", {"agent": agent.name, "step": ts["result"]["next_state"].get("step")})
        return ts

    def node_menu_selection(self, ts: TurnState) -> TurnState:
        state = ts["state"]
        option = state["lastOptions"][parse_selection(ts["normalized"]) - 1]
        ts["result"] = select_option(option, state, ts.get("display_name"))
        add_trace(ts, "menu_selection", {"option": option.get("id"), "action": option.get("action")})
        return ts

    def node_agent_start(self, ts: TurnState) -> TurnState:
        agent = get_agent(detect_agent_trigger(ts["normalized"]))
        ts["result"] = agent.start()
        return ts

    def node_static_menu(self, ts: TurnState) -> TurnState:
        menu_id = find_static_match(ts["normalized"], ts.get("role") or "guest")
        ts["static_menu_id"] = menu_id
        ts["result"] = render_menu(menu_id, ts.get("display_name"))
        return ts

    def node_fallback(self, ts: TurnState) -> TurnState:
        user_id = ts.get("user_id") or ""
        conversation_id = ts.get("conversation_id")

        memories = None
        if self.memory_store is not None:
            try:
                memories = self.memory_store.list_memories(user_id, conversation_id)
            except Exception:
                logger.exception("could not load memories for %s", user_id)

        history = None
        if self.compactor is not None and conversation_id:
            try:
                history = self.compactor.load_history(conversation_id)
            except Exception:
                logger.exception("could not load history for %s", conversation_id)

        ts["result"] = self.fallback.respond(
            user_id,
            ts.get("user_input") or "",
            ts.get("role") or "guest",
            ts.get("display_name"),
            ts["state"],
            memories=memories,
            history=history,
        )
        return ts

    # ---------------------------
    # Build graph
    # ---------------------------
    def build_graph(self):
        g = StateGraph(TurnState)

        g.add_node("normalize", self.node_normalize)
        g.add_node("global_command", self.node_global_command)
        g.add_node("agent", self.node_agent)
        g.add_node("menu_selection", self.node_menu_selection)
        g.add_node("agent_start", self.node_agent_start)
        g.add_node("static_menu", self.node_static_menu)
        g.add_node("fallback", self.node_fallback)

        g.set_entry_point("normalize")
        g.add_conditional_edges("normalize", lambda ts: ts["route"], {r: r for r in ROUTES})
        for r in ROUTES:
            g.add_edge(r, END)

        return g.compile()

    def route(
        self,
        user_id: str,
        text: str,
        state: Optional[ConversationState] = None,
        role: str = "guest",
        display_name: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> TurnResult:
        try:
            out = self.graph.invoke({
                "user_id": user_id,
                "conversation_id": conversation_id,
                "user_input": text or "",
                "role": role,
                "display_name": display_name,
                "state": state or {},
                "trace": [],
            })
            result = dict(out["result"])
            result["trace"] = out.get("trace", [])
            return result
        except Exception:
            logger.exception("turn failed for %s; falling back to root menu", user_id)
            return self.fallback.degraded(role, display_name)
