from typing import TypedDict, Optional, Any

IDLE = "idle"


class ConversationState(TypedDict, total=False):
    mode: str                       # "idle" or a sub-agent name
    step: int                       # 0 while idle
    data: dict[str, str]            # slots captured by the active sub-agent
    lastMenuId: Optional[str]
    lastOptions: Optional[list[dict]]   # original (un-numbered) options of lastMenuId


class TurnResult(TypedDict, total=False):
    text: str
    menu_id: Optional[str]
    options: Optional[list[dict]]   # numbered display copy
    action: Optional[dict]          # {"type": ..., "payload": ...} for the caller to execute
    lead_form: Optional[bool]
    trace: list[dict]
    next_state: ConversationState


class TurnState(TypedDict, total=False):
    user_id: str
    conversation_id: Optional[str]
    user_input: str
    normalized: str
    role: str
    display_name: Optional[str]

    # loaded by the caller
    state: ConversationState

    # cascade decision
    route: str
    static_menu_id: Optional[str]

    # output
    result: TurnResult
    trace: list[dict]


def initial_state() -> ConversationState:
    return {"mode": IDLE, "step": 0, "data": {}}


def coerce_state(raw: Optional[dict]) -> ConversationState:
    """
    Build a well-formed ConversationState out of whatever the state store returned.
    An idle state never carries a step; a non-idle state always has step >= 1.
    """
    raw = raw or {}
    mode = raw.get("mode") or IDLE
    try:
        step = int(raw.get("step") or 0)
    except (TypeError, ValueError):
        step = 0
    data = raw.get("data") if isinstance(raw.get("data"), dict) else {}

    if mode == IDLE:
        state: ConversationState = {"mode": IDLE, "step": 0, "data": {}}
    else:
        state = {"mode": mode, "step": max(step, 1), "data": dict(data)}

    if raw.get("lastMenuId"):
        state["lastMenuId"] = raw["lastMenuId"]
    if isinstance(raw.get("lastOptions"), list) and raw["lastOptions"]:
        state["lastOptions"] = list(raw["lastOptions"])
    return state


def add_trace(state: TurnState, node: str, detail: dict[str, Any]):
    state.setdefault("trace", [])
    state["trace"].append({"node": node, "detail": detail})
