import re
import unicodedata
from dateutil import parser as dtparser


GLOBAL_COMMANDS = {
    "cancel", "exit", "quit", "menu", "home", "start", "back", "help",
    "hi", "hello", "hey",
    "cancelar", "salir", "inicio", "volver", "ayuda", "hola",
}

YES = {"yes", "y", "yeah", "yep", "sure", "ok", "okay", "confirm", "confirmed", "correct", "si", "dale"}

# (any-of, any-of, agent): both groups must hit for the agent to start
AGENT_TRIGGERS = [
    (("schedule", "book", "reserve", "agendar", "reservar"),
     ("transport", "trip", "ride", "transporte", "viaje"),
     "booking_transport"),
]

# (keywords, menu id or {role: menu id}); first hit wins
STATIC_ROUTES = [
    (("quote", "pricing", "prices", "cotizar", "precios"), "guest_quote"),
    (("f29", "vat", "iva"), "client_taxes"),
    (("tutorial", "guide", "guia"), {"client": "client_tutorials", "guest": "guest_tutorials"}),
    (("contact", "address", "location", "ubicacion"), {"client": "client_contact", "guest": "guest_contact"}),
]

_NUMBER = re.compile(r"\d+")


def _has_word(normalized: str, keyword: str) -> bool:
    # keyword must start a word: "vat" hits "vat return" but not "private"
    return re.search(rf"(?<![a-z0-9]){re.escape(keyword)}", normalized) is not None


def normalize_input(text: str) -> str:
    """Trim, lowercase and drop diacritics ("Menú " -> "menu")."""
    t = (text or "").strip().lower()
    t = unicodedata.normalize("NFD", t)
    return "".join(ch for ch in t if not unicodedata.combining(ch))


def is_global_command(normalized: str) -> bool:
    return normalized in GLOBAL_COMMANDS


def parse_selection(normalized: str) -> int | None:
    """1-based option number typed as a bare positive integer, else None."""
    if not _NUMBER.fullmatch(normalized or ""):
        return None
    n = int(normalized)
    return n if n > 0 else None


def detect_agent_trigger(normalized: str) -> str | None:
    for first, second, agent in AGENT_TRIGGERS:
        if any(_has_word(normalized, w) for w in first) and any(_has_word(normalized, w) for w in second):
            return agent
    return None


def find_static_match(normalized: str, role: str = "guest") -> str | None:
    for keywords, target in STATIC_ROUTES:
        if any(_has_word(normalized, k) for k in keywords):
            if isinstance(target, dict):
                return target.get(role) or target["guest"]
            return target
    return None


def is_affirmative(text: str) -> bool:
    """True when any affirmative token appears anywhere in the reply."""
    s = normalize_input(text)
    if s in YES:
        return True
    return any(tok in YES for tok in re.findall(r"[a-z]+", s))


def parse_date_maybe(text: str) -> str | None:
    """ISO date when the whole reply is a date ("21/10/2026"); relative phrases give None."""
    try:
        d = dtparser.parse(text, fuzzy=False, dayfirst=True)
        return d.date().isoformat()
    except (ValueError, OverflowError):
        return None
