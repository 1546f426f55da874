from flask import Flask, request, jsonify
from dotenv import load_dotenv
import logging
import threading
import uuid
from contextlib import contextmanager

from assistant import init_db
from assistant.config import LOG_LEVEL
from assistant.graph.graph import Supervisor
from assistant.graph.state import initial_state
from assistant.llm.fallback import FallbackAdapter
from assistant.llm.service import (
    ChainCredentialResolver,
    EnvCredentialResolver,
    OpenAIChatService,
    SettingsCredentialResolver,
)
from assistant.summarizer import HistoryCompactor, format_history
from assistant.templates import build_context, detect_important_info, respond

load_dotenv()

logger = logging.getLogger(__name__)


class ConversationLocks:
    """One lock per conversation id: turns of the same conversation never overlap."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    @contextmanager
    def hold(self, conversation_id: str):
        with self._guard:
            lock = self._locks.setdefault(conversation_id, threading.Lock())
        with lock:
            yield


def _json_object():
    body = request.get_json(force=True, silent=True)
    return body if isinstance(body, dict) else None


def _field(body: dict, key: str) -> str:
    # non-string values count as missing
    value = body.get(key)
    return value.strip() if isinstance(value, str) else ""


def create_app(store=None, generative=None, credentials=None) -> Flask:
    """
    Wire the assistant.
    `store` implements every store interface (SqlStore by default); `generative` and
    `credentials` default to the OpenAI chat model keyed from env or the settings table.
    """
    logging.basicConfig(level=LOG_LEVEL)

    if store is None:
        from assistant.providers.sql_store import SqlStore
        store = SqlStore()
    if credentials is None:
        resolvers = [EnvCredentialResolver()]
        if hasattr(store, "get_setting"):
            resolvers.append(SettingsCredentialResolver(store))
        credentials = ChainCredentialResolver(*resolvers)
    if generative is None:
        generative = OpenAIChatService(credentials)

    compactor = HistoryCompactor(store, store)
    supervisor = Supervisor(
        FallbackAdapter(generative, credentials),
        booking_sink=store,
        memory_store=store,
        compactor=compactor,
    )
    locks = ConversationLocks()

    app = Flask(__name__)

    @app.post("/chat")
    def chat():
        body = _json_object()
        if body is None:
            return jsonify({"error": "body must be a JSON object"}), 400
        user_input = _field(body, "message")
        if not user_input:
            return jsonify({"error": "message is required"}), 400

        conversation_id = _field(body, "conversation_id") or uuid.uuid4().hex
        user_id = _field(body, "user_id") or conversation_id
        role = _field(body, "role") or "guest"
        name = _field(body, "name") or None

        with locks.hold(conversation_id):
            if hasattr(store, "ensure_conversation"):
                store.ensure_conversation(conversation_id, user_id, role)
            state = store.load_state(conversation_id)
            store.append_message(conversation_id, "user", user_input)

            info = detect_important_info(user_input)
            if info["should_save"]:
                store.add_memory(user_id, conversation_id, info["type"], user_input, 5)

            out = supervisor.route(user_id, user_input, state, role, name, conversation_id)

            store.save_state(conversation_id, out["next_state"])
            store.append_message(conversation_id, "assistant", out.get("text", ""))

        return jsonify({
            "conversation_id": conversation_id,
            "reply": out.get("text", ""),
            "menu_id": out.get("menu_id"),
            "options": out.get("options"),
            "action": out.get("action"),
            "lead_form": out.get("lead_form"),
            "state": out["next_state"],
            "trace": out.get("trace", []),
        })

    @app.get("/conversations/<conversation_id>/history")
    def history(conversation_id):
        with locks.hold(conversation_id):
            view = compactor.load_history(conversation_id)
        return jsonify({
            "conversation_id": conversation_id,
            "summaries": view["summaries"],
            "messages": format_history(view),
            "total_messages": view["totalMessageCount"],
        })

    @app.post("/conversations/<conversation_id>/clear")
    def clear(conversation_id):
        with locks.hold(conversation_id):
            store.save_state(conversation_id, initial_state())
        return jsonify({"conversation_id": conversation_id, "state": initial_state()})

    @app.post("/respond")
    def quick_reply():
        body = _json_object()
        if body is None:
            return jsonify({"error": "body must be a JSON object"}), 400
        user_input = _field(body, "message")
        if not user_input:
            return jsonify({"error": "message is required"}), 400
        user_id = _field(body, "user_id")
        context = build_context(
            user_id,
            _field(body, "conversation_id") or None,
            user_type=_field(body, "role") or "guest",
            user_name=_field(body, "name") or None,
            memory_store=store if user_id else None,
            message_store=store,
        )
        return jsonify({"reply": respond(user_input, context)})

    return app


if __name__ == "__main__":
    # Create tables (simple dev mode)
    init_db()
    create_app().run(host="0.0.0.0", port=5000, debug=True)
