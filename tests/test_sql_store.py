"""SqlStore against sqlite databases."""

import threading

import pytest

from assistant.llm.service import ChainCredentialResolver, EnvCredentialResolver, SettingsCredentialResolver
from assistant.models import Conversation, Setting, TransportRequest
from assistant.providers.base import SummaryOverlapError
from assistant.summarizer import HistoryCompactor


class TestMessagesAndState:
    def test_append_creates_conversation(self, sql_store):
        first = sql_store.append_message("c1", "user", "hello")
        second = sql_store.append_message("c1", "assistant", "hi there")
        assert second > first

        msgs = sql_store.list_messages("c1")
        assert [(m["sender"], m["text"]) for m in msgs] == [("user", "hello"), ("assistant", "hi there")]
        assert all(m["conversation_id"] == "c1" for m in msgs)

    def test_unknown_conversation_is_empty(self, sql_store):
        assert sql_store.list_messages("nope") == []
        assert sql_store.load_state("nope") == {}

    def test_state_round_trip(self, sql_store):
        state = {"mode": "booking_transport", "step": 2, "data": {"date": "tomorrow"}}
        sql_store.save_state("c1", state)
        assert sql_store.load_state("c1") == state

        sql_store.save_state("c1", {"mode": "idle", "step": 0, "data": {}})
        assert sql_store.load_state("c1")["mode"] == "idle"

    def test_ensure_conversation_sets_owner(self, sql_store):
        sql_store.append_message("c1", "user", "hi")
        sql_store.ensure_conversation("c1", user_id="u9", role="client")
        db = sql_store.session_factory()
        try:
            conv = db.get(Conversation, "c1")
            assert (conv.user_id, conv.role) == ("u9", "client")
        finally:
            db.close()


class TestMemories:
    def test_ordered_by_importance(self, sql_store):
        sql_store.add_memory("u1", "c1", "fact", "Needs invoices", 3)
        sql_store.add_memory("u1", None, "important_info", "Works at Acme", 8)
        sql_store.add_memory("u1", "c2", "preference", "Prefers mornings", 9)
        sql_store.add_memory("u2", "c1", "fact", "Someone else", 10)

        memories = sql_store.list_memories("u1", "c1")
        assert [m["content"] for m in memories] == ["Works at Acme", "Needs invoices"]
        assert len(sql_store.list_memories("u1")) == 3


class TestSummaries:
    def test_overlap_is_rejected(self, sql_store):
        ids = [sql_store.append_message("c1", "user", f"m{i}") for i in range(4)]
        record = {
            "conversation_id": "c1",
            "summary_text": "Conversation with the customer about general enquiries.",
            "summarized_message_ids": ids[:2],
            "message_count": 2,
        }
        saved = sql_store.add_summary(record)
        assert saved["id"] is not None
        assert saved["summarized_message_ids"] == ids[:2]

        with pytest.raises(SummaryOverlapError) as err:
            sql_store.add_summary({**record, "summarized_message_ids": ids[1:3]})
        assert err.value.overlap == {ids[1]}
        assert len(sql_store.list_summaries("c1")) == 1

    def test_compaction_over_sql(self, sql_store):
        ids = [sql_store.append_message("c1", "user", f"m{i}") for i in range(55)]
        compactor = HistoryCompactor(sql_store, sql_store, threshold=50, keep_recent=20)

        view = compactor.load_history("c1")
        assert [m["id"] for m in view["recentMessages"]] == ids[35:]
        assert view["summaries"][0]["summarized_message_ids"] == ids[:35]
        assert view["totalMessageCount"] == 55
        assert compactor.compact("c1") is None


class TestBookingsAndSettings:
    def test_submit_stores_request(self, sql_store):
        req_id = sql_store.submit("u1", "c1", "booking_transport", {"date": "tomorrow", "time": "10", "route": "a - b"})
        db = sql_store.session_factory()
        try:
            row = db.get(TransportRequest, req_id)
            assert row.details["route"] == "a - b"
            assert row.status == "pending"
        finally:
            db.close()

    def test_settings_credential(self, sql_store, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        resolver = ChainCredentialResolver(EnvCredentialResolver(), SettingsCredentialResolver(sql_store))
        assert resolver.get_api_key() is None

        db = sql_store.session_factory()
        db.add(Setting(key="openai_api_key", value="sk-from-settings"))
        db.commit()
        db.close()
        assert resolver.get_api_key() == "sk-from-settings"

        monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")
        assert resolver.get_api_key() == "sk-from-env"


class TestConcurrentCompaction:
    @pytest.mark.parametrize("trial", range(5))
    def test_racing_compactions_write_one_summary(self, file_sql_store, trial):
        conversation_id = f"c{trial}"
        for i in range(60):
            file_sql_store.append_message(conversation_id, "user", f"m{i}")

        compactors = [HistoryCompactor(file_sql_store, file_sql_store, threshold=50, keep_recent=20) for _ in range(8)]
        barrier = threading.Barrier(len(compactors))
        results = []

        def run(c):
            barrier.wait()
            results.append(c.compact(conversation_id))

        threads = [threading.Thread(target=run, args=(c,)) for c in compactors]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        summaries = file_sql_store.list_summaries(conversation_id)
        assert len(summaries) == 1
        assert sum(r is not None for r in results) == 1
        assert len(summaries[0]["summarized_message_ids"]) == 40
