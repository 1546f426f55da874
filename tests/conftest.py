"""Shared fixtures: in-process stores and a scripted generative service."""

import json
import time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from assistant import init_db
from assistant.graph.graph import Supervisor
from assistant.llm.fallback import FallbackAdapter
from assistant.llm.service import StaticCredentialResolver
from assistant.providers.base import GenerativeService, GenerativeServiceError
from assistant.providers.memory_store import InMemoryStore
from assistant.providers.sql_store import SqlStore
from assistant.summarizer import HistoryCompactor


class FakeGenerative(GenerativeService):
    def __init__(self, payload=None, raw: str | None = None, exc: Exception | None = None, delay: float = 0.0):
        self.payload = payload
        self.raw = raw
        self.exc = exc
        self.delay = delay
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            time.sleep(self.delay)
        if self.exc:
            raise self.exc
        if self.raw is not None:
            return self.raw
        return json.dumps(self.payload or {"text": "Happy to help!"})


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def generative():
    return FakeGenerative()


@pytest.fixture
def credentials():
    return StaticCredentialResolver("test-key")


@pytest.fixture
def make_supervisor(store):
    def _make(generative=None, credentials=None, timeout: float = 2.0, compactor=None):
        adapter = FallbackAdapter(
            generative or FakeGenerative(),
            credentials or StaticCredentialResolver("test-key"),
            timeout=timeout,
        )
        return Supervisor(adapter, booking_sink=store, memory_store=store, compactor=compactor)
    return _make


@pytest.fixture
def supervisor(make_supervisor, generative, credentials):
    return make_supervisor(generative, credentials)


@pytest.fixture
def compactor(store):
    return HistoryCompactor(store, store, threshold=50, keep_recent=20)


@pytest.fixture
def sql_store():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return SqlStore(sessionmaker(bind=engine, autoflush=False, autocommit=False))


@pytest.fixture
def fail_generative():
    return FakeGenerative(exc=GenerativeServiceError("connection reset"))


@pytest.fixture
def file_sql_store(tmp_path):
    # one connection per thread, so sqlite's own locking is in play
    engine = create_engine(f"sqlite:///{tmp_path / 'assistant.db'}", connect_args={"timeout": 30})
    init_db(engine)
    yield SqlStore(sessionmaker(bind=engine, autoflush=False, autocommit=False))
    engine.dispose()
