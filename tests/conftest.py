"""Shared test fixtures."""

import json
import os

# Must be set before any app module reads the environment
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["VECTOR_STORE"] = "memory"
os.environ["MCP_SERVER_URL"] = ""
os.environ["OPENAI_API_KEY"] = "test-key"
os.environ["OPENAI_BASE_URL"] = "https://llm.test/v1"

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.database import Base, SessionLocal, engine, init_db
from app.main import app
from app.services import llm_service, settings_service
from app.services.mcp_client import MCPClient, get_mcp_client
from app.services.memory_evaluator import EVALUATOR_SYSTEM_PROMPT
from app.services.vector_store import get_vector_store
from app.services.vector_stores.memory import InMemoryVectorStore


class RecordingStore(InMemoryVectorStore):
    """In-memory store that remembers every call made to it."""

    def __init__(self):
        super().__init__()
        self.connected = True
        self.inserted = []
        self.deleted = []
        self.cleared = 0

    async def insert(self, record):
        self.inserted.append(record)
        await super().insert(record)

    async def delete(self, vector_id):
        self.deleted.append(vector_id)
        await super().delete(vector_id)

    async def clear(self):
        self.cleared += 1
        await super().clear()


class FakeLLM:
    """Stands in for the completion and embedding endpoints."""

    def __init__(self):
        self.reply = "Sure, here is the answer."
        self.decision = {"action": "skip", "reason": "Casual chat", "confidence": 0.9}
        self.embedding = [1.0, 0.0, 0.0]
        self.chat_calls = []
        self.eval_calls = []
        self.embedded = []

    async def complete(self, messages, *, model, temperature=1.0, max_tokens=2048):
        if messages[0]["content"] == EVALUATOR_SYSTEM_PROMPT:
            self.eval_calls.append(messages)
            return json.dumps(self.decision)
        self.chat_calls.append({
            "messages": messages,
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        return self.reply

    async def get_embedding(self, text):
        self.embedded.append(text)
        return list(self.embedding)


@pytest.fixture
def db(monkeypatch: pytest.MonkeyPatch):
    """Fresh schema and an unloaded settings cache for every test."""
    init_db()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(settings_service, "_cache", None)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def fake_llm(monkeypatch: pytest.MonkeyPatch) -> FakeLLM:
    fake = FakeLLM()
    monkeypatch.setattr(llm_service, "complete", fake.complete)
    monkeypatch.setattr(llm_service, "get_embedding", fake.get_embedding)
    monkeypatch.setattr(llm_service, "check_connection", AsyncMock(return_value=True))
    return fake


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def mcp() -> MCPClient:
    return MCPClient(base_url="")


@pytest.fixture
def client(db, fake_llm, store, mcp):
    app.dependency_overrides[get_vector_store] = lambda: store
    app.dependency_overrides[get_mcp_client] = lambda: mcp
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
