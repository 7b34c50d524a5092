"""
Shared test fixtures.

Provides: sample knowledge chunks, a ready retrieval engine, an on-disk
knowledge-base document, and a scripted fake chat model.
"""

import asyncio
import json
from pathlib import Path

import pytest
from langchain_core.messages import AIMessage

from andrew.src.core.models import KnowledgeChunk
from andrew.src.core.retrieval import RetrievalEngine
from andrew.src.database.knowledge_store import KnowledgeBaseStore

SYSTEM_PROMPT = "You are a test assistant."


@pytest.fixture
def billing_login_chunks() -> list[KnowledgeChunk]:
    return [
        KnowledgeChunk(id="x", title="Billing", content="invoice payment refund", keywords=["billing", "invoice"]),
        KnowledgeChunk(id="y", title="Login", content="password reset account", keywords=["login", "password"]),
    ]


@pytest.fixture
def support_chunks() -> list[KnowledgeChunk]:
    return [
        KnowledgeChunk(id="billing", title="Billing", content="Invoices are sent monthly. Refunds for a paid invoice take five days.", keywords=["billing", "invoice", "refund"], relatedChunks=["payments"]),
        KnowledgeChunk(id="payments", title="Payment Methods", content="We accept credit cards and bank transfers for every invoice.", keywords=["payment", "credit card"]),
        KnowledgeChunk(id="login", title="Login Help", content="Reset your password from the login page. Locked accounts unlock after one hour.", keywords=["login", "password"]),
        KnowledgeChunk(id="account", title="Account Settings", content="Change your account email and password in the settings page.", keywords=["account", "settings", "password"]),
    ]


@pytest.fixture
def ready_engine(support_chunks) -> RetrievalEngine:
    engine = RetrievalEngine()
    engine.initialize(support_chunks, SYSTEM_PROMPT)
    return engine


@pytest.fixture
def kb_file(tmp_path: Path, support_chunks) -> Path:
    path = tmp_path / "knowledge_base.json"
    payload = {"systemPrompt": SYSTEM_PROMPT, "knowledgeBase": [chunk.model_dump(by_alias=True) for chunk in support_chunks]}
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


@pytest.fixture
def kb_store(kb_file: Path) -> KnowledgeBaseStore:
    return KnowledgeBaseStore(kb_file)


class FakeChatModel:
    """Stands in for a LangChain chat model; *behaviour* is a reply string, an exception, or ``"sleep"``."""

    def __init__(self, model: str, behaviour, calls: list):
        self.model = model
        self.behaviour = behaviour
        self.calls = calls

    async def ainvoke(self, messages):
        self.calls.append((self.model, messages))
        if isinstance(self.behaviour, BaseException):
            raise self.behaviour
        if self.behaviour == "sleep":
            await asyncio.sleep(5)
        return AIMessage(content=self.behaviour, response_metadata={"model_name": self.model}, usage_metadata={"input_tokens": 10, "output_tokens": 5, "total_tokens": 15})


@pytest.fixture
def fake_llm_factory():
    """Build a factory whose models behave per ``{model_name: behaviour}``; calls are recorded on ``factory.calls``."""

    def build(behaviours: dict):
        calls: list = []
        created: list = []

        def factory(model, api_key, temperature, max_tokens):
            created.append({"model": model, "api_key": api_key, "temperature": temperature, "max_tokens": max_tokens})
            return FakeChatModel(model, behaviours[model], calls)

        factory.calls = calls
        factory.created = created
        return factory

    return build
