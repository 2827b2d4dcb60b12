"""
Pytest configuration and fixtures.
Stub providers stand in for the embedding API, the vector store and the
streaming completion API so the pipeline runs without network access.
"""

from datetime import date

import pytest

from app.advisor import AdvisorPipeline
from app.advisor.knowledge import StaticKnowledge
from app.rag_engine import PropertyRetriever


def make_row(**overrides) -> dict:
    row = {
        "name": "サンライズ中野",
        "address": "東京都中野区中野1-2-3",
        "property_type": "apartment",
        "purchase_price": 25_000_000,
        "monthly_rent": 120_000,
        "purchase_date": date(2020, 4, 1),
        "similarity": 0.91,
    }
    row.update(overrides)
    return row


class StubEmbedder:
    def __init__(self, vector=None, error: Exception | None = None):
        self.vector = vector if vector is not None else [0.1, 0.2, 0.3]
        self.error = error
        self.calls: list[str] = []

    async def embed(self, text: str):
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.vector


class StubStore:
    """Mimics match_properties(): honours threshold and limit like the real RPC."""

    def __init__(self, rows=None, error: Exception | None = None):
        self.rows = rows or []
        self.error = error
        self.calls: list[tuple] = []
        self.properties: dict[str, dict] = {}
        self.updated: dict[str, list[float]] = {}

    async def search(self, vector, threshold, limit):
        self.calls.append((vector, threshold, limit))
        if self.error:
            raise self.error
        ranked = sorted(self.rows, key=lambda r: r["similarity"], reverse=True)
        return [r for r in ranked if r["similarity"] >= threshold][:limit]

    async def get_property(self, property_id):
        return self.properties.get(property_id)

    def list_missing_embeddings(self):
        return [p for pid, p in self.properties.items() if pid not in self.updated]

    async def update_embedding(self, property_id, vector):
        self.updated[property_id] = vector


class StubCompletion:
    def __init__(self, tokens=(), error: Exception | None = None, reply: str = ""):
        self.tokens = list(tokens)
        self.error = error
        self.reply = reply
        self.prompts: list[str] = []
        self.closed = False

    async def complete(self, prompt: str):
        self.prompts.append(prompt)
        try:
            for token in self.tokens:
                yield token
            if self.error:
                raise self.error
        finally:
            self.closed = True

    async def complete_text(self, prompt: str, temperature: float = 0.0) -> str:
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.reply


@pytest.fixture
def knowledge() -> StaticKnowledge:
    return StaticKnowledge()


@pytest.fixture
def embedder() -> StubEmbedder:
    return StubEmbedder()


@pytest.fixture
def store() -> StubStore:
    return StubStore()


@pytest.fixture
def completion() -> StubCompletion:
    return StubCompletion(tokens=["利回り", "とは", "…"])


@pytest.fixture
def make_pipeline(knowledge):
    def _make(embedder, store, completion) -> AdvisorPipeline:
        retriever = PropertyRetriever(embedder=embedder, store=store)
        return AdvisorPipeline(retriever=retriever, completion=completion, knowledge=knowledge)
    return _make


async def collect(stream) -> bytes:
    return b"".join([chunk async for chunk in stream])
