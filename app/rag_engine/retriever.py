"""
RAG Engine — Property Retriever
================================
Embeds the user's question and asks the vector store for the nearest
properties. Used once per advisor request.

Usage (from other modules):
    from app.rag_engine.retriever import PropertyRetriever
    retriever = PropertyRetriever(embedder=provider, store=PropertyStore())
    hits = await retriever.retrieve("利回りの高い物件は？")

Collaborators are duck-typed:
    embedder.embed(text)                         -> list[float]   (async)
    store.search(vector, threshold, limit)       -> list[dict]    (async)
"""

from __future__ import annotations

import math

from loguru import logger
from pydantic import ValidationError

from app.advisor.errors import EmbeddingError, RetrievalError
from app.schemas import SimilarityHit

DEFAULT_THRESHOLD = 0.7
DEFAULT_LIMIT     = 5


class PropertyRetriever:
    """
    Stateless between calls: one embed + one search per retrieve().
    No retries here; retry policy belongs to the provider clients.
    """

    def __init__(
        self,
        embedder,
        store,
        threshold: float = DEFAULT_THRESHOLD,
        limit: int = DEFAULT_LIMIT,
    ):
        self.embedder = embedder
        self.store = store
        self.threshold = threshold
        self.limit = limit

    # ── Stage 1: embedding ────────────────────────────────────────────────

    async def embed_question(self, question: str) -> list[float]:
        try:
            vector = await self.embedder.embed(question)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding call failed: {type(e).__name__}.")

        if (
            not isinstance(vector, list)
            or not vector
            or not all(isinstance(v, (int, float)) and math.isfinite(v) for v in vector)
        ):
            raise EmbeddingError("Embedding provider returned a malformed vector.")
        return vector

    # ── Stage 2: similarity search ────────────────────────────────────────

    async def search(self, vector: list[float]) -> list[SimilarityHit]:
        try:
            rows = await self.store.search(vector, self.threshold, self.limit)
        except RetrievalError:
            raise
        except Exception as e:
            raise RetrievalError(f"Vector search failed: {type(e).__name__}.")

        try:
            hits = [SimilarityHit.model_validate(row) for row in rows]
        except ValidationError:
            raise RetrievalError("Vector store returned a malformed row.")

        accepted = [h for h in hits if h.similarity >= self.threshold][: self.limit]
        if len(accepted) != len(hits):
            logger.warning(
                f"[Retriever] Store returned {len(hits)} rows, "
                f"{len(hits) - len(accepted)} outside threshold/limit dropped."
            )
        return accepted

    # ── Full retrieval ────────────────────────────────────────────────────

    async def retrieve(self, question: str) -> list[SimilarityHit]:
        """
        Embed question and return up to `limit` hits with
        similarity >= `threshold`, in the store's ranking order.
        An empty list means "nothing relevant", not a failure.
        """
        vector = await self.embed_question(question)
        hits = await self.search(vector)
        logger.debug(
            f"[Retriever] '{question[:40]}' → {len(hits)} hit(s) "
            f"(threshold={self.threshold}, limit={self.limit})"
        )
        return hits

    def __repr__(self) -> str:
        return f"<PropertyRetriever [threshold={self.threshold}, limit={self.limit}]>"
