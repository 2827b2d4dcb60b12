"""
RAG Engine Package
==================
Property retrieval over the hosted pgvector store.

Quickstart:
    # 1. Embed every property that has no vector yet
    python -m app.rag_engine.ingest

    # 2. Use the retriever in your code
    from app.rag_engine import PropertyRetriever
    retriever = PropertyRetriever(embedder=provider, store=PropertyStore())
    hits = await retriever.retrieve("駅近の区分マンション")
"""

from app.rag_engine.retriever import PropertyRetriever, DEFAULT_LIMIT, DEFAULT_THRESHOLD

__all__ = ["PropertyRetriever", "DEFAULT_LIMIT", "DEFAULT_THRESHOLD"]
