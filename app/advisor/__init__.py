"""
PropLedger — AI Advisor Pipeline
==================================
Retrieval-augmented answers about the user's real-estate portfolio:

  • OpenAI-compatible embeddings  — question → vector        (via llm_engine)
  • match_properties RPC          — nearest properties       (via rag_engine)
  • Transaction summary           — caller-supplied records  (via advisor.context)
  • Static FAQ / market knowledge — loaded once at startup   (via advisor.knowledge)
  • Streaming chat completion     — answer relayed chunk by chunk

Stages (one pass per request, no retries):

    RECEIVED → VALIDATING → EMBEDDING → RETRIEVING → ASSEMBLING → RENDERING
             → STREAMING → DONE
    VALIDATING fails            → REJECTED  (400, nothing called)
    EMBEDDING / RETRIEVING fail → FAILED    (500, nothing streamed)
    STREAMING fails             → FAILED    (partial answer stays delivered)

Public API
----------
    from app.advisor import AdvisorPipeline

    stream = await pipeline.handle(request)     # raises AdvisorError pre-stream
    async for data in stream:                   # bytes, in provider order
        ...
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import AsyncIterator, Optional

from loguru import logger

from app.advisor.context import ContextAssembler
from app.advisor.errors import (
    AdvisorError,
    AdvisorValidationError,
    CompletionError,
    MidStreamFailure,
    ProviderError,
)
from app.advisor.knowledge import StaticKnowledge
from app.advisor.prompt import render
from app.schemas import AdvisorRequest

MISSING_QUESTION = "質問がありません"


class Stage(str, Enum):
    received   = "RECEIVED"
    validating = "VALIDATING"
    embedding  = "EMBEDDING"
    retrieving = "RETRIEVING"
    assembling = "ASSEMBLING"
    rendering  = "RENDERING"
    streaming  = "STREAMING"
    done       = "DONE"
    rejected   = "REJECTED"
    failed     = "FAILED"


async def _aclose(iterator) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


# ═══════════════════════════════════════════════════════════════════════════════
# Response stream
# ═══════════════════════════════════════════════════════════════════════════════

class AdvisorStream:
    """
    Async iterable of UTF-8 encoded answer chunks.

    Holds the first chunk (already pulled so that connection errors surface
    before any byte is sent) and the live upstream iterator. Iteration ends
    quietly on provider failure; `stage` and `failure` record what happened.
    If the consumer stops early the upstream iterator is closed.
    """

    def __init__(
        self,
        request_id: str,
        first_chunk: Optional[str],
        upstream: AsyncIterator[str],
    ):
        self.request_id = request_id
        self.stage = Stage.streaming
        self.bytes_sent = 0
        self.failure: Optional[MidStreamFailure] = None
        self._first_chunk = first_chunk
        self._upstream = upstream

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            if self._first_chunk:
                data = self._first_chunk.encode("utf-8")
                self.bytes_sent += len(data)
                yield data

            if self._first_chunk is not None:
                async for chunk in self._upstream:
                    if not chunk:
                        continue
                    data = chunk.encode("utf-8")
                    self.bytes_sent += len(data)
                    yield data

            self.stage = Stage.done
            logger.info(
                f"[Advisor] [{self.request_id}] ✅ Done | {self.bytes_sent} bytes streamed"
            )
        except Exception as e:
            self.stage = Stage.failed
            self.failure = MidStreamFailure(str(e), bytes_sent=self.bytes_sent)
            logger.error(
                f"[Advisor] [{self.request_id}] stage=STREAMING failed after "
                f"{self.bytes_sent} bytes: {type(e).__name__}: {e}"
            )
        finally:
            await _aclose(self._upstream)


# ═══════════════════════════════════════════════════════════════════════════════
# Pipeline
# ═══════════════════════════════════════════════════════════════════════════════

class AdvisorPipeline:
    """
    Shared by all requests. Holds only collaborators and the read-only
    context assembler; everything request-specific lives on the stack.

    retriever.retrieve(question)  -> list[SimilarityHit]   (async)
    completion.complete(prompt)   -> async iterator of str
    """

    def __init__(self, retriever, completion, knowledge: Optional[StaticKnowledge] = None):
        self.retriever = retriever
        self.completion = completion
        self.assembler = ContextAssembler(knowledge or StaticKnowledge())

    async def handle(
        self,
        request: AdvisorRequest,
        request_id: Optional[str] = None,
    ) -> AdvisorStream:
        """
        Run every stage up to the first completion chunk.

        Raises
        ------
        AdvisorValidationError  question missing or blank
        ProviderError           embedding, retrieval or completion start failed
        """
        rid = request_id or uuid.uuid4().hex
        stage = Stage.received
        logger.info(
            f"[Advisor] [{rid}] ▶ {stage.value} | "
            f"q_len={len(request.question or '')} | tx={len(request.transactions)}"
        )

        # ── 1. Validate ───────────────────────────────────────────────────
        stage = Stage.validating
        question = (request.question or "").strip()
        if not question:
            logger.warning(f"[Advisor] [{rid}] {Stage.rejected.value}: {MISSING_QUESTION}")
            raise AdvisorValidationError(MISSING_QUESTION, stage=Stage.rejected.value)

        try:
            # ── 2. Embed + 3. Retrieve ────────────────────────────────────
            stage = Stage.embedding
            vector = await self.retriever.embed_question(question)

            stage = Stage.retrieving
            hits = await self.retriever.search(vector)
            logger.info(f"[Advisor] [{rid}] RAG: {len(hits)} property hit(s).")

            # ── 4. Assemble ───────────────────────────────────────────────
            stage = Stage.assembling
            context = self.assembler.assemble(question, request.transactions, hits)

            # ── 5. Render ─────────────────────────────────────────────────
            stage = Stage.rendering
            prompt = render(context, question)

            # ── 6. Open the completion stream ─────────────────────────────
            stage = Stage.streaming
            upstream = self.completion.complete(prompt)
            try:
                first_chunk: Optional[str] = await upstream.__anext__()
            except StopAsyncIteration:
                first_chunk = None
            except BaseException:
                await _aclose(upstream)
                raise
        except AdvisorError as e:
            e.stage = stage.value
            logger.error(
                f"[Advisor] [{rid}] stage={stage.value} → {Stage.failed.value}: "
                f"{type(e).__name__}: {e}"
            )
            raise
        except Exception as e:
            logger.exception(
                f"[Advisor] [{rid}] stage={stage.value} → {Stage.failed.value}: unexpected error"
            )
            error_type = CompletionError if stage is Stage.streaming else ProviderError
            raise error_type(f"Advisor pipeline failed during {stage.value}.", stage=stage.value) from e

        logger.info(f"[Advisor] [{rid}] {Stage.streaming.value} started.")
        return AdvisorStream(request_id=rid, first_chunk=first_chunk, upstream=upstream)

    def __repr__(self) -> str:
        return f"<AdvisorPipeline [{self.retriever!r} | {self.assembler!r}]>"
