"""
PropLedger — LLM Engine
========================
Thin async client for an OpenAI-compatible API (OpenAI itself by default).

    embed(text)          → POST /embeddings            → list[float]
    complete(prompt)     → POST /chat/completions      → async iterator of text chunks
                           (stream: true, server-sent events)
    complete_text(...)   → POST /chat/completions      → full reply string

Every failure is raised as the matching ProviderError subclass. Messages name
the failing call and HTTP status only; response bodies and the API key are
never copied into them.
"""

from __future__ import annotations

import json
from typing import AsyncIterator, Optional

import httpx
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from app.advisor.errors import CompletionError, EmbeddingError
from app.config import Settings

_DONE = "[DONE]"


# ── Provider payload schemas ──────────────────────────────────────────────────

class _EmbeddingItem(BaseModel):
    embedding: list[float] = Field(..., min_length=1)


class _EmbeddingResponse(BaseModel):
    data: list[_EmbeddingItem] = Field(..., min_length=1)


class _Message(BaseModel):
    content: Optional[str] = None


class _Choice(BaseModel):
    message: _Message


class _CompletionResponse(BaseModel):
    choices: list[_Choice] = Field(..., min_length=1)


# ── SSE parsing ───────────────────────────────────────────────────────────────

class _StreamDone(Exception):
    pass


def parse_sse_line(line: str) -> Optional[str]:
    """
    Decode one line of an OpenAI streaming response.

    Returns the content delta (possibly ""), or None for lines that carry no
    data (blank separators, ": keep-alive" comments, non-data fields).
    Raises _StreamDone on the "[DONE]" terminator and CompletionError on an
    error event or a data line that is not a valid chunk.
    """
    line = line.strip()
    if not line.startswith("data:"):
        return None

    data = line[len("data:"):].strip()
    if data == _DONE:
        raise _StreamDone()

    try:
        chunk = json.loads(data)
        if "error" in chunk:
            raise CompletionError("Completion provider sent an error event.")
        choices = chunk.get("choices") or []
        if not choices:
            return ""
        delta = choices[0].get("delta") or {}
        content = delta.get("content")
    except (json.JSONDecodeError, AttributeError, TypeError):
        raise CompletionError("Completion provider sent a malformed stream chunk.")

    if content is None:
        return ""
    if not isinstance(content, str):
        raise CompletionError("Completion provider sent a non-text stream chunk.")
    return content


# ═══════════════════════════════════════════════════════════════════════════════
# Client
# ═══════════════════════════════════════════════════════════════════════════════

class OpenAIProvider:
    """
    Shared across requests; holds only configuration and a pooled
    httpx.AsyncClient. Call aclose() on shutdown.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        embedding_model: str = "text-embedding-3-small",
        completion_model: str = "gpt-4o-mini",
        temperature: float = 0.3,
        embedding_timeout: float = 20.0,
        completion_timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.embedding_model = embedding_model
        self.completion_model = completion_model
        self.temperature = temperature
        self._embedding_timeout = httpx.Timeout(embedding_timeout)
        # read timeout applies between chunks, so a stalled stream also fails
        self._completion_timeout = httpx.Timeout(completion_timeout)
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIProvider":
        return cls(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            embedding_model=settings.embedding_model,
            completion_model=settings.completion_model,
            temperature=settings.completion_temperature,
            embedding_timeout=settings.embedding_timeout,
            completion_timeout=settings.completion_timeout,
        )

    # ── Embeddings ────────────────────────────────────────────────────────

    async def embed(self, text: str) -> list[float]:
        payload = {"model": self.embedding_model, "input": text}
        try:
            resp = await self._client.post(
                "/embeddings", json=payload, timeout=self._embedding_timeout,
            )
            resp.raise_for_status()
            parsed = _EmbeddingResponse.model_validate(resp.json())
        except httpx.TimeoutException:
            raise EmbeddingError("Embedding provider timed out.")
        except httpx.HTTPStatusError as e:
            raise EmbeddingError(
                f"Embedding provider returned HTTP {e.response.status_code}."
            )
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Embedding provider unreachable: {type(e).__name__}.")
        except (ValidationError, ValueError):
            raise EmbeddingError("Embedding provider returned a malformed payload.")

        vector = parsed.data[0].embedding
        logger.debug(f"[LLM] Embedded {len(text)} chars → dim={len(vector)}")
        return vector

    # ── Streaming completion ──────────────────────────────────────────────

    async def complete(self, prompt: str) -> AsyncIterator[str]:
        """
        Yield answer chunks in the order the provider sends them.
        Closing the generator early closes the upstream HTTP response.
        """
        payload = {
            "model": self.completion_model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "stream": True,
        }
        try:
            async with self._client.stream(
                "POST", "/chat/completions", json=payload, timeout=self._completion_timeout,
            ) as resp:
                if resp.status_code >= 400:
                    raise CompletionError(
                        f"Completion provider returned HTTP {resp.status_code}."
                    )
                async for line in resp.aiter_lines():
                    try:
                        content = parse_sse_line(line)
                    except _StreamDone:
                        return
                    if content:
                        yield content
                raise CompletionError("Completion stream ended before [DONE].")
        except httpx.TimeoutException:
            raise CompletionError("Completion provider timed out.")
        except httpx.HTTPError as e:
            raise CompletionError(f"Completion provider unreachable: {type(e).__name__}.")

    # ── One-shot completion ───────────────────────────────────────────────

    async def complete_text(self, prompt: str, temperature: float = 0.0) -> str:
        payload = {
            "model": self.completion_model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "stream": False,
        }
        try:
            resp = await self._client.post(
                "/chat/completions", json=payload, timeout=self._completion_timeout,
            )
            resp.raise_for_status()
            parsed = _CompletionResponse.model_validate(resp.json())
        except httpx.TimeoutException:
            raise CompletionError("Completion provider timed out.")
        except httpx.HTTPStatusError as e:
            raise CompletionError(
                f"Completion provider returned HTTP {e.response.status_code}."
            )
        except httpx.HTTPError as e:
            raise CompletionError(f"Completion provider unreachable: {type(e).__name__}.")
        except (ValidationError, ValueError):
            raise CompletionError("Completion provider returned a malformed payload.")

        return (parsed.choices[0].message.content or "").strip()

    async def aclose(self) -> None:
        await self._client.aclose()

    def __repr__(self) -> str:
        return f"<OpenAIProvider [{self.embedding_model} | {self.completion_model}]>"
