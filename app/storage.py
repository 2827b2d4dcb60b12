"""
PropLedger — Property Storage (hosted Postgres + pgvector)
============================================================
Owns every query against the `properties` table and the
`match_properties` similarity RPC:

    search(vector, threshold, limit)   — nearest properties above threshold
    get_property(property_id)          — one row for embedding refresh
    list_missing_embeddings()          — rows whose embedding IS NULL
    update_embedding(property_id, v)   — write a vector back

Design notes:
  - SQLAlchemy Core + text(): the schema is owned by the hosted database,
    so there is no ORM mapping here.
  - connect_timeout and statement_timeout are set per connection, so an
    unreachable host or a stuck query surfaces as an OperationalError
    instead of hanging the request.
  - The async wrappers run the blocking driver calls in Starlette's
    threadpool; the event loop never blocks on Postgres.
"""

from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional, Sequence

from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from starlette.concurrency import run_in_threadpool

from app.config import get_settings

_MATCH_SQL = text(
    "SELECT name, address, property_type, purchase_price, monthly_rent, "
    "purchase_date, similarity "
    "FROM match_properties(CAST(:query_embedding AS vector), :match_threshold, :match_count)"
)

_PROPERTY_COLUMNS = (
    "id, name, address, property_type, purchase_price, monthly_rent, "
    "building_structure, building_year"
)


def to_vector_literal(vector: Sequence[float]) -> str:
    """pgvector text form: '[0.1,0.2,...]'."""
    return "[" + ",".join(repr(float(v)) for v in vector) + "]"


def connect_args_for(timeout_s: float) -> dict:
    """libpq bounds for both the TCP connect and every statement."""
    return {
        "connect_timeout": max(1, int(timeout_s)),
        "options": f"-c statement_timeout={int(timeout_s * 1000)}",
    }


@lru_cache
def get_engine() -> Engine:
    settings = get_settings()
    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        echo=False,
        connect_args=connect_args_for(settings.retrieval_timeout),
    )


class PropertyStore:
    """Blocking SQL helpers plus async wrappers for use from request handlers."""

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = get_engine()
        return self._engine

    # ── Similarity search ─────────────────────────────────────────────────

    def search_sync(self, vector: Sequence[float], threshold: float, limit: int) -> list[dict]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _MATCH_SQL,
                {
                    "query_embedding": to_vector_literal(vector),
                    "match_threshold": threshold,
                    "match_count": limit,
                },
            ).mappings().all()
        return [dict(r) for r in rows]

    async def search(self, vector: Sequence[float], threshold: float, limit: int) -> list[dict]:
        return await run_in_threadpool(self.search_sync, vector, threshold, limit)

    # ── Property rows ─────────────────────────────────────────────────────

    def get_property_sync(self, property_id: str) -> Optional[dict]:
        with self.engine.connect() as conn:
            row = conn.execute(
                text(f"SELECT {_PROPERTY_COLUMNS} FROM properties WHERE id = :id"),
                {"id": property_id},
            ).mappings().first()
        return dict(row) if row else None

    async def get_property(self, property_id: str) -> Optional[dict]:
        return await run_in_threadpool(self.get_property_sync, property_id)

    def list_missing_embeddings(self) -> list[dict]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                text(f"SELECT {_PROPERTY_COLUMNS} FROM properties WHERE embedding IS NULL")
            ).mappings().all()
        return [dict(r) for r in rows]

    def update_embedding_sync(self, property_id: str, vector: Sequence[float]) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                text(
                    "UPDATE properties "
                    "SET embedding = CAST(:embedding AS vector), updated_at = :updated_at "
                    "WHERE id = :id"
                ),
                {
                    "embedding": to_vector_literal(vector),
                    "updated_at": datetime.now(timezone.utc),
                    "id": property_id,
                },
            )
        logger.debug(f"[Storage] Embedding updated for property {property_id}")

    async def update_embedding(self, property_id: str, vector: Sequence[float]) -> None:
        await run_in_threadpool(self.update_embedding_sync, property_id, vector)
