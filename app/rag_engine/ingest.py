"""
RAG Engine — Property Embedding Ingestion
==========================================
Keeps `properties.embedding` filled so match_properties() can find rows:

  1. Format each property as a short Japanese description
  2. Embed it with the configured embedding model
  3. Write the vector back to the row

refresh_property_embedding() handles one property (API endpoint);
backfill_embeddings() handles every row whose embedding is still NULL.

Usage:
    python -m app.rag_engine.ingest
"""

import asyncio
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from loguru import logger
from tqdm import tqdm

from app.advisor.errors import PropertyNotFoundError

ROOT = Path(__file__).resolve().parents[2]


# ─────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────

def _yen(value) -> str:
    return f"{int(float(value)):,}円"


def format_property_for_embedding(row: dict) -> str:
    """Join the fields that describe a property; absent optional fields are skipped."""
    details = [
        f"物件名: {row.get('name') or '名称不明'}",
        f"住所: {row.get('address') or '住所不明'}",
        f"物件種別: {row.get('property_type') or '種別不明'}",
    ]
    if row.get("building_structure"):
        details.append(f"構造: {row['building_structure']}")
    if row.get("building_year"):
        details.append(f"建築年: {row['building_year']}年")
    if row.get("purchase_price"):
        details.append(f"購入価格: {_yen(row['purchase_price'])}")
    if row.get("monthly_rent"):
        details.append(f"月額家賃: {_yen(row['monthly_rent'])}")
    return "。 ".join(details)


# ─────────────────────────────────────────────────────────────────────────
# Single property (API)
# ─────────────────────────────────────────────────────────────────────────

async def refresh_property_embedding(property_id: str, embedder, store) -> dict:
    """
    Re-embed one property. Returns the row that was embedded.
    Raises PropertyNotFoundError for an unknown id; provider and database
    errors propagate to the caller.
    """
    row = await store.get_property(property_id)
    if row is None:
        raise PropertyNotFoundError(f"物件(ID: {property_id})が見つかりません。")

    input_text = format_property_for_embedding(row)
    vector = await embedder.embed(input_text)
    await store.update_embedding(str(row["id"]), vector)

    logger.info(f"[Ingest] Property {row['id']} re-embedded (dim={len(vector)}).")
    return row


# ─────────────────────────────────────────────────────────────────────────
# Backfill
# ─────────────────────────────────────────────────────────────────────────

async def backfill_embeddings(embedder, store, rows: Optional[list[dict]] = None) -> int:
    """
    Embed every property without a vector. A failing row is logged and
    skipped so one bad record does not stop the run. Returns rows updated.
    """
    if rows is None:
        rows = store.list_missing_embeddings()

    if not rows:
        logger.info("[Ingest] No properties need embedding.")
        return 0

    logger.info(f"[Ingest] {len(rows)} propert(y/ies) to embed.")

    updated = 0
    for row in tqdm(rows, desc="Embedding", unit="property"):
        try:
            input_text = format_property_for_embedding(row)
            logger.debug(f"[Ingest] [{row.get('name')}] input: {input_text}")
            vector = await embedder.embed(input_text)
            await store.update_embedding(str(row["id"]), vector)
            updated += 1
        except Exception as e:
            logger.error(f"[Ingest] [{row.get('name')}] (ID: {row.get('id')}) failed: {e}")

    logger.success(f"[Ingest] Embedded {updated}/{len(rows)} propert(y/ies).")
    return updated


async def _main() -> int:
    from app.config import get_settings
    from app.llm_engine import OpenAIProvider
    from app.storage import PropertyStore

    settings = get_settings()
    if not settings.openai_api_key:
        logger.error("OPENAI_API_KEY is not set.")
        return 1

    provider = OpenAIProvider.from_settings(settings)
    try:
        await backfill_embeddings(provider, PropertyStore())
    finally:
        await provider.aclose()
    return 0


if __name__ == "__main__":
    load_dotenv(ROOT / ".env")
    raise SystemExit(asyncio.run(_main()))
