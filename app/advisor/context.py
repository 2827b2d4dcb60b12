"""
PropLedger — Advisor Context Assembler
========================================
Builds the context blob handed to the prompt renderer:

    <property block>
    ---
    <transaction summary>
    ---
    <static knowledge>

Most specific first, least specific last. Each block is replaced by a fixed
sentinel when it has nothing to say, so the blob always has three sections.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from app.advisor.knowledge import StaticKnowledge
from app.schemas import SimilarityHit, TransactionRecord

SECTION_SEPARATOR = "\n\n---\n\n"

NO_PROPERTY_MATCH   = "関連する物件情報は見つかりませんでした。"
NO_TRANSACTION_DATA = "取引データがありません。"
UNCATEGORIZED       = "未分類"

SUMMARY_DELIMITER = "、"

_PROPERTY_TYPE_LABELS = {
    "apartment":  "マンション・アパート",
    "house":      "戸建て",
    "commercial": "商業物件",
    "land":       "土地",
}


def _format_amount(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _format_yen(value: float | None) -> str:
    if value is None:
        return "不明"
    return f"{int(round(value)):,}円"


# ── Transaction summary ───────────────────────────────────────────────────

def summarize_transactions(transactions: Iterable[TransactionRecord]) -> str:
    """
    Group by category and sum amounts.

    Categories keep first-seen order, so the same input order always renders
    the same summary. Blank or missing categories fall under UNCATEGORIZED.
    """
    totals: dict[str, float] = {}
    for tx in transactions:
        label = (tx.category or "").strip() or UNCATEGORIZED
        totals[label] = totals.get(label, 0) + tx.amount

    if not totals:
        return NO_TRANSACTION_DATA

    return SUMMARY_DELIMITER.join(
        f"{label}: {_format_amount(total)}円" for label, total in totals.items()
    )


# ── Similarity hits ───────────────────────────────────────────────────────

def format_hit(hit: SimilarityHit) -> str:
    property_type = _PROPERTY_TYPE_LABELS.get(hit.property_type, hit.property_type)
    return "\n".join([
        f"物件名: {hit.name}",
        f"住所: {hit.address}",
        f"物件種別: {property_type}",
        f"購入価格: {_format_yen(hit.purchase_price)}",
        f"月額家賃: {_format_yen(hit.monthly_rent)}",
        f"購入日: {hit.purchase_date}",
        f"類似度: {hit.similarity:.2f}",
    ])


def format_hits(hits: Sequence[SimilarityHit]) -> str:
    """Render hits in the order given; the store's ranking is kept as-is."""
    if not hits:
        return NO_PROPERTY_MATCH
    return "\n\n".join(format_hit(h) for h in hits)


# ── Static knowledge ──────────────────────────────────────────────────────

def format_knowledge(knowledge: StaticKnowledge) -> str:
    lines = ["[FAQ]", *knowledge.faq, "[市況・ニュース・法令]", *knowledge.market]
    return "\n".join(lines)


class ContextAssembler:
    """
    Pure function of (transactions, hits) plus the injected knowledge tables.
    The knowledge block is rendered once at construction since it never
    changes between requests.
    """

    def __init__(self, knowledge: StaticKnowledge):
        self.knowledge = knowledge
        self._knowledge_block = format_knowledge(knowledge)

    def assemble(
        self,
        question: str,
        transactions: Sequence[TransactionRecord],
        hits: Sequence[SimilarityHit],
    ) -> str:
        return SECTION_SEPARATOR.join([
            format_hits(hits),
            summarize_transactions(transactions),
            self._knowledge_block,
        ])

    def __repr__(self) -> str:
        return (
            f"<ContextAssembler [{len(self.knowledge.faq)} FAQ, "
            f"{len(self.knowledge.market)} market]>"
        )
