"""
Context assembler — transaction summary, hit formatting, section layout.
"""

import pytest

from app.advisor.context import (
    NO_PROPERTY_MATCH,
    NO_TRANSACTION_DATA,
    SECTION_SEPARATOR,
    SUMMARY_DELIMITER,
    UNCATEGORIZED,
    ContextAssembler,
    format_hits,
    summarize_transactions,
)
from app.advisor.knowledge import StaticKnowledge
from app.schemas import SimilarityHit, TransactionRecord

from tests.conftest import make_row


def _tx(category, amount) -> TransactionRecord:
    return TransactionRecord(category=category, amount=amount)


def _parse_totals(summary: str) -> dict[str, float]:
    totals = {}
    for part in summary.split(SUMMARY_DELIMITER):
        label, _, amount = part.rpartition(": ")
        totals[label] = float(amount.rstrip("円"))
    return totals


# ── Transaction summary ───────────────────────────────────────────────────

def test_empty_transactions_give_sentinel():
    assert summarize_transactions([]) == NO_TRANSACTION_DATA


def test_sums_per_category_in_first_seen_order():
    txs = [_tx("rent", 100000), _tx("rent", 50000), _tx("repair", 20000)]

    summary = summarize_transactions(txs)

    assert "rent: 150000" in summary
    assert "repair: 20000" in summary
    assert summary == "rent: 150000円、repair: 20000円"
    assert summarize_transactions(txs) == summary


def test_missing_or_blank_category_is_uncategorized():
    txs = [_tx(None, 1000), _tx("", 500), _tx("  ", 250), _tx("tax", 300)]

    totals = _parse_totals(summarize_transactions(txs))

    assert totals == {UNCATEGORIZED: 1750, "tax": 300}


@pytest.mark.parametrize(
    "amounts",
    [
        [("rent", 120000), ("loan", -80000), ("rent", 120000), ("fee", -5000)],
        [("a", 1), ("b", 2), ("c", 3), ("a", 4), ("b", 5)],
        [(None, 999), ("repair", 0), ("repair", 12345)],
        [("rent", 1000.5), ("rent", 2000.25)],
    ],
)
def test_category_totals_conserve_input_sum(amounts):
    txs = [_tx(c, a) for c, a in amounts]

    totals = _parse_totals(summarize_transactions(txs))

    assert sum(totals.values()) == pytest.approx(sum(a for _, a in amounts))


def test_dashboard_transaction_extra_fields_are_ignored():
    tx = TransactionRecord.model_validate({
        "id": "t1", "category": "rent", "amount": "80000",
        "type": "income", "transaction_date": "2024-05-01",
    })
    assert summarize_transactions([tx]) == "rent: 80000円"


# ── Similarity hits ───────────────────────────────────────────────────────

def test_zero_hits_give_sentinel():
    assert format_hits([]) == NO_PROPERTY_MATCH


def test_hit_block_fields_and_rounded_similarity():
    hit = SimilarityHit.model_validate(make_row(similarity=0.87654, monthly_rent=None))

    block = format_hits([hit])

    assert "物件名: サンライズ中野" in block
    assert "住所: 東京都中野区中野1-2-3" in block
    assert "物件種別: マンション・アパート" in block
    assert "購入価格: 25,000,000円" in block
    assert "月額家賃: 不明" in block
    assert "購入日: 2020-04-01" in block
    assert "類似度: 0.88" in block


def test_hits_keep_store_order():
    hits = [
        SimilarityHit.model_validate(make_row(name="A", similarity=0.95)),
        SimilarityHit.model_validate(make_row(name="B", similarity=0.80)),
        SimilarityHit.model_validate(make_row(name="C", similarity=0.75)),
    ]

    block = format_hits(hits)

    assert block.index("物件名: A") < block.index("物件名: B") < block.index("物件名: C")


# ── Full blob ─────────────────────────────────────────────────────────────

def test_blob_has_three_sections_in_order(knowledge):
    assembler = ContextAssembler(knowledge)
    hits = [SimilarityHit.model_validate(make_row())]

    blob = assembler.assemble("質問", [_tx("rent", 1)], hits)
    sections = blob.split(SECTION_SEPARATOR)

    assert len(sections) == 3
    assert sections[0].startswith("物件名: サンライズ中野")
    assert sections[1] == "rent: 1円"
    assert sections[2].startswith("[FAQ]")


def test_blob_with_nothing_uses_both_sentinels(knowledge):
    blob = ContextAssembler(knowledge).assemble("利回りとは？", [], [])
    sections = blob.split(SECTION_SEPARATOR)

    assert sections[0] == NO_PROPERTY_MATCH
    assert sections[1] == NO_TRANSACTION_DATA
    assert any(entry.startswith("利回りとは") for entry in sections[2].splitlines())


def test_injected_knowledge_replaces_defaults():
    custom = StaticKnowledge(faq=("テスト用FAQ",), market=("テスト用ニュース",))

    blob = ContextAssembler(custom).assemble("q", [], [])
    knowledge_block = blob.split(SECTION_SEPARATOR)[2]

    assert knowledge_block == "[FAQ]\nテスト用FAQ\n[市況・ニュース・法令]\nテスト用ニュース"
