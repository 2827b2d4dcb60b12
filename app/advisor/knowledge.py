"""
PropLedger — Static Knowledge Base
====================================
Two fixed tables injected into every advisor context:

    faq     — general real-estate investment FAQ
    market  — market / news / legal notes

Loaded once at startup (built-in defaults, or a JSON file named by
KNOWLEDGE_PATH) and never mutated afterwards.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError


DEFAULT_FAQ: tuple[str, ...] = (
    "利回りとは、物件価格に対する年間家賃収入の割合です。表面利回り＝年間家賃収入÷物件価格×100、"
    "実質利回り＝（年間家賃収入−年間経費）÷（物件価格＋購入諸費用）×100 で計算します。",
    "キャッシュフローとは、家賃収入からローン返済・管理費・修繕費・税金などの支出を差し引いた手残りのことです。",
    "減価償却とは、建物や設備の取得費用を法定耐用年数にわたって経費として配分する仕組みです。"
    "木造22年、鉄骨造（厚さ4mm超）34年、鉄筋コンクリート造47年が主な法定耐用年数です。",
    "空室率とは、全戸数に対する空室の割合です。空室期間の長期化は収益に直結するため、"
    "賃料設定・設備更新・管理会社の見直しで改善を図ります。",
    "修繕費の目安は、年間家賃収入の5〜10％程度とされます。大規模修繕に備えて計画的な積立が推奨されます。",
    "不動産所得は、総収入金額から必要経費を差し引いて計算し、給与所得などと損益通算できる場合があります。",
)

DEFAULT_MARKET: tuple[str, ...] = (
    "【市況】都市部の区分マンション価格は高止まりが続き、表面利回りは低下傾向にあります。",
    "【金利】金融機関の融資金利は上昇局面にあり、変動金利で借入中の場合は返済額の見直しが必要です。",
    "【法令】2024年4月から相続登記が義務化され、相続開始を知った日から3年以内の申請が必要です。",
    "【法令】賃貸住宅管理業法により、200戸以上を管理する事業者は国土交通大臣への登録が必要です。",
    "【税制】不動産取得税・登録免許税には住宅用家屋の軽減措置があり、適用期限に注意が必要です。",
)


@dataclass(frozen=True)
class StaticKnowledge:
    """Read-only knowledge tables shared by every request."""
    faq: tuple[str, ...] = DEFAULT_FAQ
    market: tuple[str, ...] = DEFAULT_MARKET


class _KnowledgeFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    faq: tuple[str, ...] = DEFAULT_FAQ
    market: tuple[str, ...] = DEFAULT_MARKET


def load_knowledge(path: str | Path | None = None) -> StaticKnowledge:
    """
    Build the knowledge tables.

    path empty → built-in defaults.
    path set   → JSON object with "faq" and "market" string lists.
    Missing keys fall back to the defaults for that table; any other shape
    raises ValueError.
    """
    if not path:
        return StaticKnowledge()

    knowledge_file = Path(path)
    with open(knowledge_file, "r", encoding="utf-8") as f:
        raw = json.load(f)

    try:
        parsed = _KnowledgeFile.model_validate(raw)
    except ValidationError as e:
        raise ValueError(
            f"Knowledge file {knowledge_file.name} must be an object of string lists "
            f"({e.error_count()} error(s))"
        ) from e
    faq, market = parsed.faq, parsed.market

    logger.info(
        f"[Knowledge] Loaded {knowledge_file.name} | "
        f"{len(faq)} FAQ entries | {len(market)} market entries"
    )
    return StaticKnowledge(faq=faq, market=market)
