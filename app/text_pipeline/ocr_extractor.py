"""
PropLedger — OCR Field Extractor
Module : app/text_pipeline/ocr_extractor.py

Turns raw OCR text from a real-estate document (重要事項説明書, 登記簿, 募集図面 …)
into structured property fields with a single zero-temperature completion.
"""

from __future__ import annotations

import json
import re

from loguru import logger
from pydantic import ValidationError

from app.advisor.errors import CompletionError
from app.schemas import OcrPropertyFields


def build_extraction_prompt(ocr_text: str) -> str:
    return f"""以下は不動産関連の書類からOCRで読み取ったテキストです。
このテキストから以下の情報を抽出し、JSON形式で出力してください。

- 物件名 (property_name)
- 住所 (address)
- 物件種別 (property_type: 例 'マンション', 'アパート', '戸建て')
- 構造 (structure: 例 '鉄骨造', '木造')
- 築年 (year_built: 西暦年の数値)
- 総戸数 (total_units: 数値)

テキストから情報が読み取れない場合は、該当する値に "不明" を設定してください。
数値が読み取れない場合は null を設定してください。
JSONオブジェクトのみを出力し、それ以外の文章は含めないでください。

---
{ocr_text}
---

JSON出力:"""


def _parse_json_response(raw: str) -> dict:
    """Extract JSON from LLM response, handling markdown code fences."""
    cleaned = re.sub(r"```(?:json)?\s*", "", raw).strip().rstrip("`").strip()
    match = re.search(r"\{.*\}", cleaned, re.DOTALL)
    if match:
        cleaned = match.group(0)
    return json.loads(cleaned)


async def extract_property_fields(ocr_text: str, provider) -> OcrPropertyFields:
    """
    Ask the completion provider to pull property fields out of OCR text.
    Raises CompletionError when the reply is not a JSON object with usable
    fields.
    """
    raw = await provider.complete_text(build_extraction_prompt(ocr_text), temperature=0.0)

    try:
        data = _parse_json_response(raw)
        if not isinstance(data, dict):
            raise ValueError("not an object")
        fields = OcrPropertyFields.model_validate(data)
    except (ValueError, ValidationError) as e:
        logger.error(f"[OCR] Could not parse completion reply ({len(raw)} chars): {e}")
        raise CompletionError("AIからの応答を解析できませんでした。")

    logger.info(f"[OCR] Extracted fields for '{fields.property_name}'.")
    return fields
