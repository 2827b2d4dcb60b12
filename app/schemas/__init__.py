"""
PropLedger — Pydantic Schemas

Defines all request / response data contracts used across the API, plus the
row shape returned by the property vector search.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Advisor request ───────────────────────────────────────────────────────

class TransactionRecord(BaseModel):
    """
    One transaction as sent by the dashboard.
    Only category and amount feed the advisor; the dashboard also sends id,
    transaction_date, type, description … which are ignored.
    """
    model_config = ConfigDict(extra="ignore")

    category: Optional[str] = None
    amount: float


class AdvisorRequest(BaseModel):
    """
    Body of POST /api/v1/advisor.
    question is checked by the pipeline (not here) so a blank value becomes a
    400 "missing question" instead of a schema error.
    """
    model_config = ConfigDict(extra="ignore")

    question: Optional[str] = Field(default=None, description="User's question.")
    transactions: list[TransactionRecord] = Field(
        default_factory=list,
        description="Transactions to summarise as user context. May be empty.",
    )


# ── Vector search row ─────────────────────────────────────────────────────

class SimilarityHit(BaseModel):
    """A property row returned by match_properties(), nearest first."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str
    address: str
    property_type: str
    purchase_price: Optional[float] = None
    monthly_rent: Optional[float] = None
    purchase_date: str
    similarity: float = Field(..., ge=0.0, le=1.0)

    @field_validator("purchase_date", mode="before")
    @classmethod
    def _date_to_str(cls, value: Any) -> Any:
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return value


# ── Error body ────────────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    error: str


# ── Property embedding refresh ────────────────────────────────────────────

class EmbeddingRefreshResponse(BaseModel):
    message: str
    property_id: str


# ── OCR field extraction ──────────────────────────────────────────────────

class OcrAnalyzeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ocr_text: Optional[str] = Field(
        default=None,
        description="Raw text read from a real-estate document by the OCR service.",
    )


class OcrPropertyFields(BaseModel):
    """
    Fields extracted from OCR text.
    Unreadable strings are "不明", unreadable numbers are null.
    """
    property_name: str = "不明"
    address: str = "不明"
    property_type: str = "不明"
    structure: str = "不明"
    year_built: Optional[int] = None
    total_units: Optional[int] = None

    @field_validator("property_name", "address", "property_type", "structure", mode="before")
    @classmethod
    def _blank_to_unknown(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "不明"
        return value

    @field_validator("year_built", "total_units", mode="before")
    @classmethod
    def _unreadable_number(cls, value: Any) -> Any:
        if isinstance(value, str):
            digits = value.strip().rstrip("年戸").replace(",", "")
            return int(digits) if digits.isdigit() else None
        return value
