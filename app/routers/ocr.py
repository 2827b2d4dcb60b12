"""
PropLedger — OCR Analysis Router

    POST  /api/v1/ocr/analyze
        Extract property fields from text already read by the OCR service.
"""

from fastapi import APIRouter, Request, status
from loguru import logger
from pydantic import ValidationError

from app.advisor.errors import AdvisorError
from app.routers.responses import error_response
from app.schemas import ErrorResponse, OcrAnalyzeRequest, OcrPropertyFields
from app.text_pipeline.ocr_extractor import extract_property_fields

router = APIRouter(prefix="/api/v1/ocr", tags=["OCR"])

MISSING_OCR_TEXT = "OCRテキストがありません"


@router.post(
    "/analyze",
    response_model=OcrPropertyFields,
    summary="Extract property fields from OCR text",
    status_code=status.HTTP_200_OK,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def analyze(request: Request):
    try:
        payload = await request.json()
    except ValueError:
        payload = {}

    try:
        body = OcrAnalyzeRequest.model_validate(payload if isinstance(payload, dict) else {})
    except ValidationError:
        return error_response(status.HTTP_400_BAD_REQUEST, MISSING_OCR_TEXT)

    if not body.ocr_text or not body.ocr_text.strip():
        return error_response(status.HTTP_400_BAD_REQUEST, MISSING_OCR_TEXT)

    logger.info(f"[OCRRouter] POST /ocr/analyze ({len(body.ocr_text)} chars)")
    try:
        return await extract_property_fields(body.ocr_text, request.app.state.llm)
    except AdvisorError as e:
        return error_response(e.status_code, e.message)
