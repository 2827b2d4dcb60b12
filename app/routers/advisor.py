"""
PropLedger — AI Advisor Router
================================
    POST  /api/v1/advisor
        Ask a question about the portfolio; the answer streams back as
        text/plain while the model generates it.

    POST  /api/ai-advisor
        Same handler under the path the dashboard calls.

Errors before streaming starts are JSON {"error": "..."} with 400 / 500.
Once streaming has started the status is already 200; a provider failure
then simply ends the body early.
"""

import uuid

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import StreamingResponse
from loguru import logger
from pydantic import ValidationError

from app.advisor import AdvisorPipeline, MISSING_QUESTION
from app.advisor.errors import AdvisorError
from app.routers.responses import error_response
from app.schemas import AdvisorRequest, ErrorResponse

router = APIRouter(tags=["AI Advisor"])


def get_advisor_pipeline(request: Request) -> AdvisorPipeline:
    return request.app.state.advisor


@router.post(
    "/api/v1/advisor",
    summary="AI Advisor — streamed, grounded answers",
    description=(
        "Send a question and (optionally) the user's transactions.\n\n"
        "- The question is embedded and matched against the user's properties "
        "(similarity ≥ 0.7, at most 5).\n"
        "- Matches, a per-category transaction summary and the built-in FAQ / "
        "market knowledge form the context.\n"
        "- The answer is streamed as `text/plain` chunks in generation order.\n\n"
        "**Example questions:** *利回りとは？* / *今月の家賃収入は？* / *修繕費の目安は？*"
    ),
    response_class=StreamingResponse,
    responses={
        200: {"content": {"text/plain": {}}, "description": "Streamed answer."},
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
@router.post("/api/ai-advisor", include_in_schema=False)
async def advisor(
    request: Request,
    pipeline: AdvisorPipeline = Depends(get_advisor_pipeline),
):
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    logger.info(f"[AdvisorRouter] POST {request.url.path} | request_id={request_id}")

    try:
        payload = await request.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    try:
        body = AdvisorRequest.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"[AdvisorRouter] [{request_id}] Invalid body: {e.error_count()} error(s)")
        if "question" not in payload:
            return error_response(status.HTTP_400_BAD_REQUEST, MISSING_QUESTION, request_id)
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "リクエストの形式が正しくありません",
            request_id,
        )

    try:
        stream = await pipeline.handle(body, request_id=request_id)
    except AdvisorError as e:
        return error_response(e.status_code, e.message, request_id)

    return StreamingResponse(
        stream,
        media_type="text/plain; charset=utf-8",
        headers={
            "X-Request-ID": request_id,
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
