"""
PropLedger — Property Embedding Router

    POST  /api/v1/properties/{property_id}/embedding
        Re-embed one property after it was created or edited, so the advisor
        can retrieve it.
"""

from fastapi import APIRouter, Request, status
from loguru import logger

from app.advisor.errors import AdvisorError, PropertyNotFoundError
from app.rag_engine.ingest import refresh_property_embedding
from app.routers.responses import error_response
from app.schemas import EmbeddingRefreshResponse, ErrorResponse

router = APIRouter(prefix="/api/v1/properties", tags=["Properties"])


@router.post(
    "/{property_id}/embedding",
    response_model=EmbeddingRefreshResponse,
    summary="Regenerate a property's embedding",
    status_code=status.HTTP_200_OK,
    responses={
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def generate_embedding(property_id: str, request: Request):
    logger.info(f"[PropertiesRouter] POST /properties/{property_id}/embedding")
    try:
        row = await refresh_property_embedding(
            property_id,
            embedder=request.app.state.llm,
            store=request.app.state.store,
        )
    except PropertyNotFoundError as e:
        return error_response(status.HTTP_404_NOT_FOUND, e.message)
    except AdvisorError as e:
        return error_response(e.status_code, e.message)
    except Exception as e:
        logger.error(f"[PropertiesRouter] Embedding refresh failed for {property_id}: {e}")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "サーバーで予期せぬエラーが発生しました。",
        )

    return EmbeddingRefreshResponse(
        message=f"物件「{row.get('name')}」のベクトル情報が正常に更新されました。",
        property_id=str(row["id"]),
    )
