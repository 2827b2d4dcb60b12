"""
PropLedger — shared router responses.
"""

from typing import Optional

from fastapi.responses import JSONResponse


def error_response(
    status_code: int, message: str, request_id: Optional[str] = None,
) -> JSONResponse:
    """Every router error body is {"error": "<message>"}."""
    headers = {"X-Request-ID": request_id} if request_id else None
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)
