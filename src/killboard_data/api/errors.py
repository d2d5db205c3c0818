"""
Consistent error responses for the sync trigger API.

Every error renders as ``{"error": {"code": ..., "message": ...}}``.
"""

from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse


class APIError(Exception):
    """Base exception for API errors with an explicit status and code."""

    def __init__(
        self,
        message: str,
        code: str = "API_ERROR",
        status_code: int = 400,
        detail: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.detail = detail


class UnauthorizedError(APIError):
    def __init__(self, message: str = "Missing or invalid sync secret"):
        super().__init__(message, code="UNAUTHORIZED", status_code=401)


class RunLockedAPIError(APIError):
    def __init__(self, message: str):
        super().__init__(message, code="RUN_LOCKED", status_code=409)


def error_body(code: str, message: str, detail: Optional[Any] = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if detail is not None:
        error["detail"] = detail
    return {"error": error}


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Render an APIError with its status code."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.detail),
    )
