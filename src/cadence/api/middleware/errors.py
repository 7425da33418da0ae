"""
Error handlers that turn engine errors into RFC 7807 responses.

The HTTP status follows the error category: missing rules and data
sources are 404, configuration problems 400, infrastructure and
credential failures 503, everything else 500.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from cadence.api.schemas import ErrorDetail, ProblemDetail
from cadence.core.errors import CadenceError, ErrorCategory, InvalidActionConfigError
from cadence.core.logging import get_logger

logger = get_logger(__name__)

CATEGORY_TO_STATUS: dict[ErrorCategory, int] = {
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFIG: 400,
    ErrorCategory.TARGET: 422,
    ErrorCategory.INFRASTRUCTURE: 503,
    ErrorCategory.AUTH: 503,
    ErrorCategory.STORAGE: 500,
    ErrorCategory.INTERNAL: 500,
    ErrorCategory.UNKNOWN: 500,
}

STATUS_TITLES: dict[int, str] = {
    400: "Invalid configuration",
    404: "Not found",
    422: "Unprocessable request",
    500: "Internal server error",
    503: "Upstream unavailable",
}


def problem_response(
    *,
    status: int,
    title: str,
    detail: str = "",
    instance: str = "",
    errors: list[ErrorDetail] | None = None,
) -> JSONResponse:
    """Build an RFC 7807 JSON response."""
    body = ProblemDetail(
        title=title,
        status=status,
        detail=detail,
        instance=instance,
        errors=errors or [],
    )
    return JSONResponse(
        status_code=status,
        content=body.model_dump(),
        media_type="application/problem+json",
    )


async def cadence_error_handler(request: Request, exc: CadenceError) -> JSONResponse:
    status = CATEGORY_TO_STATUS.get(exc.category, 500)
    errors: list[ErrorDetail] = []
    if isinstance(exc, InvalidActionConfigError):
        errors = [
            ErrorDetail(code=exc.category.value, message=e["message"], field=e.get("field"))
            for e in exc.errors
        ]
    if status >= 500:
        logger.error("api.request_failed", path=request.url.path, **exc.to_dict())
    return problem_response(
        status=status,
        title=STATUS_TITLES.get(status, "Error"),
        detail=exc.message,
        instance=str(request.url.path),
        errors=errors,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all so unexpected errors still return problem+json."""
    logger.error("api.unhandled_exception", path=request.url.path, error=str(exc), exc_info=exc)
    settings = getattr(request.app.state, "settings", None)
    detail = str(exc) if settings is not None and settings.debug else "An unexpected error occurred"
    return problem_response(
        status=500,
        title="Internal server error",
        detail=detail,
        instance=str(request.url.path),
    )
