"""RFC 7807 Problem Details helpers."""
from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .domain_errors import DomainError

logger = logging.getLogger(__name__)

PROBLEM_TYPE_BASE = "https://api.workmint.local/problems"


def _problem_response(
    *,
    status: int,
    code: str,
    message: str,
    details: object | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    try:
        title = HTTPStatus(status).phrase
    except ValueError:
        title = "Domain Error"

    payload: dict[str, object] = {
        "type": f"{PROBLEM_TYPE_BASE}/{code.lower()}",
        "title": title,
        "status": status,
        "detail": message,
        "code": code,
        "success": False,
        "message": message,
    }
    if details is not None:
        payload["details"] = details

    return JSONResponse(
        status_code=status,
        content=payload,
        media_type="application/problem+json",
        headers=headers,
    )


def build_problem_details_response(exc: DomainError) -> JSONResponse:
    """Render DomainError as RFC 7807 payload with stable domain code."""
    headers = None
    if exc.http_status == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    elif exc.http_status == 429 and exc.details and "retry_after" in exc.details:
        headers = {"Retry-After": str(exc.details["retry_after"])}
    return _problem_response(
        status=exc.http_status,
        code=exc.code,
        message=exc.message,
        details=exc.details,
        headers=headers,
    )


async def domain_error_handler(_: Request, exc: DomainError) -> JSONResponse:
    return build_problem_details_response(exc)


async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed or missing fields are a 400 ValidationFailure, not FastAPI's 422."""
    errors = [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    return _problem_response(
        status=400,
        code="VALIDATION_FAILED",
        message="Validation failed",
        details={"errors": errors},
    )


async def http_exception_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else HTTPStatus(exc.status_code).phrase
    return _problem_response(
        status=exc.status_code,
        code=f"HTTP_{exc.status_code}",
        message=message,
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unexpected failures: generic text in production, exception text in development."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = "Internal server error" if settings.is_production else f"{type(exc).__name__}: {exc}"
    return _problem_response(status=500, code="INTERNAL_ERROR", message=message)
