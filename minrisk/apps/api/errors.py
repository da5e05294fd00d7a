from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from minrisk.apps.api.response import (
    ai_failure_response,
    cors_headers,
    error_response,
    get_request_id,
    is_ai_request,
)
from minrisk.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    MinRiskError,
    NotFoundError,
    ParseError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "AUTH_UNAUTHORIZED",
    403: "AUTH_FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    500: "INTERNAL_ERROR",
    502: "UPSTREAM_ERROR",
    504: "UPSTREAM_TIMEOUT",
}

# Most specific class first; UpstreamTimeoutError subclasses UpstreamError.
_STATUS_BY_ERROR: tuple[tuple[type[MinRiskError], int], ...] = (
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (UpstreamTimeoutError, 504),
    (UpstreamError, 502),
    (ParseError, 502),
)


def status_for_error(exc: MinRiskError) -> int:
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code
    return 500


def _default_code(status_code: int) -> str:
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _default_code(status_code), detail, None
    return _default_code(status_code), "Request failed", None


def _ai_failure(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(content=ai_failure_response(exc), status_code=200)


async def minrisk_error_handler(request: Request, exc: MinRiskError) -> JSONResponse:
    # AI routes keep 200 for everything except a missing or invalid credential.
    if is_ai_request(request) and not isinstance(exc, AuthenticationError):
        return _ai_failure(request, exc)
    status_code = status_for_error(exc)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    if status_code >= 500:
        logger.warning(
            "request_failed code=%s status=%s request_id=%s path=%s",
            exc.code,
            status_code,
            get_request_id(request),
            request.url.path,
        )
    payload = error_response(code=exc.code, message=exc.message, details=exc.details)
    return JSONResponse(content=payload, status_code=status_code, headers=headers)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code, message, details = _split_detail(exc.detail, exc.status_code)
    payload = error_response(code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=exc.headers)


async def starlette_http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    code, message, details = _split_detail(exc.detail, exc.status_code)
    payload = error_response(code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Malformed bodies are validation failures (400), not FastAPI's default 422.
    if is_ai_request(request):
        return _ai_failure(request, ValidationError("Invalid request body"))
    payload = error_response(
        code="VALIDATION_ERROR",
        message="Invalid request body",
        details={
            "errors": [
                {"loc": [str(part) for part in error.get("loc", ())], "msg": str(error.get("msg", ""))}
                for error in exc.errors()
            ]
        },
    )
    return JSONResponse(content=payload, status_code=400)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Runs outside the HTTP middleware stack, so CORS headers are attached here.
    logger.error(
        "request_unhandled_error request_id=%s path=%s",
        get_request_id(request),
        request.url.path,
        exc_info=exc,
    )
    headers = cors_headers()
    if is_ai_request(request):
        return JSONResponse(content=ai_failure_response(exc), status_code=200, headers=headers)
    payload = error_response(code="INTERNAL_ERROR", message="Internal server error")
    return JSONResponse(content=payload, status_code=500, headers=headers)
