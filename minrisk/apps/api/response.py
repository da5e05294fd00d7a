from __future__ import annotations

from typing import Any, Generic, TypeVar
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel

from minrisk.core.config import get_settings
from minrisk.core.errors import MinRiskError


API_VERSION = "v1"
AI_PATH_PREFIX = f"/{API_VERSION}/ai/"

T = TypeVar("T")


class SuccessEnvelope(BaseModel, Generic[T]):
    # Successful handlers answer {data, error: null}.
    data: T
    error: None = None


class ErrorEnvelope(BaseModel):
    # Failed handlers answer {data: null, error, code} with optional details.
    data: None = None
    error: str
    code: str
    details: dict[str, Any] | None = None


class AIFailure(BaseModel):
    # AI handlers report failures in a 200 body so clients share one success path.
    success: bool = False
    error: str
    code: str
    technical_details: str | None = None


def cors_headers() -> dict[str, str]:
    settings = get_settings()
    return {
        "Access-Control-Allow-Origin": settings.cors_allow_origin,
        "Access-Control-Allow-Headers": (
            f"authorization, x-client-info, apikey, content-type, {settings.auth_custom_token_header}"
        ),
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
        "Access-Control-Max-Age": "86400",
    }


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id
    header_request_id = request.headers.get("X-Request-Id")
    if header_request_id:
        request.state.request_id = header_request_id
        return header_request_id
    generated = str(uuid4())
    request.state.request_id = generated
    return generated


def is_ai_request(request: Request) -> bool:
    return request.url.path.startswith(AI_PATH_PREFIX)


def success_response(*, data: Any) -> dict[str, Any]:
    return {"data": data, "error": None}


def error_response(
    *,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    payload = ErrorEnvelope(error=message, code=code, details=details)
    return payload.model_dump(exclude_none=True) | {"data": None}


def ai_failure_response(exc: Exception) -> dict[str, Any]:
    # Only the exception class and its domain message reach the client.
    if isinstance(exc, MinRiskError):
        failure = AIFailure(
            error=exc.message,
            code=exc.code,
            technical_details=f"{type(exc).__name__}: {exc.message}",
        )
    else:
        failure = AIFailure(
            error="Internal server error",
            code="INTERNAL_ERROR",
            technical_details=type(exc).__name__,
        )
    return failure.model_dump()
