from __future__ import annotations

from typing import Any

from minrisk.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"data": None, "error": message, "code": code}
    if details:
        payload["details"] = details
    return payload


def _error_response(description: str, *, code: str, message: str) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": _error_example(code=code, message=message)}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _error_response("Validation error", code="VALIDATION_ERROR", message="Missing required fields"),
    401: _error_response("Unauthorized", code="AUTH_UNAUTHORIZED", message="Missing authorization header"),
    403: _error_response("Forbidden", code="AUTH_FORBIDDEN", message="Admin access required"),
    404: _error_response("Not found", code="NOT_FOUND", message="Organization not found"),
    409: _error_response("Conflict", code="CONFLICT", message="User with this email already exists"),
    500: _error_response("Internal error", code="INTERNAL_ERROR", message="Internal server error"),
    502: _error_response("Upstream failure", code="UPSTREAM_ERROR", message="Identity provider error"),
    504: _error_response("Upstream timeout", code="UPSTREAM_TIMEOUT", message="Identity provider timed out"),
}

# AI routes only answer non-200 for credential failures.
AI_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    401: DEFAULT_ERROR_RESPONSES[401],
}
