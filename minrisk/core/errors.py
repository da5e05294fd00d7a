from __future__ import annotations

from typing import Any


class MinRiskError(Exception):
    """Base error for MinRisk handlers."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ProviderConfigError(MinRiskError):
    """Missing or invalid provider configuration."""

    code = "PROVIDER_CONFIG_ERROR"


class AuthenticationError(MinRiskError):
    """Missing or invalid caller credential."""

    code = "AUTH_UNAUTHORIZED"


class AuthorizationError(MinRiskError):
    """Caller role or organization does not permit the operation."""

    code = "AUTH_FORBIDDEN"


class ValidationError(MinRiskError):
    """Missing or malformed input fields."""

    code = "VALIDATION_ERROR"


class ConflictError(MinRiskError):
    """Target resource already exists."""

    code = "CONFLICT"


class NotFoundError(MinRiskError):
    """Referenced organization, regulator, incident, risk or user is absent."""

    code = "NOT_FOUND"


class UpstreamError(MinRiskError):
    """Identity provider or LLM provider failure."""

    code = "UPSTREAM_ERROR"


class UpstreamTimeoutError(UpstreamError):
    """External call exceeded its time bound."""

    code = "UPSTREAM_TIMEOUT"


class ParseError(MinRiskError):
    """LLM response could not be recovered as JSON."""

    code = "PARSE_ERROR"


class PartialFailureWarning(MinRiskError):
    """A non-critical step failed after the primary operation succeeded."""

    code = "PARTIAL_FAILURE"

    def __init__(self, step: str, message: str) -> None:
        super().__init__(message, details={"step": step})
        self.step = step

    def to_dict(self) -> dict[str, str]:
        return {"step": self.step, "message": self.message}
