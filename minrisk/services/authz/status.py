from __future__ import annotations

from minrisk.core.errors import ValidationError
from minrisk.domain.models import (
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_PENDING_INVITE,
    STATUS_REJECTED,
    STATUS_SUSPENDED,
)


ALLOWED_TRANSITIONS: dict[str | None, frozenset[str]] = {
    None: frozenset({STATUS_PENDING}),
    STATUS_PENDING: frozenset({STATUS_APPROVED, STATUS_REJECTED}),
    STATUS_PENDING_INVITE: frozenset({STATUS_APPROVED, STATUS_REJECTED}),
    STATUS_REJECTED: frozenset({STATUS_PENDING, STATUS_APPROVED}),
    STATUS_APPROVED: frozenset({STATUS_SUSPENDED}),
    STATUS_SUSPENDED: frozenset({STATUS_APPROVED}),
}

_TRANSITION_TYPES: dict[tuple[str | None, str], str] = {
    (STATUS_PENDING, STATUS_APPROVED): "onboarding_approval",
    (STATUS_PENDING, STATUS_REJECTED): "onboarding_rejection",
    (STATUS_PENDING_INVITE, STATUS_APPROVED): "onboarding_approval",
    (STATUS_PENDING_INVITE, STATUS_REJECTED): "onboarding_rejection",
    (STATUS_REJECTED, STATUS_PENDING): "re_application",
    (STATUS_REJECTED, STATUS_APPROVED): "override",
    (STATUS_APPROVED, STATUS_SUSPENDED): "disciplinary_suspension",
    (STATUS_SUSPENDED, STATUS_APPROVED): "reinstatement",
}

REASON_REQUIRED_TYPES = frozenset({"override", "disciplinary_suspension"})
DEFAULT_REASON = "No reason provided"


def transition_type(from_status: str | None, to_status: str) -> str:
    return _TRANSITION_TYPES.get((from_status, to_status), "unknown")


def validate_transition(from_status: str | None, to_status: str, reason: str | None) -> tuple[str, str]:
    # Return (transition_type, effective_reason) or raise for disallowed moves.
    allowed = ALLOWED_TRANSITIONS.get(from_status, frozenset())
    if to_status not in allowed:
        raise ValidationError(
            "Invalid status transition",
            details={
                "from_status": from_status,
                "to_status": to_status,
                "allowed_transitions": sorted(allowed),
            },
        )
    kind = transition_type(from_status, to_status)
    cleaned = (reason or "").strip()
    if kind in REASON_REQUIRED_TYPES and not cleaned:
        raise ValidationError(
            "Reason required for this transition",
            details={"transition_type": kind},
        )
    return kind, cleaned or DEFAULT_REASON
