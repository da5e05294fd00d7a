from __future__ import annotations

import pytest

from minrisk.core.errors import ValidationError
from minrisk.services.authz.status import DEFAULT_REASON, validate_transition


@pytest.mark.parametrize(
    ("from_status", "to_status", "kind"),
    [
        ("pending", "approved", "onboarding_approval"),
        ("pending", "rejected", "onboarding_rejection"),
        ("pending_invite", "approved", "onboarding_approval"),
        ("rejected", "pending", "re_application"),
        ("suspended", "approved", "reinstatement"),
    ],
)
def test_allowed_transitions_without_reason(from_status: str, to_status: str, kind: str) -> None:
    assert validate_transition(from_status, to_status, None) == (kind, DEFAULT_REASON)


@pytest.mark.parametrize(
    ("from_status", "to_status"),
    [
        ("approved", "pending"),
        ("approved", "rejected"),
        ("suspended", "rejected"),
        ("pending", "suspended"),
        ("pending", "pending"),
    ],
)
def test_disallowed_transitions(from_status: str, to_status: str) -> None:
    with pytest.raises(ValidationError, match="Invalid status transition") as excinfo:
        validate_transition(from_status, to_status, "because")
    assert excinfo.value.details["from_status"] == from_status


def test_override_and_suspension_require_reason() -> None:
    with pytest.raises(ValidationError, match="Reason required"):
        validate_transition("rejected", "approved", "   ")
    with pytest.raises(ValidationError, match="Reason required"):
        validate_transition("approved", "suspended", None)
    assert validate_transition("approved", "suspended", " policy breach ") == (
        "disciplinary_suspension",
        "policy breach",
    )
