from __future__ import annotations

from minrisk.core.errors import AuthorizationError
from minrisk.domain.models import (
    ROLE_PRIMARY_ADMIN,
    ROLE_REGULATOR,
    ROLE_SECONDARY_ADMIN,
    ROLE_SUPER_ADMIN,
    ROLE_USER,
)


ROLE_LEVELS: dict[str, int] = {
    ROLE_SUPER_ADMIN: 4,
    ROLE_PRIMARY_ADMIN: 3,
    ROLE_SECONDARY_ADMIN: 2,
    ROLE_USER: 1,
    ROLE_REGULATOR: 0,
}

ADMIN_ROLES = frozenset({ROLE_SUPER_ADMIN, ROLE_PRIMARY_ADMIN, ROLE_SECONDARY_ADMIN})

# Caller role -> roles it may invite. Only super_admin may target any organization.
INVITE_MATRIX: dict[str, frozenset[str]] = {
    ROLE_SUPER_ADMIN: frozenset({ROLE_PRIMARY_ADMIN, ROLE_REGULATOR, ROLE_SECONDARY_ADMIN, ROLE_USER}),
    ROLE_PRIMARY_ADMIN: frozenset({ROLE_SECONDARY_ADMIN, ROLE_USER}),
    ROLE_SECONDARY_ADMIN: frozenset({ROLE_USER}),
}
CROSS_ORG_ROLES = frozenset({ROLE_SUPER_ADMIN})


def role_level(role: str | None) -> int:
    # Unknown roles rank below every known role.
    if role is None:
        return -1
    return ROLE_LEVELS.get(role, -1)


def is_admin(role: str | None) -> bool:
    return role in ADMIN_ROLES


def is_super_admin(role: str | None) -> bool:
    return role == ROLE_SUPER_ADMIN


def invitable_roles(caller_role: str | None) -> frozenset[str]:
    return INVITE_MATRIX.get(caller_role or "", frozenset())


def can_invite(
    *,
    caller_role: str | None,
    caller_organization_id: str | None,
    target_role: str,
    target_organization_id: str | None,
) -> bool:
    if target_role not in invitable_roles(caller_role):
        return False
    if caller_role in CROSS_ORG_ROLES:
        return True
    # Organization-bound callers need a concrete, matching organization.
    return caller_organization_id is not None and caller_organization_id == target_organization_id


def require_can_invite(
    *,
    caller_role: str | None,
    caller_organization_id: str | None,
    target_role: str,
    target_organization_id: str | None,
) -> None:
    if target_role not in invitable_roles(caller_role):
        if not invitable_roles(caller_role):
            raise AuthorizationError("Admin access required")
        raise AuthorizationError(
            f"Role {caller_role} cannot invite {target_role} users",
            details={"your_role": caller_role, "attempted_role": target_role},
        )
    if not can_invite(
        caller_role=caller_role,
        caller_organization_id=caller_organization_id,
        target_role=target_role,
        target_organization_id=target_organization_id,
    ):
        raise AuthorizationError("Cannot invite users to different organization")


def can_access_organization(
    *, caller_role: str | None, caller_organization_id: str | None, organization_id: str | None
) -> bool:
    if caller_role in CROSS_ORG_ROLES:
        return True
    return caller_organization_id is not None and caller_organization_id == organization_id


def require_admin(role: str | None) -> None:
    if not is_admin(role):
        raise AuthorizationError("Admin access required")


def require_organization_access(
    *,
    caller_role: str | None,
    caller_organization_id: str | None,
    organization_id: str | None,
    message: str = "Cannot access users from different organization",
) -> None:
    if not can_access_organization(
        caller_role=caller_role,
        caller_organization_id=caller_organization_id,
        organization_id=organization_id,
    ):
        raise AuthorizationError(message)


def can_manage(actor_role: str | None, target_role: str | None) -> bool:
    # Managing requires strictly higher privilege than the target.
    return role_level(actor_role) > role_level(target_role)


def require_can_manage(actor_role: str | None, target_role: str | None) -> None:
    if not can_manage(actor_role, target_role):
        raise AuthorizationError(
            "You cannot manage users with equal or higher privileges than your own",
            details={"your_role": actor_role, "target_role": target_role},
        )


def require_assignable_role(actor_role: str | None, new_role: str) -> None:
    # Roles can only be granted strictly below the granting admin.
    if role_level(new_role) >= role_level(actor_role):
        raise AuthorizationError(
            "You can only assign roles with lower privileges than your own",
            details={"your_role": actor_role, "attempted_role": new_role},
        )
