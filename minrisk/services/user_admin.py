from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.core.errors import NotFoundError, ValidationError
from minrisk.domain.models import (
    STATUS_APPROVED,
    STATUS_REJECTED,
    USER_ROLES,
    USER_STATUSES,
    UserProfile,
)
from minrisk.persistence.repos import invitations as invitations_repo
from minrisk.persistence.repos import profiles as profiles_repo
from minrisk.services.audit import record_event
from minrisk.services.auth.caller import Caller
from minrisk.services.authz.policy import (
    require_admin,
    require_assignable_role,
    require_can_manage,
    require_organization_access,
)
from minrisk.services.ids import require_uuid


logger = logging.getLogger(__name__)

MANAGE_ACTIONS = ("approve", "reject", "update_role", "update_status", "get_by_id")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_profile(profile: UserProfile) -> dict[str, Any]:
    return {
        "id": profile.id,
        "email": profile.email,
        "full_name": profile.full_name,
        "role": profile.role,
        "status": profile.status,
        "organization_id": profile.organization_id,
        "approved_by": profile.approved_by,
        "approved_at": _iso(profile.approved_at),
        "created_at": _iso(profile.created_at),
        "updated_at": _iso(profile.updated_at),
    }


async def list_users(
    session: AsyncSession,
    caller: Caller,
    *,
    organization_id: str | None,
    filter_pending: bool = False,
) -> list[dict[str, Any]]:
    require_admin(caller.role)
    target_org = require_uuid(organization_id, "organization_id")
    require_organization_access(
        caller_role=caller.role,
        caller_organization_id=caller.organization_id,
        organization_id=target_org,
    )
    profiles = await profiles_repo.list_profiles(session, target_org, pending_only=filter_pending)
    return [serialize_profile(profile) for profile in profiles]


async def _mark_invitation_accepted(session: AsyncSession, profile: dict[str, Any]) -> None:
    # Approval closes the pending invitation for the same email and organization.
    if not profile.get("email"):
        return
    try:
        invitation = await invitations_repo.get_pending_for_email(
            session, profile["email"], profile.get("organization_id")
        )
        if invitation is None:
            return
        invitations_repo.mark_accepted(invitation, profile["id"])
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning("invitation_accept_failed user_id=%s", profile["id"], exc_info=exc)


async def manage_user(
    session: AsyncSession,
    caller: Caller,
    *,
    action: str | None,
    user_id: str | None,
    new_role: str | None = None,
    new_status: str | None = None,
    reason: str | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    require_admin(caller.role)
    if not action:
        raise ValidationError("Missing required fields", details={"missing": ["action"]})
    if action not in MANAGE_ACTIONS:
        raise ValidationError(f"Unknown action: {action}", details={"allowed_actions": list(MANAGE_ACTIONS)})
    target_id = require_uuid(user_id, "user_id")

    target = await profiles_repo.get_profile(session, target_id)
    if target is None:
        raise NotFoundError("Target user not found")
    require_organization_access(
        caller_role=caller.role,
        caller_organization_id=caller.organization_id,
        organization_id=target.organization_id,
        message="Cannot manage users from different organization",
    )
    require_can_manage(caller.role, target.role)

    if action == "get_by_id":
        return serialize_profile(target)

    before = {"role": target.role, "status": target.status}
    if action == "update_role":
        if not new_role:
            raise ValidationError("new_role is required for update_role action")
        if new_role not in USER_ROLES:
            raise ValidationError("Invalid role", details={"role": new_role})
        require_assignable_role(caller.role, new_role)
        target.role = new_role
        target.updated_at = datetime.now(timezone.utc)
        await session.flush()
    else:
        if action == "approve":
            status = STATUS_APPROVED
        elif action == "reject":
            status = STATUS_REJECTED
        else:
            if not new_status:
                raise ValidationError("new_status is required for update_status action")
            if new_status not in USER_STATUSES:
                raise ValidationError("Invalid status", details={"status": new_status})
            status = new_status
        await profiles_repo.change_status(
            session,
            target=target,
            new_status=status,
            actor=caller,
            reason=reason,
            request_id=request_id,
        )

    data = serialize_profile(target)
    await session.commit()
    logger.info(
        "user_managed action=%s user_id=%s actor_id=%s", action, target_id, caller.user_id
    )

    if action in {"approve", "update_status"} and data["status"] == STATUS_APPROVED:
        await _mark_invitation_accepted(session, data)
    await record_event(
        session=session,
        organization_id=data["organization_id"],
        user_id=caller.user_id,
        user_email=caller.email,
        action="role_change" if action == "update_role" else action,
        entity_type="user",
        entity_id=target_id,
        old_values=before,
        new_values={"role": data["role"], "status": data["status"]},
        metadata={"request_id": request_id, "reason": reason},
        commit=True,
    )
    return data
