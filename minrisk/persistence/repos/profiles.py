from __future__ import annotations

from datetime import datetime, timezone
import json
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.core.config import get_settings
from minrisk.core.errors import AuthenticationError, AuthorizationError, NotFoundError, ValidationError
from minrisk.domain.models import (
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_PENDING_INVITE,
    UserProfile,
    UserStatusTransition,
)
from minrisk.services.authz.policy import require_can_manage, require_organization_access
from minrisk.services.authz.status import validate_transition

if TYPE_CHECKING:
    from minrisk.services.auth.caller import Caller


# Error codes returned by change_user_status() mapped onto the local taxonomy.
_PROCEDURE_ERRORS: dict[str, type[Exception]] = {
    "AUTH_REQUIRED": AuthenticationError,
    "ACTOR_NOT_FOUND": AuthorizationError,
    "ADMIN_REQUIRED": AuthorizationError,
    "ORG_MISMATCH": AuthorizationError,
    "RBAC_VIOLATION": AuthorizationError,
    "SELF_MODIFY_FORBIDDEN": AuthorizationError,
    "USER_NOT_FOUND": NotFoundError,
    "INVALID_TRANSITION": ValidationError,
    "REASON_REQUIRED": ValidationError,
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_uuid_or_none(value: str | None) -> str | None:
    # The procedure takes a UUID request id; free-form client ids are dropped.
    if not value:
        return None
    try:
        return str(UUID(value))
    except ValueError:
        return None


async def get_profile(session: AsyncSession, user_id: str) -> UserProfile | None:
    result = await session.execute(select(UserProfile).where(UserProfile.id == user_id))
    return result.scalar_one_or_none()


async def get_profile_by_email(session: AsyncSession, email: str) -> UserProfile | None:
    result = await session.execute(
        select(UserProfile).where(func.lower(UserProfile.email) == email.strip().lower()).limit(1)
    )
    return result.scalar_one_or_none()


async def get_profile_by_clerk_id(session: AsyncSession, clerk_id: str) -> UserProfile | None:
    result = await session.execute(select(UserProfile).where(UserProfile.clerk_id == clerk_id))
    return result.scalar_one_or_none()


async def get_pending_invite_by_email(session: AsyncSession, email: str) -> UserProfile | None:
    result = await session.execute(
        select(UserProfile)
        .where(
            func.lower(UserProfile.email) == email.strip().lower(),
            UserProfile.status == STATUS_PENDING_INVITE,
        )
        .order_by(UserProfile.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_profiles(
    session: AsyncSession, organization_id: str, *, pending_only: bool = False
) -> list[UserProfile]:
    stmt = select(UserProfile).where(UserProfile.organization_id == organization_id)
    if pending_only:
        stmt = stmt.where(UserProfile.status == STATUS_PENDING)
    result = await session.execute(stmt.order_by(UserProfile.created_at.desc(), UserProfile.id))
    return list(result.scalars().all())


async def get_profiles_in_organization(
    session: AsyncSession, user_ids: list[str], organization_id: str | None
) -> list[UserProfile]:
    # The organization predicate is the security boundary for privileged reads.
    if not user_ids or organization_id is None:
        return []
    result = await session.execute(
        select(UserProfile).where(
            UserProfile.id.in_(user_ids),
            UserProfile.organization_id == organization_id,
        )
    )
    return list(result.scalars().all())


async def reconcile_profile(
    session: AsyncSession,
    *,
    user_id: str,
    email: str,
    full_name: str,
    role: str,
    organization_id: str | None,
) -> tuple[UserProfile, bool]:
    # A signup trigger may already have created the row; update it instead of inserting.
    profile = await get_profile(session, user_id)
    if profile is not None:
        profile.email = email
        profile.full_name = full_name
        profile.role = role
        profile.organization_id = organization_id
        profile.updated_at = _utc_now()
        await session.flush()
        return profile, False

    profile = UserProfile(
        id=user_id,
        email=email,
        full_name=full_name,
        role=role,
        organization_id=organization_id,
        status=STATUS_PENDING,
    )
    session.add(profile)
    await session.flush()
    return profile, True


async def _set_actor_claims(session: AsyncSession, actor_id: str) -> None:
    # Procedures derive the actor from auth.uid(); scope the claims to this transaction.
    claims = json.dumps({"sub": actor_id, "role": "authenticated"})
    await session.execute(
        text(
            "select set_config('request.jwt.claims', :claims, true), "
            "set_config('request.jwt.claim.sub', :sub, true)"
        ),
        {"claims": claims, "sub": actor_id},
    )


async def _call_change_user_status(
    session: AsyncSession,
    *,
    target: UserProfile,
    new_status: str,
    actor: Caller,
    reason: str | None,
    request_id: str | None,
) -> dict[str, Any]:
    await _set_actor_claims(session, actor.user_id)
    result = await session.execute(
        text(
            "select change_user_status(cast(:user_id as uuid), :new_status, :reason, "
            "cast(:request_id as uuid))"
        ),
        {
            "user_id": target.id,
            "new_status": new_status,
            "reason": reason,
            "request_id": _as_uuid_or_none(request_id),
        },
    )
    payload = result.scalar_one()
    if isinstance(payload, str):
        payload = json.loads(payload)
    if not payload.get("success"):
        error_cls = _PROCEDURE_ERRORS.get(str(payload.get("code")), ValidationError)
        raise error_cls(
            str(payload.get("error") or "Status change rejected"),
            details=payload.get("details"),
        )
    # The procedure updated the row server-side; reload the mapped instance.
    await session.refresh(target)
    return payload


async def _apply_status_locally(
    session: AsyncSession,
    *,
    target: UserProfile,
    new_status: str,
    actor: Caller,
    reason: str | None,
    request_id: str | None,
) -> dict[str, Any]:
    # Same checks and audit row as change_user_status(), for stores without the procedure.
    require_organization_access(
        caller_role=actor.role,
        caller_organization_id=actor.organization_id,
        organization_id=target.organization_id,
        message="You can only manage users in your own organization",
    )
    require_can_manage(actor.role, target.role)
    if actor.user_id == target.id:
        raise AuthorizationError("You cannot change your own status")
    from_status = target.status
    kind, effective_reason = validate_transition(from_status, new_status, reason)

    now = _utc_now()
    target.status = new_status
    target.updated_at = now
    if new_status == STATUS_APPROVED:
        target.approved_at = now
        target.approved_by = actor.user_id
    session.add(
        UserStatusTransition(
            organization_id=target.organization_id,
            user_id=target.id,
            from_status=from_status,
            to_status=new_status,
            transition_type=kind,
            actor_user_id=actor.user_id,
            actor_role=actor.role,
            actor_email=actor.email,
            reason=effective_reason,
            request_id=request_id,
        )
    )
    await session.flush()
    return {
        "success": True,
        "user_id": target.id,
        "email": target.email,
        "from_status": from_status,
        "to_status": new_status,
        "transition_type": kind,
        "changed_by": actor.email,
    }


async def change_status(
    session: AsyncSession,
    *,
    target: UserProfile,
    new_status: str,
    actor: Caller,
    reason: str | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    # Status is only ever moved through the sanctioned transition path.
    if get_settings().db_procedures_enabled:
        return await _call_change_user_status(
            session,
            target=target,
            new_status=new_status,
            actor=actor,
            reason=reason,
            request_id=request_id,
        )
    return await _apply_status_locally(
        session,
        target=target,
        new_status=new_status,
        actor=actor,
        reason=reason,
        request_id=request_id,
    )


async def apply_system_status(
    session: AsyncSession,
    *,
    target: UserProfile,
    new_status: str,
    reason: str,
) -> str:
    # Provider-driven changes have no admin actor; the transition row records the source instead.
    from_status = target.status
    kind, effective_reason = validate_transition(from_status, new_status, reason)
    now = _utc_now()
    target.status = new_status
    target.updated_at = now
    if new_status == STATUS_APPROVED:
        target.approved_at = now
    session.add(
        UserStatusTransition(
            organization_id=target.organization_id,
            user_id=target.id,
            from_status=from_status,
            to_status=new_status,
            transition_type=kind,
            actor_user_id=None,
            actor_role="system",
            actor_email=None,
            reason=effective_reason,
        )
    )
    await session.flush()
    return kind
