from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.core.config import get_settings
from minrisk.core.errors import (
    ConflictError,
    MinRiskError,
    NotFoundError,
    PartialFailureWarning,
    ValidationError,
)
from minrisk.domain.models import (
    INVITATION_ACCEPTED,
    INVITATION_PENDING,
    ROLE_PRIMARY_ADMIN,
    ROLE_REGULATOR,
    ROLE_SECONDARY_ADMIN,
    ROLE_USER,
    STATUS_APPROVED,
    STATUS_PENDING,
)
from minrisk.persistence.repos import invitations as invitations_repo
from minrisk.persistence.repos import organizations as organizations_repo
from minrisk.persistence.repos import profiles as profiles_repo
from minrisk.persistence.repos import regulators as regulators_repo
from minrisk.providers.identity.base import IdentityProvider, IdentityUser
from minrisk.services.audit import record_event
from minrisk.services.auth.caller import Caller
from minrisk.services.authz.policy import require_admin, require_can_invite
from minrisk.services.ids import is_uuid, require_uuid


logger = logging.getLogger(__name__)

# Roles accepted by the generic admin invite endpoint.
ADMIN_INVITABLE_ROLES = (ROLE_PRIMARY_ADMIN, ROLE_SECONDARY_ADMIN, ROLE_USER)
INVITE_APPROVAL_REASON = "Approved on invitation by administrator"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class InvitationPlan:
    # One status model per operation; see invite_user / invite_primary_admin / invite_regulator.
    operation: str
    email: str
    full_name: str
    role: str
    organization_id: str | None
    final_status: str
    invite_by_email: bool
    invitation_status: str | None
    generate_link: bool
    regulator_ids: list[str] = field(default_factory=list)


def _clean(value: str | None) -> str:
    return (value or "").strip()


def _validate_identity_fields(email: str | None, full_name: str | None) -> tuple[str, str]:
    missing = [name for name, value in (("email", email), ("full_name", full_name)) if not _clean(value)]
    if missing:
        raise ValidationError("Missing required fields", details={"missing": missing})
    cleaned_email = _clean(email).lower()
    if not _EMAIL_RE.match(cleaned_email):
        raise ValidationError("Invalid email address", details={"field": "email"})
    return cleaned_email, _clean(full_name)


async def _ensure_email_available(
    session: AsyncSession, identity: IdentityProvider, email: str
) -> None:
    if await profiles_repo.get_profile_by_email(session, email) is not None:
        raise ConflictError("User with this email already exists")
    if await identity.find_user_by_email(email) is not None:
        raise ConflictError("User with this email already exists")


async def _delete_identity_account(identity: IdentityProvider, user_id: str) -> None:
    # Compensating step; a failure here leaves an orphan account that must be reported.
    try:
        await identity.delete_user(user_id)
    except MinRiskError as exc:
        logger.error("invite_rollback_failed user_id=%s", user_id, exc_info=exc)
    else:
        logger.info("invite_rollback_completed user_id=%s", user_id)


async def _create_identity_account(
    identity: IdentityProvider, caller: Caller, plan: InvitationPlan
) -> IdentityUser:
    metadata: dict[str, Any] = {
        "full_name": plan.full_name,
        "role": plan.role,
        "organization_id": plan.organization_id,
        "invited_by": caller.user_id,
    }
    if plan.invite_by_email:
        app_url = get_settings().app_url
        redirect_to = f"{app_url.rstrip('/')}/auth/callback" if app_url else None
        return await identity.invite_user_by_email(
            email=plan.email, metadata=metadata, redirect_to=redirect_to
        )
    return await identity.create_user(email=plan.email, metadata=metadata, email_confirmed=True)


async def _execute(
    session: AsyncSession,
    identity: IdentityProvider,
    caller: Caller,
    plan: InvitationPlan,
    *,
    request_id: str | None,
) -> dict[str, Any]:
    await _ensure_email_available(session, identity, plan.email)
    account = await _create_identity_account(identity, caller, plan)

    # Profile, status and regulator grants are critical; any failure removes the new account.
    try:
        profile, created = await profiles_repo.reconcile_profile(
            session,
            user_id=account.id,
            email=plan.email,
            full_name=plan.full_name,
            role=plan.role,
            organization_id=plan.organization_id,
        )
        if plan.final_status == STATUS_APPROVED and profile.status != STATUS_APPROVED:
            await profiles_repo.change_status(
                session,
                target=profile,
                new_status=STATUS_APPROVED,
                actor=caller,
                reason=INVITE_APPROVAL_REASON,
                request_id=request_id,
            )
        if plan.regulator_ids:
            await regulators_repo.grant_access(
                session,
                user_id=account.id,
                regulator_ids=plan.regulator_ids,
                granted_by=caller.user_id,
            )
        result: dict[str, Any] = {
            "user_id": profile.id,
            "email": profile.email,
            "full_name": profile.full_name,
            "role": profile.role,
            "organization_id": profile.organization_id,
            "status": profile.status,
        }
        await session.commit()
    except (MinRiskError, SQLAlchemyError):
        await session.rollback()
        logger.warning(
            "invite_profile_failed operation=%s user_id=%s", plan.operation, account.id, exc_info=True
        )
        await _delete_identity_account(identity, account.id)
        raise
    logger.info(
        "invite_profile_reconciled operation=%s user_id=%s created=%s status=%s",
        plan.operation,
        result["user_id"],
        created,
        result["status"],
    )

    warnings: list[dict[str, str]] = []
    result["invite_code"] = None
    if plan.invitation_status is not None:
        try:
            invitation = await invitations_repo.create_invitation(
                session,
                email=plan.email,
                organization_id=plan.organization_id,
                role=plan.role,
                created_by=caller.user_id,
                notes=f"Invited by {caller.email or caller.user_id}",
            )
            if plan.invitation_status == INVITATION_ACCEPTED:
                invitations_repo.mark_accepted(invitation, account.id)
            invite_code = invitation.invite_code
            await session.commit()
            result["invite_code"] = invite_code
        except (MinRiskError, SQLAlchemyError) as exc:
            await session.rollback()
            warnings.append(PartialFailureWarning("invitation_tracking", "could not record invitation").to_dict())
            logger.warning("invite_tracking_failed user_id=%s", account.id, exc_info=exc)

    result["sign_in_link"] = None
    if plan.generate_link:
        try:
            result["sign_in_link"] = await identity.generate_link(email=plan.email, link_type="recovery")
        except MinRiskError as exc:
            warnings.append(PartialFailureWarning("sign_in_link", "could not generate sign-in link").to_dict())
            logger.warning("invite_link_failed user_id=%s", account.id, exc_info=exc)

    await record_event(
        session=session,
        organization_id=plan.organization_id,
        user_id=caller.user_id,
        user_email=caller.email,
        action="invite",
        entity_type="user",
        entity_id=account.id,
        new_values={"email": plan.email, "role": plan.role, "status": result["status"]},
        metadata={"operation": plan.operation, "request_id": request_id, "warnings": warnings},
        commit=True,
    )
    result["warnings"] = warnings
    return result


async def _require_organization(session: AsyncSession, organization_id: str) -> None:
    if await organizations_repo.get_organization(session, organization_id) is None:
        raise NotFoundError("Organization not found", details={"organization_id": organization_id})


async def invite_user(
    session: AsyncSession,
    identity: IdentityProvider,
    caller: Caller,
    *,
    email: str | None,
    full_name: str | None,
    organization_id: str | None,
    role: str | None,
    request_id: str | None = None,
) -> dict[str, Any]:
    require_admin(caller.role)
    missing = [name for name, value in (("organization_id", organization_id), ("role", role)) if not _clean(value)]
    if missing:
        raise ValidationError("Missing required fields", details={"missing": missing})
    target_role = _clean(role)
    if target_role not in ADMIN_INVITABLE_ROLES:
        raise ValidationError(
            "Invalid role",
            details={"role": target_role, "allowed_roles": list(ADMIN_INVITABLE_ROLES)},
        )
    target_org = require_uuid(organization_id, "organization_id")
    require_can_invite(
        caller_role=caller.role,
        caller_organization_id=caller.organization_id,
        target_role=target_role,
        target_organization_id=target_org,
    )
    cleaned_email, cleaned_name = _validate_identity_fields(email, full_name)
    await _require_organization(session, target_org)

    # Primary admins go through the same model whichever endpoint invites them.
    is_primary = target_role == ROLE_PRIMARY_ADMIN
    plan = InvitationPlan(
        operation="invite_user",
        email=cleaned_email,
        full_name=cleaned_name,
        role=target_role,
        organization_id=target_org,
        final_status=STATUS_PENDING if is_primary else STATUS_APPROVED,
        invite_by_email=is_primary,
        invitation_status=INVITATION_PENDING if is_primary else INVITATION_ACCEPTED,
        generate_link=not is_primary,
    )
    return await _execute(session, identity, caller, plan, request_id=request_id)


async def invite_primary_admin(
    session: AsyncSession,
    identity: IdentityProvider,
    caller: Caller,
    *,
    email: str | None,
    full_name: str | None,
    organization_id: str | None,
    request_id: str | None = None,
) -> dict[str, Any]:
    require_admin(caller.role)
    require_can_invite(
        caller_role=caller.role,
        caller_organization_id=caller.organization_id,
        target_role=ROLE_PRIMARY_ADMIN,
        target_organization_id=_clean(organization_id) or None,
    )
    cleaned_email, cleaned_name = _validate_identity_fields(email, full_name)
    if not _clean(organization_id):
        raise ValidationError("Missing required fields", details={"missing": ["organization_id"]})
    target_org = require_uuid(organization_id, "organization_id")
    await _require_organization(session, target_org)

    plan = InvitationPlan(
        operation="invite_primary_admin",
        email=cleaned_email,
        full_name=cleaned_name,
        role=ROLE_PRIMARY_ADMIN,
        organization_id=target_org,
        final_status=STATUS_PENDING,
        invite_by_email=True,
        invitation_status=INVITATION_PENDING,
        generate_link=False,
    )
    return await _execute(session, identity, caller, plan, request_id=request_id)


async def invite_regulator(
    session: AsyncSession,
    identity: IdentityProvider,
    caller: Caller,
    *,
    email: str | None,
    full_name: str | None,
    regulator_ids: list[str] | None,
    request_id: str | None = None,
) -> dict[str, Any]:
    require_admin(caller.role)
    require_can_invite(
        caller_role=caller.role,
        caller_organization_id=caller.organization_id,
        target_role=ROLE_REGULATOR,
        target_organization_id=None,
    )
    cleaned_email, cleaned_name = _validate_identity_fields(email, full_name)
    requested = [value.strip() for value in (regulator_ids or []) if value and value.strip()]
    if not requested:
        raise ValidationError(
            "At least one regulator must be selected", details={"missing": ["regulator_ids"]}
        )
    requested = list(dict.fromkeys(requested))
    regulators = await regulators_repo.get_regulators(session, [value for value in requested if is_uuid(value)])
    found = {regulator.id for regulator in regulators}
    # Capture names now; a rolled back follow-up step expires loaded rows.
    regulator_names = [regulator.name for regulator in regulators]
    unknown = [regulator_id for regulator_id in requested if regulator_id not in found]
    if unknown:
        raise NotFoundError("One or more regulator IDs are invalid", details={"invalid_ids": unknown})

    plan = InvitationPlan(
        operation="invite_regulator",
        email=cleaned_email,
        full_name=cleaned_name,
        role=ROLE_REGULATOR,
        organization_id=None,
        final_status=STATUS_APPROVED,
        invite_by_email=False,
        invitation_status=None,
        generate_link=True,
        regulator_ids=requested,
    )
    result = await _execute(session, identity, caller, plan, request_id=request_id)
    result["regulators"] = regulator_names
    return result
