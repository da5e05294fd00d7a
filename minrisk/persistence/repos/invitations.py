from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json
import secrets
import string

from sqlalchemy import func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.core.config import get_settings
from minrisk.core.errors import UpstreamError
from minrisk.domain.models import (
    INVITATION_ACCEPTED,
    INVITATION_EXPIRED,
    INVITATION_PENDING,
    UserInvitation,
)


INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = 8


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


async def get_by_code(session: AsyncSession, invite_code: str) -> UserInvitation | None:
    result = await session.execute(
        select(UserInvitation).where(UserInvitation.invite_code == invite_code)
    )
    return result.scalar_one_or_none()


async def get_pending_for_email(
    session: AsyncSession, email: str, organization_id: str | None
) -> UserInvitation | None:
    # One active invitation per (email, organization); newest wins if the convention slipped.
    stmt = select(UserInvitation).where(
        func.lower(UserInvitation.email) == email.strip().lower(),
        UserInvitation.status == INVITATION_PENDING,
    )
    if organization_id is None:
        stmt = stmt.where(UserInvitation.organization_id.is_(None))
    else:
        stmt = stmt.where(UserInvitation.organization_id == organization_id)
    result = await session.execute(stmt.order_by(UserInvitation.created_at.desc()).limit(1))
    return result.scalar_one_or_none()


async def _call_create_invitation_admin(
    session: AsyncSession,
    *,
    email: str,
    organization_id: str | None,
    role: str,
    created_by: str,
    expires_in_days: int,
    notes: str | None,
) -> UserInvitation:
    result = await session.execute(
        text(
            "select create_invitation_admin(:email, cast(:organization_id as uuid), :role, "
            "cast(:created_by as uuid), :expires_in_days, :notes)"
        ),
        {
            "email": email,
            "organization_id": organization_id,
            "role": role,
            "created_by": created_by,
            "expires_in_days": expires_in_days,
            "notes": notes,
        },
    )
    payload = result.scalar_one()
    if isinstance(payload, str):
        payload = json.loads(payload)
    if not payload or not payload.get("success", True) or not payload.get("invite_code"):
        raise UpstreamError(
            "Invitation procedure returned no invite code",
            details={"error": (payload or {}).get("error")},
        )
    invitation = await get_by_code(session, str(payload["invite_code"]))
    if invitation is None:
        raise UpstreamError("Invitation row not visible after creation")
    return invitation


async def create_invitation(
    session: AsyncSession,
    *,
    email: str,
    organization_id: str | None,
    role: str,
    created_by: str,
    notes: str | None = None,
    expires_in_days: int | None = None,
) -> UserInvitation:
    settings = get_settings()
    days = expires_in_days if expires_in_days is not None else settings.invitation_expiry_days
    if settings.db_procedures_enabled:
        return await _call_create_invitation_admin(
            session,
            email=email,
            organization_id=organization_id,
            role=role,
            created_by=created_by,
            expires_in_days=days,
            notes=notes,
        )

    # Codes are random; retry on the rare collision with an existing row.
    invite_code = generate_invite_code()
    while await get_by_code(session, invite_code) is not None:
        invite_code = generate_invite_code()
    invitation = UserInvitation(
        invite_code=invite_code,
        email=email,
        organization_id=organization_id,
        role=role,
        status=INVITATION_PENDING,
        created_by=created_by,
        expires_at=datetime.now(timezone.utc) + timedelta(days=days),
        notes=notes,
    )
    session.add(invitation)
    await session.flush()
    return invitation


def mark_accepted(invitation: UserInvitation, user_id: str) -> None:
    invitation.status = INVITATION_ACCEPTED
    invitation.used_by = user_id
    invitation.used_at = datetime.now(timezone.utc)


async def expire_overdue(session: AsyncSession, *, now: datetime | None = None) -> int:
    # Pending invitations past expires_at are flipped in one statement.
    cutoff = now or datetime.now(timezone.utc)
    result = await session.execute(
        update(UserInvitation)
        .where(
            UserInvitation.status == INVITATION_PENDING,
            UserInvitation.expires_at < cutoff,
        )
        .values(status=INVITATION_EXPIRED)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


async def accept_pending_for_email(session: AsyncSession, email: str, user_id: str) -> int:
    # Signing up consumes every open invitation for the address, whatever the organization.
    result = await session.execute(
        update(UserInvitation)
        .where(
            func.lower(UserInvitation.email) == email.strip().lower(),
            UserInvitation.status == INVITATION_PENDING,
        )
        .values(status=INVITATION_ACCEPTED, used_by=user_id, used_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)
