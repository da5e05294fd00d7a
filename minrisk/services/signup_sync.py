from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Mapping
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession
from svix.webhooks import Webhook, WebhookVerificationError

from minrisk.core.config import get_settings
from minrisk.core.errors import AuthenticationError, ProviderConfigError, ValidationError
from minrisk.domain.models import (
    ROLE_USER,
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_PENDING_INVITE,
    STATUS_REJECTED,
    STATUS_SUSPENDED,
    UserProfile,
)
from minrisk.persistence.repos import invitations as invitations_repo
from minrisk.persistence.repos import organizations as organizations_repo
from minrisk.persistence.repos import profiles as profiles_repo
from minrisk.services.audit import record_event


logger = logging.getLogger(__name__)

DEFAULT_FULL_NAME = "New User"
ACTIVATION_REASON = "Invitation accepted at sign-up"
DELETION_REASON = "Identity account deleted"

# Deleting the account retires the profile through an allowed transition; other statuses stay put.
_DELETION_TARGETS: dict[str, str] = {
    STATUS_APPROVED: STATUS_SUSPENDED,
    STATUS_PENDING: STATUS_REJECTED,
    STATUS_PENDING_INVITE: STATUS_REJECTED,
}


def verify_webhook(body: bytes, headers: Mapping[str, str]) -> dict[str, Any]:
    """Check the svix signature headers and return the decoded event.

    Deliveries older or newer than the svix tolerance (five minutes) are rejected
    along with bad signatures, so a captured request cannot be replayed later.
    """
    secret = get_settings().clerk_webhook_secret
    if not secret:
        raise ProviderConfigError("CLERK_WEBHOOK_SECRET is required to accept identity webhooks")
    try:
        webhook = Webhook(secret)
    except ValueError as exc:
        raise ProviderConfigError("CLERK_WEBHOOK_SECRET is not a valid signing secret") from exc

    try:
        event = webhook.verify(body, dict(headers))
    except WebhookVerificationError as exc:
        logger.warning("identity_webhook_rejected reason=%s", exc)
        raise AuthenticationError("Invalid webhook signature") from exc
    except ValueError as exc:
        raise ValidationError("Invalid webhook payload") from exc
    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        raise ValidationError("Invalid webhook payload")
    if not isinstance(event.get("data"), dict):
        raise ValidationError("Invalid webhook payload", details={"event_type": event["type"]})
    return event


def _primary_email(data: dict[str, Any]) -> str | None:
    addresses = [item for item in data.get("email_addresses") or [] if isinstance(item, dict)]
    primary_id = data.get("primary_email_address_id")
    chosen = next((item for item in addresses if item.get("id") == primary_id), None)
    if chosen is None and addresses:
        chosen = addresses[0]
    email = (chosen or {}).get("email_address")
    return str(email).strip().lower() if email else None


def _full_name(data: dict[str, Any]) -> str:
    parts = [str(part).strip() for part in (data.get("first_name"), data.get("last_name")) if part]
    return " ".join(part for part in parts if part)


async def _user_created(session: AsyncSession, data: dict[str, Any]) -> tuple[str, UserProfile | None]:
    clerk_id = str(data["id"])
    if await profiles_repo.get_profile_by_clerk_id(session, clerk_id) is not None:
        logger.info("signup_already_linked clerk_id=%s", clerk_id)
        return "skipped", None

    email = _primary_email(data)
    full_name = _full_name(data) or DEFAULT_FULL_NAME
    if email:
        invited = await profiles_repo.get_pending_invite_by_email(session, email)
        if invited is not None:
            # The inviting admin already chose role and organization; sign-up only activates.
            invited.clerk_id = clerk_id
            invited.full_name = invited.full_name or full_name
            await profiles_repo.apply_system_status(
                session, target=invited, new_status=STATUS_APPROVED, reason=ACTIVATION_REASON
            )
            accepted = await invitations_repo.accept_pending_for_email(session, email, invited.id)
            logger.info(
                "signup_invite_activated user_id=%s role=%s invitations=%s",
                invited.id,
                invited.role,
                accepted,
            )
            return "activated", invited

        existing = await profiles_repo.get_profile_by_email(session, email)
        if existing is not None and existing.clerk_id is None:
            # Profiles created through admin invitations keep their status; only the link is new.
            existing.clerk_id = clerk_id
            await session.flush()
            logger.info("signup_profile_linked user_id=%s status=%s", existing.id, existing.status)
            return "linked", existing

    profile = UserProfile(
        id=str(uuid4()),
        clerk_id=clerk_id,
        email=email,
        full_name=full_name,
        role=ROLE_USER,
        status=STATUS_APPROVED,
    )
    session.add(profile)
    await session.flush()
    logger.info("signup_profile_created user_id=%s", profile.id)
    return "created", profile


async def _user_updated(session: AsyncSession, data: dict[str, Any]) -> tuple[str, UserProfile | None]:
    profile = await profiles_repo.get_profile_by_clerk_id(session, str(data["id"]))
    if profile is None:
        return "ignored", None
    email = _primary_email(data)
    full_name = _full_name(data)
    if email:
        profile.email = email
    if full_name:
        profile.full_name = full_name
    profile.updated_at = datetime.now(timezone.utc)
    await session.flush()
    return "updated", profile


async def _user_deleted(session: AsyncSession, data: dict[str, Any]) -> tuple[str, UserProfile | None]:
    profile = await profiles_repo.get_profile_by_clerk_id(session, str(data["id"]))
    if profile is None:
        return "ignored", None
    new_status = _DELETION_TARGETS.get(profile.status)
    if new_status is None:
        return "unchanged", profile
    await profiles_repo.apply_system_status(
        session, target=profile, new_status=new_status, reason=DELETION_REASON
    )
    return new_status, profile


async def _membership_changed(
    session: AsyncSession, data: dict[str, Any], *, removed: bool
) -> tuple[str, UserProfile | None]:
    member = data.get("public_user_data") or {}
    clerk_user_id = member.get("user_id")
    if not clerk_user_id:
        raise ValidationError("Invalid webhook payload", details={"missing": ["public_user_data.user_id"]})
    profile = await profiles_repo.get_profile_by_clerk_id(session, str(clerk_user_id))
    if profile is None:
        return "ignored", None

    if removed:
        profile.organization_id = None
    else:
        clerk_org_id = (data.get("organization") or {}).get("id")
        organization = (
            await organizations_repo.get_by_clerk_org_id(session, str(clerk_org_id)) if clerk_org_id else None
        )
        if organization is None:
            logger.warning("signup_membership_unknown_org clerk_org_id=%s", clerk_org_id)
            return "ignored", profile
        profile.organization_id = organization.id
    profile.updated_at = datetime.now(timezone.utc)
    await session.flush()
    return "organization_cleared" if removed else "organization_linked", profile


async def handle_identity_event(
    session: AsyncSession, event: dict[str, Any], *, request_id: str | None = None
) -> dict[str, Any]:
    event_type = event["type"]
    data = event["data"]
    if event_type.startswith("user.") and not data.get("id"):
        raise ValidationError("Invalid webhook payload", details={"missing": ["data.id"]})

    if event_type == "user.created":
        action, profile = await _user_created(session, data)
    elif event_type == "user.updated":
        action, profile = await _user_updated(session, data)
    elif event_type == "user.deleted":
        action, profile = await _user_deleted(session, data)
    elif event_type in {"organizationMembership.created", "organizationMembership.updated"}:
        action, profile = await _membership_changed(session, data, removed=False)
    elif event_type == "organizationMembership.deleted":
        action, profile = await _membership_changed(session, data, removed=True)
    else:
        logger.info("identity_webhook_unhandled event_type=%s", event_type)
        return {"received": True, "event_type": event_type, "action": "ignored", "user_id": None}

    result = {
        "received": True,
        "event_type": event_type,
        "action": action,
        "user_id": profile.id if profile is not None else None,
    }
    if profile is not None and action not in {"skipped", "ignored", "unchanged"}:
        await record_event(
            session=session,
            organization_id=profile.organization_id,
            user_id=None,
            user_email=None,
            action=f"signup_{action}",
            entity_type="user",
            entity_id=profile.id,
            new_values={"status": profile.status, "organization_id": profile.organization_id},
            metadata={"event_type": event_type, "request_id": request_id},
        )
    await session.commit()
    logger.info("identity_webhook_processed event_type=%s action=%s", event_type, action)
    return result
