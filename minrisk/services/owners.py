from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.core.errors import MinRiskError, ValidationError
from minrisk.persistence.repos import profiles as profiles_repo
from minrisk.providers.identity.base import IdentityProvider
from minrisk.services.auth.caller import Caller
from minrisk.services.ids import is_uuid


logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown"


async def get_risk_owners(
    session: AsyncSession,
    identity: IdentityProvider,
    caller: Caller,
    *,
    owner_ids: list[str] | None,
) -> dict[str, dict[str, Any]]:
    if owner_ids is None:
        raise ValidationError("owner_ids array is required", details={"missing": ["owner_ids"]})
    # Malformed and duplicate ids are dropped the same way as foreign ones.
    requested = list(dict.fromkeys(value for value in owner_ids if isinstance(value, str) and is_uuid(value)))
    if not requested:
        return {}

    profiles = await profiles_repo.get_profiles_in_organization(session, requested, caller.organization_id)
    owners: dict[str, dict[str, Any]] = {}
    for profile in profiles:
        email = profile.email
        if not email:
            # Older profiles predate the email column; fall back to the identity record.
            try:
                account = await identity.get_user_by_id(profile.id)
            except MinRiskError as exc:
                logger.warning("owner_email_lookup_failed user_id=%s", profile.id, exc_info=exc)
                account = None
            email = account.email if account else None
        owners[profile.id] = {
            "id": profile.id,
            "full_name": profile.full_name or UNKNOWN_NAME,
            "email": email or "",
        }
    logger.info(
        "risk_owners_resolved requested=%s returned=%s organization_id=%s",
        len(requested),
        len(owners),
        caller.organization_id,
    )
    return owners
