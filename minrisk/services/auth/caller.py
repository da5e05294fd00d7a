from __future__ import annotations

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.core.errors import AuthorizationError
from minrisk.persistence.repos import profiles as profiles_repo
from minrisk.providers.identity.base import IdentityUser


class Caller(BaseModel):
    # Authenticated identity joined with its profile; the basis for every policy check.
    user_id: str
    email: str | None = None
    full_name: str | None = None
    role: str
    status: str
    organization_id: str | None = None


async def load_caller(session: AsyncSession, user: IdentityUser) -> Caller:
    profile = await profiles_repo.get_profile(session, user.id)
    if profile is None:
        raise AuthorizationError("User profile not found")
    return Caller(
        user_id=profile.id,
        email=profile.email or user.email,
        full_name=profile.full_name,
        role=profile.role,
        status=profile.status,
        organization_id=profile.organization_id,
    )
