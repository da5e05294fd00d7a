from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.domain.models import Organization


async def get_organization(session: AsyncSession, organization_id: str) -> Organization | None:
    result = await session.execute(select(Organization).where(Organization.id == organization_id))
    return result.scalar_one_or_none()


async def get_by_clerk_org_id(session: AsyncSession, clerk_org_id: str) -> Organization | None:
    result = await session.execute(select(Organization).where(Organization.clerk_org_id == clerk_org_id))
    return result.scalar_one_or_none()
