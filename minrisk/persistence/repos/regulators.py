from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.domain.models import Regulator, RegulatorAccess


async def get_regulators(session: AsyncSession, regulator_ids: list[str]) -> list[Regulator]:
    if not regulator_ids:
        return []
    result = await session.execute(
        select(Regulator).where(Regulator.id.in_(regulator_ids)).order_by(Regulator.name, Regulator.id)
    )
    return list(result.scalars().all())


async def grant_access(
    session: AsyncSession, *, user_id: str, regulator_ids: list[str], granted_by: str
) -> list[RegulatorAccess]:
    # Duplicated ids in a request collapse to one access row each.
    rows = [
        RegulatorAccess(user_id=user_id, regulator_id=regulator_id, granted_by=granted_by)
        for regulator_id in dict.fromkeys(regulator_ids)
    ]
    session.add_all(rows)
    await session.flush()
    return rows
