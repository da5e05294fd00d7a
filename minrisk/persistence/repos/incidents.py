from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.domain.models import Incident, IncidentPatternAnalysis, Risk


# Risks in these register states are candidates for incident mapping.
ACTIVE_RISK_STATUSES = ("OPEN", "MONITORING")


async def get_incident(session: AsyncSession, incident_id: str) -> Incident | None:
    result = await session.execute(select(Incident).where(Incident.id == incident_id))
    return result.scalar_one_or_none()


async def get_pattern_analysis(
    session: AsyncSession, incident_id: str
) -> IncidentPatternAnalysis | None:
    result = await session.execute(
        select(IncidentPatternAnalysis).where(IncidentPatternAnalysis.incident_id == incident_id)
    )
    return result.scalar_one_or_none()


async def list_active_risks(session: AsyncSession, organization_id: str) -> list[Risk]:
    # Stable ordering keeps the prompt deterministic for identical registers.
    result = await session.execute(
        select(Risk)
        .where(
            Risk.organization_id == organization_id,
            Risk.status.in_(ACTIVE_RISK_STATUSES),
        )
        .order_by(Risk.risk_code, Risk.id)
    )
    return list(result.scalars().all())


async def get_risk_for_organization(
    session: AsyncSession, risk_id: str, organization_id: str | None
) -> Risk | None:
    stmt = select(Risk).where(Risk.id == risk_id)
    if organization_id is not None:
        stmt = stmt.where(Risk.organization_id == organization_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
