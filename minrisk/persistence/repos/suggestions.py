from __future__ import annotations

from typing import Any

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.domain.models import SUGGESTION_PENDING, IncidentRiskAiSuggestion


async def delete_pending_for_incident(session: AsyncSession, incident_id: str) -> int:
    # Accepted and rejected suggestions are reviewer decisions and survive re-analysis.
    result = await session.execute(
        delete(IncidentRiskAiSuggestion).where(
            IncidentRiskAiSuggestion.incident_id == incident_id,
            IncidentRiskAiSuggestion.status == SUGGESTION_PENDING,
        )
    )
    return int(result.rowcount or 0)


async def insert_suggestions(
    session: AsyncSession,
    *,
    organization_id: str,
    incident_id: str,
    suggestions: list[dict[str, Any]],
    similar_incident_count: int,
    model_version: str,
) -> list[IncidentRiskAiSuggestion]:
    rows = [
        IncidentRiskAiSuggestion(
            organization_id=organization_id,
            incident_id=incident_id,
            risk_id=item["risk_id"],
            confidence_score=int(item["confidence_score"]),
            reasoning=item.get("reasoning"),
            keywords_matched=list(item.get("keywords_matched") or []),
            similar_incident_count=similar_incident_count,
            status=SUGGESTION_PENDING,
            ai_model_version=model_version,
        )
        for item in suggestions
    ]
    session.add_all(rows)
    await session.flush()
    return rows
