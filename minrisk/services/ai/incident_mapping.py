from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.core.config import get_settings
from minrisk.core.errors import NotFoundError
from minrisk.persistence.repos import incidents as incidents_repo
from minrisk.persistence.repos import suggestions as suggestions_repo
from minrisk.providers.llm.base import LLMProvider
from minrisk.services.ai.completion import complete_with_timeout
from minrisk.services.ai.parsing import extract_json_object, filter_suggestions
from minrisk.services.ai.prompts import build_incident_mapping_prompt
from minrisk.services.auth.caller import Caller
from minrisk.services.authz.policy import require_organization_access
from minrisk.services.ids import require_uuid


logger = logging.getLogger(__name__)


async def analyze_incident_for_risk_mapping(
    session: AsyncSession,
    llm: LLMProvider,
    caller: Caller,
    *,
    incident_id: str | None,
    timeout_s: float | None = None,
) -> dict[str, Any]:
    settings = get_settings()
    target_id = require_uuid(incident_id, "incident_id")
    incident = await incidents_repo.get_incident(session, target_id)
    if incident is None:
        raise NotFoundError(f"Incident not found: {target_id}")
    require_organization_access(
        caller_role=caller.role,
        caller_organization_id=caller.organization_id,
        organization_id=incident.organization_id,
        message="Cannot analyze incidents from a different organization",
    )
    organization_id = incident.organization_id

    risks = await incidents_repo.list_active_risks(session, organization_id)
    if not risks:
        return {
            "success": True,
            "incident_id": target_id,
            "suggestions_count": 0,
            "suggestions": [],
            "historical_context": None,
            "message": "No active risks found in organization risk register",
        }

    pattern = await incidents_repo.get_pattern_analysis(session, target_id)
    historical_context = None
    similar_count = 0
    if pattern is not None:
        similar_count = pattern.similar_mapped_count or 0
        historical_context = {
            "similar_count": similar_count,
            "most_common_risk": pattern.most_common_risk_code,
            "confidence": pattern.historical_confidence_pct,
        }

    prompt = build_incident_mapping_prompt(
        incident, risks, pattern, min_confidence=settings.ai_min_confidence
    )
    text = await complete_with_timeout(
        llm, prompt, operation="incident_risk_mapping", timeout_s=timeout_s
    )
    analysis = extract_json_object(text)
    raw = analysis.get("suggestions")
    risks_by_id = {risk.id: risk for risk in risks}
    suggestions = filter_suggestions(
        raw if isinstance(raw, list) else [],
        settings.ai_min_confidence,
        allowed_risk_ids=set(risks_by_id),
    )
    # Register values win over whatever code and title the model echoed back.
    for item in suggestions:
        risk = risks_by_id[item["risk_id"]]
        item["risk_code"] = risk.risk_code
        item["risk_title"] = risk.risk_title

    # Delete-then-insert is not atomic across runs; a failed delete is logged and the run continues.
    try:
        deleted = await suggestions_repo.delete_pending_for_incident(session, target_id)
        await session.commit()
        logger.info("ai_suggestions_cleared incident_id=%s deleted=%s", target_id, deleted)
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning("ai_suggestions_clear_failed incident_id=%s", target_id, exc_info=exc)

    if suggestions:
        await suggestions_repo.insert_suggestions(
            session,
            organization_id=organization_id,
            incident_id=target_id,
            suggestions=suggestions,
            similar_incident_count=similar_count,
            model_version=llm.model,
        )
        await session.commit()
    logger.info(
        "ai_suggestions_saved incident_id=%s count=%s threshold=%s",
        target_id,
        len(suggestions),
        settings.ai_min_confidence,
    )

    return {
        "success": True,
        "incident_id": target_id,
        "suggestions_count": len(suggestions),
        "suggestions": suggestions,
        "historical_context": historical_context,
    }
