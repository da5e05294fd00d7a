from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.apps.api.deps import get_current_caller, get_db, get_llm_provider
from minrisk.apps.api.openapi import AI_ERROR_RESPONSES
from minrisk.apps.api.response import ai_failure_response
from minrisk.core.errors import MinRiskError
from minrisk.providers.llm.base import LLMProvider
from minrisk.services.ai.incident_mapping import analyze_incident_for_risk_mapping
from minrisk.services.ai.kri import suggest_kris
from minrisk.services.auth.caller import Caller

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"], responses=AI_ERROR_RESPONSES)


class AnalyzeIncidentRequest(BaseModel):
    incident_id: str | None = None


class KriSuggestionsRequest(BaseModel):
    risk_id: str | None = None
    max_suggestions: int | None = None


@router.post("/analyze-incident-for-risk-mapping")
async def analyze_incident(
    payload: AnalyzeIncidentRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
    llm: LLMProvider = Depends(get_llm_provider),
) -> dict[str, Any]:
    try:
        return await analyze_incident_for_risk_mapping(
            db, llm, caller, incident_id=payload.incident_id
        )
    except MinRiskError as exc:
        logger.warning(
            "ai_incident_mapping_failed incident_id=%s code=%s", payload.incident_id, exc.code
        )
        return ai_failure_response(exc)


@router.post("/kri-suggestions")
async def kri_suggestions(
    payload: KriSuggestionsRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
    llm: LLMProvider = Depends(get_llm_provider),
) -> dict[str, Any]:
    try:
        return await suggest_kris(
            db, llm, caller, risk_id=payload.risk_id, max_suggestions=payload.max_suggestions
        )
    except MinRiskError as exc:
        logger.warning("ai_kri_suggestions_failed risk_id=%s code=%s", payload.risk_id, exc.code)
        return ai_failure_response(exc)
