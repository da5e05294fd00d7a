from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.core.errors import NotFoundError, ParseError, ValidationError
from minrisk.persistence.repos import incidents as incidents_repo
from minrisk.providers.llm.base import LLMProvider
from minrisk.services.ai.completion import complete_with_timeout
from minrisk.services.ai.parsing import extract_json
from minrisk.services.ai.prompts import build_kri_prompt
from minrisk.services.auth.caller import Caller
from minrisk.services.authz.policy import is_super_admin
from minrisk.services.ids import require_uuid


logger = logging.getLogger(__name__)

DEFAULT_MAX_KRI_SUGGESTIONS = 5
MAX_KRI_SUGGESTIONS = 10
# KRI drafting benefits from more varied wording than classification.
KRI_TEMPERATURE = 0.7


async def suggest_kris(
    session: AsyncSession,
    llm: LLMProvider,
    caller: Caller,
    *,
    risk_id: str | None,
    max_suggestions: int | None = None,
) -> dict[str, Any]:
    target_id = require_uuid(risk_id, "risk_id")
    limit = DEFAULT_MAX_KRI_SUGGESTIONS if max_suggestions is None else max_suggestions
    if limit < 1 or limit > MAX_KRI_SUGGESTIONS:
        raise ValidationError(
            f"max_suggestions must be between 1 and {MAX_KRI_SUGGESTIONS}",
            details={"max_suggestions": max_suggestions},
        )

    # Risks outside the caller's organization are indistinguishable from missing ones.
    if is_super_admin(caller.role):
        risk = await incidents_repo.get_risk_for_organization(session, target_id, None)
    elif caller.organization_id is None:
        risk = None
    else:
        risk = await incidents_repo.get_risk_for_organization(session, target_id, caller.organization_id)
    if risk is None:
        raise NotFoundError("Risk not found")

    text = await complete_with_timeout(
        llm,
        build_kri_prompt(risk, max_suggestions=limit),
        operation="kri_suggestions",
        temperature=KRI_TEMPERATURE,
    )
    parsed = extract_json(text)
    if isinstance(parsed, dict):
        parsed = parsed.get("kris", parsed.get("suggestions"))
    if not isinstance(parsed, list):
        raise ParseError("AI response did not contain a list of KRIs")
    suggestions = [item for item in parsed if isinstance(item, dict)][:limit]
    logger.info("kri_suggestions_generated risk_id=%s count=%s", target_id, len(suggestions))
    return {"success": True, "risk_id": target_id, "suggestions": suggestions}
