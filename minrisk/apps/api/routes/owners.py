from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.apps.api.deps import get_current_caller, get_db, get_identity_provider
from minrisk.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from minrisk.apps.api.response import SuccessEnvelope, success_response
from minrisk.providers.identity.base import IdentityProvider
from minrisk.services.auth.caller import Caller
from minrisk.services.owners import get_risk_owners

router = APIRouter(tags=["owners"], responses=DEFAULT_ERROR_RESPONSES)


class RiskOwnersRequest(BaseModel):
    owner_ids: list[str] | None = None


class RiskOwner(BaseModel):
    id: str
    full_name: str
    email: str


@router.post("/risk-owners", response_model=SuccessEnvelope[dict[str, RiskOwner]])
async def risk_owners(
    payload: RiskOwnersRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> dict[str, Any]:
    owners = await get_risk_owners(db, identity, caller, owner_ids=payload.owner_ids)
    return success_response(data=owners)
