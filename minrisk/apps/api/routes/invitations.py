from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.apps.api.deps import get_current_caller, get_db, get_identity_provider
from minrisk.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from minrisk.apps.api.response import SuccessEnvelope, get_request_id, success_response
from minrisk.providers.identity.base import IdentityProvider
from minrisk.services import invitations as invitation_service
from minrisk.services.auth.caller import Caller

router = APIRouter(tags=["invitations"], responses=DEFAULT_ERROR_RESPONSES)


# Fields stay optional so missing values surface as handler validation errors after authorization.
class InviteUserRequest(BaseModel):
    email: str | None = None
    full_name: str | None = None
    organization_id: str | None = None
    role: str | None = None


class InvitePrimaryAdminRequest(BaseModel):
    email: str | None = None
    full_name: str | None = None
    organization_id: str | None = None


class InviteRegulatorRequest(BaseModel):
    email: str | None = None
    full_name: str | None = None
    regulator_ids: list[str] | None = None


class InvitationWarning(BaseModel):
    step: str
    message: str


class InvitationResult(BaseModel):
    user_id: str
    email: str | None
    full_name: str | None
    role: str
    organization_id: str | None
    status: str
    invite_code: str | None = None
    sign_in_link: str | None = None
    regulators: list[str] | None = None
    warnings: list[InvitationWarning] = []


@router.post("/admin/invite-user", response_model=SuccessEnvelope[InvitationResult])
async def invite_user(
    request: Request,
    payload: InviteUserRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> dict[str, Any]:
    result = await invitation_service.invite_user(
        db,
        identity,
        caller,
        email=payload.email,
        full_name=payload.full_name,
        organization_id=payload.organization_id,
        role=payload.role,
        request_id=get_request_id(request),
    )
    return success_response(data=result)


@router.post(
    "/super-admin/invite-primary-admin", response_model=SuccessEnvelope[InvitationResult]
)
async def invite_primary_admin(
    request: Request,
    payload: InvitePrimaryAdminRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> dict[str, Any]:
    result = await invitation_service.invite_primary_admin(
        db,
        identity,
        caller,
        email=payload.email,
        full_name=payload.full_name,
        organization_id=payload.organization_id,
        request_id=get_request_id(request),
    )
    return success_response(data=result)


@router.post("/super-admin/invite-regulator", response_model=SuccessEnvelope[InvitationResult])
async def invite_regulator(
    request: Request,
    payload: InviteRegulatorRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> dict[str, Any]:
    result = await invitation_service.invite_regulator(
        db,
        identity,
        caller,
        email=payload.email,
        full_name=payload.full_name,
        regulator_ids=payload.regulator_ids,
        request_id=get_request_id(request),
    )
    return success_response(data=result)
