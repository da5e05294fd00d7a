from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.apps.api.deps import get_current_caller, get_db
from minrisk.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from minrisk.apps.api.response import SuccessEnvelope, get_request_id, success_response
from minrisk.services import user_admin
from minrisk.services.auth.caller import Caller

router = APIRouter(prefix="/admin", tags=["users"], responses=DEFAULT_ERROR_RESPONSES)


class ListUsersRequest(BaseModel):
    organization_id: str | None = None
    filter_pending: bool = False


class ManageUserRequest(BaseModel):
    action: str | None = None
    user_id: str | None = None
    new_role: str | None = None
    new_status: str | None = None
    reason: str | None = None


class UserProfileResponse(BaseModel):
    id: str
    email: str | None
    full_name: str | None
    role: str
    status: str
    organization_id: str | None
    approved_by: str | None = None
    approved_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@router.post("/list-users", response_model=SuccessEnvelope[list[UserProfileResponse]])
async def list_users(
    payload: ListUsersRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    users = await user_admin.list_users(
        db,
        caller,
        organization_id=payload.organization_id,
        filter_pending=payload.filter_pending,
    )
    return success_response(data=users)


@router.post("/manage-user", response_model=SuccessEnvelope[UserProfileResponse])
async def manage_user(
    request: Request,
    payload: ManageUserRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    user = await user_admin.manage_user(
        db,
        caller,
        action=payload.action,
        user_id=payload.user_id,
        new_role=payload.new_role,
        new_status=payload.new_status,
        reason=payload.reason,
        request_id=get_request_id(request),
    )
    return success_response(data=user)
