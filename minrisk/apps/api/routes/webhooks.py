from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.apps.api.deps import get_db
from minrisk.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from minrisk.apps.api.response import SuccessEnvelope, get_request_id, success_response
from minrisk.services import signup_sync

router = APIRouter(tags=["webhooks"], responses=DEFAULT_ERROR_RESPONSES)


class WebhookReceipt(BaseModel):
    received: bool
    event_type: str
    action: str
    user_id: str | None = None


@router.post("/webhooks/identity", response_model=SuccessEnvelope[WebhookReceipt])
async def identity_webhook(request: Request, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    # Signed by the sign-up provider rather than a caller; the raw body is what was signed.
    body = await request.body()
    event = signup_sync.verify_webhook(body, request.headers)
    result = await signup_sync.handle_identity_event(db, event, request_id=get_request_id(request))
    return success_response(data=result)
