from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from minrisk.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from minrisk.apps.api.response import SuccessEnvelope, success_response

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str


@router.get("/health", response_model=SuccessEnvelope[HealthResponse])
async def health() -> dict:
    return success_response(data=HealthResponse(status="ok").model_dump())
