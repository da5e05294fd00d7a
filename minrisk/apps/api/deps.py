from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from minrisk.persistence.db import get_session
from minrisk.providers.identity.base import IdentityProvider, IdentityUser
from minrisk.providers.identity.factory import get_identity_provider as build_identity_provider
from minrisk.providers.llm.base import LLMProvider
from minrisk.providers.llm.factory import get_llm_provider as build_llm_provider
from minrisk.services.auth.caller import Caller, load_caller
from minrisk.services.auth.tokens import authenticate_token, extract_token


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


async def get_identity_provider() -> AsyncGenerator[IdentityProvider, None]:
    # Providers open their HTTP client lazily; release it when the request ends.
    provider = build_identity_provider()
    try:
        yield provider
    finally:
        await provider.aclose()


async def get_llm_provider() -> AsyncGenerator[LLMProvider, None]:
    provider = build_llm_provider()
    try:
        yield provider
    finally:
        await provider.aclose()


async def get_authenticated_user(
    request: Request,
    identity: IdentityProvider = Depends(get_identity_provider),
) -> IdentityUser:
    token = extract_token(request.headers)
    return await authenticate_token(token, identity)


async def get_current_caller(
    user: IdentityUser = Depends(get_authenticated_user),
    db: AsyncSession = Depends(get_db),
) -> Caller:
    # Callers without a profile are authenticated but not authorized for anything.
    return await load_caller(db, user)
