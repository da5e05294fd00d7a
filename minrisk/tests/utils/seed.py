from __future__ import annotations

from datetime import date
from typing import Any
from uuid import uuid4

from fastapi import FastAPI
from sqlalchemy import func, select

from minrisk.apps.api.deps import get_identity_provider, get_llm_provider
from minrisk.apps.api.main import create_app
from minrisk.domain.models import (
    Incident,
    IncidentPatternAnalysis,
    Organization,
    Regulator,
    Risk,
    STATUS_APPROVED,
    UserProfile,
)
from minrisk.persistence.db import SessionLocal
from minrisk.providers.identity.fake import FakeIdentityProvider
from minrisk.providers.llm.fake import FakeLLMProvider


def build_app(identity: FakeIdentityProvider, llm: FakeLLMProvider | None = None) -> FastAPI:
    # Swap external providers for in-memory doubles shared with the test body.
    app = create_app()
    llm_provider = llm or FakeLLMProvider()
    app.dependency_overrides[get_identity_provider] = lambda: identity
    app.dependency_overrides[get_llm_provider] = lambda: llm_provider
    return app


async def create_organization(name: str = "Acme Bank", *, clerk_org_id: str | None = None) -> str:
    organization_id = str(uuid4())
    async with SessionLocal() as session:
        session.add(Organization(id=organization_id, name=name, clerk_org_id=clerk_org_id))
        await session.commit()
    return organization_id


async def create_caller(
    identity: FakeIdentityProvider,
    *,
    role: str,
    organization_id: str | None,
    status: str = STATUS_APPROVED,
    email: str | None = None,
    full_name: str | None = None,
    with_profile: bool = True,
) -> tuple[str, dict[str, str]]:
    # Register an identity account with a bearer token plus its profile row.
    user_id = str(uuid4())
    token = f"token-{user_id}"
    resolved_email = email or f"{role}-{user_id[:8]}@example.com"
    identity.add_user(email=resolved_email, token=token, user_id=user_id)
    if with_profile:
        async with SessionLocal() as session:
            session.add(
                UserProfile(
                    id=user_id,
                    organization_id=organization_id,
                    email=resolved_email,
                    full_name=full_name or f"Test {role}",
                    role=role,
                    status=status,
                )
            )
            await session.commit()
    return user_id, {"Authorization": f"Bearer {token}"}


async def create_regulator(name: str, code: str | None = None) -> str:
    regulator_id = str(uuid4())
    async with SessionLocal() as session:
        session.add(Regulator(id=regulator_id, name=name, code=code))
        await session.commit()
    return regulator_id


async def create_risk(
    organization_id: str,
    *,
    risk_code: str,
    risk_title: str = "Operational risk",
    status: str = "OPEN",
) -> str:
    risk_id = str(uuid4())
    async with SessionLocal() as session:
        session.add(
            Risk(
                id=risk_id,
                organization_id=organization_id,
                risk_code=risk_code,
                risk_title=risk_title,
                risk_description=f"Description for {risk_code}",
                category="Operational",
                status=status,
            )
        )
        await session.commit()
    return risk_id


async def create_incident(organization_id: str, *, title: str = "Payment switch outage") -> str:
    incident_id = str(uuid4())
    async with SessionLocal() as session:
        session.add(
            Incident(
                id=incident_id,
                organization_id=organization_id,
                incident_code="INC-001",
                title=title,
                description="Card payments failed for two hours after a switch upgrade.",
                incident_type="Operational",
                severity=3,
                incident_date=date(2025, 12, 1),
                financial_impact=125000.0,
            )
        )
        await session.commit()
    return incident_id


async def create_pattern(incident_id: str, *, similar: int, risk_code: str, confidence: float) -> None:
    async with SessionLocal() as session:
        session.add(
            IncidentPatternAnalysis(
                incident_id=incident_id,
                similar_mapped_count=similar,
                most_common_risk_code=risk_code,
                historical_confidence_pct=confidence,
            )
        )
        await session.commit()


async def count_rows(model: Any, *criteria: Any) -> int:
    async with SessionLocal() as session:
        result = await session.execute(select(func.count()).select_from(model).where(*criteria))
        return int(result.scalar_one())


async def fetch_rows(model: Any, *criteria: Any) -> list[Any]:
    async with SessionLocal() as session:
        result = await session.execute(select(model).where(*criteria))
        return list(result.scalars().all())
