from __future__ import annotations

from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from minrisk.domain.models import UserProfile
from minrisk.persistence.db import SessionLocal
from minrisk.providers.identity.fake import FakeIdentityProvider
from minrisk.tests.utils.seed import build_app, create_caller, create_organization


def _client(identity: FakeIdentityProvider) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=build_app(identity)), base_url="http://test")


@pytest.mark.asyncio
async def test_owner_lookup_never_crosses_organizations() -> None:
    identity = FakeIdentityProvider()
    org_a = await create_organization("Org A")
    org_b = await create_organization("Org B")
    _, headers = await create_caller(identity, role="user", organization_id=org_a)
    owner_id, _ = await create_caller(
        identity, role="user", organization_id=org_a, email="owner@example.com", full_name="Risk Owner"
    )
    foreign_id, _ = await create_caller(identity, role="user", organization_id=org_b)

    async with _client(identity) as client:
        response = await client.post(
            "/v1/risk-owners",
            headers=headers,
            json={"owner_ids": [owner_id, foreign_id, str(uuid4()), "garbage"]},
        )

    assert response.status_code == 200
    assert response.json()["data"] == {
        owner_id: {"id": owner_id, "full_name": "Risk Owner", "email": "owner@example.com"}
    }


@pytest.mark.asyncio
async def test_owner_email_falls_back_to_identity_record() -> None:
    identity = FakeIdentityProvider()
    org_id = await create_organization()
    _, headers = await create_caller(identity, role="user", organization_id=org_id)
    legacy_id = str(uuid4())
    identity.add_user(email="legacy@example.com", user_id=legacy_id)
    async with SessionLocal() as session:
        session.add(UserProfile(id=legacy_id, organization_id=org_id, role="user", status="approved"))
        await session.commit()

    async with _client(identity) as client:
        response = await client.post("/v1/risk-owners", headers=headers, json={"owner_ids": [legacy_id]})

    assert response.json()["data"][legacy_id] == {
        "id": legacy_id,
        "full_name": "Unknown",
        "email": "legacy@example.com",
    }


@pytest.mark.asyncio
async def test_owner_ids_required_and_empty_list_is_empty_map() -> None:
    identity = FakeIdentityProvider()
    org_id = await create_organization()
    _, headers = await create_caller(identity, role="user", organization_id=org_id)

    async with _client(identity) as client:
        missing = await client.post("/v1/risk-owners", headers=headers, json={})
        empty = await client.post("/v1/risk-owners", headers=headers, json={"owner_ids": []})

    assert missing.status_code == 400
    assert missing.json()["error"] == "owner_ids array is required"
    assert empty.status_code == 200
    assert empty.json() == {"data": {}, "error": None}


@pytest.mark.asyncio
async def test_regulator_without_organization_sees_no_owners() -> None:
    identity = FakeIdentityProvider()
    org_id = await create_organization()
    _, headers = await create_caller(identity, role="regulator", organization_id=None)
    owner_id, _ = await create_caller(identity, role="user", organization_id=org_id)

    async with _client(identity) as client:
        response = await client.post("/v1/risk-owners", headers=headers, json={"owner_ids": [owner_id]})

    assert response.json()["data"] == {}
