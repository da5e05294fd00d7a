from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from minrisk.domain.models import AuditTrail, UserInvitation, UserProfile, UserStatusTransition
from minrisk.persistence.db import SessionLocal
from minrisk.providers.identity.fake import FakeIdentityProvider
from minrisk.tests.utils.seed import (
    build_app,
    count_rows,
    create_caller,
    create_organization,
    fetch_rows,
)


def _client(identity: FakeIdentityProvider) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=build_app(identity)), base_url="http://test")


async def _manage(client: AsyncClient, headers: dict[str, str], **payload) -> dict:
    response = await client.post("/v1/admin/manage-user", headers=headers, json=payload)
    return {"status_code": response.status_code, **response.json()}


@pytest.mark.asyncio
async def test_list_users_scoped_to_organization() -> None:
    identity = FakeIdentityProvider()
    org_a = await create_organization("Org A")
    org_b = await create_organization("Org B")
    _, headers = await create_caller(identity, role="primary_admin", organization_id=org_a)
    await create_caller(identity, role="user", organization_id=org_a, status="pending")
    await create_caller(identity, role="user", organization_id=org_b)

    async with _client(identity) as client:
        everyone = await client.post("/v1/admin/list-users", headers=headers, json={"organization_id": org_a})
        pending = await client.post(
            "/v1/admin/list-users", headers=headers, json={"organization_id": org_a, "filter_pending": True}
        )
        foreign = await client.post("/v1/admin/list-users", headers=headers, json={"organization_id": org_b})

    assert everyone.status_code == 200
    assert len(everyone.json()["data"]) == 2
    assert {row["organization_id"] for row in everyone.json()["data"]} == {org_a}
    assert [row["status"] for row in pending.json()["data"]] == ["pending"]
    assert foreign.status_code == 403


@pytest.mark.asyncio
async def test_super_admin_lists_any_organization() -> None:
    identity = FakeIdentityProvider()
    org_id = await create_organization()
    _, headers = await create_caller(identity, role="super_admin", organization_id=None)
    await create_caller(identity, role="user", organization_id=org_id)

    async with _client(identity) as client:
        response = await client.post("/v1/admin/list-users", headers=headers, json={"organization_id": org_id})

    assert response.status_code == 200
    assert len(response.json()["data"]) == 1


@pytest.mark.asyncio
async def test_approve_records_transition_and_closes_invitation() -> None:
    identity = FakeIdentityProvider()
    org_id = await create_organization()
    admin_id, headers = await create_caller(identity, role="primary_admin", organization_id=org_id)
    user_id, _ = await create_caller(
        identity, role="user", organization_id=org_id, status="pending", email="pending@example.com"
    )
    async with SessionLocal() as session:
        session.add(
            UserInvitation(
                invite_code="ABCD1234",
                email="pending@example.com",
                organization_id=org_id,
                role="user",
                created_by=admin_id,
                expires_at=datetime.now(timezone.utc) + timedelta(days=7),
            )
        )
        await session.commit()

    async with _client(identity) as client:
        result = await _manage(client, headers, action="approve", user_id=user_id)

    assert result["status_code"] == 200
    assert result["data"]["status"] == "approved"
    assert result["data"]["approved_by"] == admin_id
    transitions = await fetch_rows(UserStatusTransition, UserStatusTransition.user_id == user_id)
    assert [(row.transition_type, row.actor_user_id, row.reason) for row in transitions] == [
        ("onboarding_approval", admin_id, "No reason provided")
    ]
    invitations = await fetch_rows(UserInvitation, UserInvitation.invite_code == "ABCD1234")
    assert (invitations[0].status, invitations[0].used_by) == ("accepted", user_id)
    assert await count_rows(AuditTrail, AuditTrail.entity_id == user_id, AuditTrail.action == "approve") == 1


@pytest.mark.asyncio
async def test_reject_then_invalid_transition() -> None:
    identity = FakeIdentityProvider()
    org_id = await create_organization()
    _, headers = await create_caller(identity, role="secondary_admin", organization_id=org_id)
    user_id, _ = await create_caller(identity, role="user", organization_id=org_id, status="pending")

    async with _client(identity) as client:
        rejected = await _manage(client, headers, action="reject", user_id=user_id)
        again = await _manage(client, headers, action="reject", user_id=user_id)

    assert rejected["status_code"] == 200
    assert rejected["data"]["status"] == "rejected"
    assert again["status_code"] == 400
    assert again["error"] == "Invalid status transition"
    assert again["details"]["allowed_transitions"] == ["approved", "pending"]


@pytest.mark.asyncio
async def test_suspension_requires_reason() -> None:
    identity = FakeIdentityProvider()
    org_id = await create_organization()
    _, headers = await create_caller(identity, role="primary_admin", organization_id=org_id)
    user_id, _ = await create_caller(identity, role="user", organization_id=org_id)

    async with _client(identity) as client:
        missing = await _manage(client, headers, action="update_status", user_id=user_id, new_status="suspended")
        suspended = await _manage(
            client,
            headers,
            action="update_status",
            user_id=user_id,
            new_status="suspended",
            reason="Repeated policy breach",
        )

    assert missing["status_code"] == 400
    assert missing["error"] == "Reason required for this transition"
    assert suspended["status_code"] == 200
    assert suspended["data"]["status"] == "suspended"
    transitions = await fetch_rows(UserStatusTransition, UserStatusTransition.user_id == user_id)
    assert [(row.transition_type, row.reason) for row in transitions] == [
        ("disciplinary_suspension", "Repeated policy breach")
    ]


@pytest.mark.asyncio
async def test_update_role_only_below_own_rank() -> None:
    identity = FakeIdentityProvider()
    org_id = await create_organization()
    _, headers = await create_caller(identity, role="primary_admin", organization_id=org_id)
    user_id, _ = await create_caller(identity, role="user", organization_id=org_id)

    async with _client(identity) as client:
        promoted = await _manage(client, headers, action="update_role", user_id=user_id, new_role="secondary_admin")
        too_high = await _manage(client, headers, action="update_role", user_id=user_id, new_role="primary_admin")
        unknown = await _manage(client, headers, action="update_role", user_id=user_id, new_role="viewer")

    assert promoted["status_code"] == 200
    assert promoted["data"]["role"] == "secondary_admin"
    assert too_high["status_code"] == 403
    assert unknown["status_code"] == 400
    assert await count_rows(AuditTrail, AuditTrail.entity_id == user_id, AuditTrail.action == "role_change") == 1


@pytest.mark.asyncio
async def test_cannot_manage_self_peer_or_superior() -> None:
    identity = FakeIdentityProvider()
    org_id = await create_organization()
    secondary_id, headers = await create_caller(identity, role="secondary_admin", organization_id=org_id)
    peer_id, _ = await create_caller(identity, role="secondary_admin", organization_id=org_id)
    primary_id, _ = await create_caller(identity, role="primary_admin", organization_id=org_id)

    async with _client(identity) as client:
        own = await _manage(client, headers, action="update_status", user_id=secondary_id, new_status="suspended")
        peer = await _manage(client, headers, action="get_by_id", user_id=peer_id)
        superior = await _manage(client, headers, action="approve", user_id=primary_id)

    assert [own["status_code"], peer["status_code"], superior["status_code"]] == [403, 403, 403]
    assert superior["details"] == {"your_role": "secondary_admin", "target_role": "primary_admin"}
    profiles = await fetch_rows(UserProfile, UserProfile.id == secondary_id)
    assert profiles[0].status == "approved"


@pytest.mark.asyncio
async def test_cross_organization_and_missing_targets() -> None:
    identity = FakeIdentityProvider()
    org_a = await create_organization("Org A")
    org_b = await create_organization("Org B")
    _, headers = await create_caller(identity, role="primary_admin", organization_id=org_a)
    foreign_id, _ = await create_caller(identity, role="user", organization_id=org_b, status="pending")

    async with _client(identity) as client:
        foreign = await _manage(client, headers, action="approve", user_id=foreign_id)
        missing = await _manage(client, headers, action="approve", user_id=str(uuid4()))
        malformed = await _manage(client, headers, action="approve", user_id="not-a-uuid")
        bad_action = await _manage(client, headers, action="delete", user_id=foreign_id)

    assert foreign["status_code"] == 403
    assert foreign["error"] == "Cannot manage users from different organization"
    assert missing["status_code"] == 404
    assert missing["error"] == "Target user not found"
    assert malformed["status_code"] == 400
    assert bad_action["status_code"] == 400
    profiles = await fetch_rows(UserProfile, UserProfile.id == foreign_id)
    assert profiles[0].status == "pending"


@pytest.mark.asyncio
async def test_get_by_id_returns_profile() -> None:
    identity = FakeIdentityProvider()
    org_id = await create_organization()
    _, headers = await create_caller(identity, role="primary_admin", organization_id=org_id)
    user_id, _ = await create_caller(
        identity, role="user", organization_id=org_id, email="member@example.com", full_name="Member"
    )

    async with _client(identity) as client:
        result = await _manage(client, headers, action="get_by_id", user_id=user_id)

    assert result["status_code"] == 200
    assert (result["data"]["email"], result["data"]["full_name"]) == ("member@example.com", "Member")


@pytest.mark.asyncio
async def test_malformed_body_is_validation_error() -> None:
    identity = FakeIdentityProvider()
    org_id = await create_organization()
    _, headers = await create_caller(identity, role="primary_admin", organization_id=org_id)

    async with _client(identity) as client:
        response = await client.post(
            "/v1/admin/list-users", headers=headers, json={"organization_id": org_id, "filter_pending": "maybe"}
        )

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert body["details"]["errors"][0]["loc"] == ["body", "filter_pending"]
