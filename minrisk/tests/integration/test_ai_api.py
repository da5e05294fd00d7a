from __future__ import annotations

import json
import time
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from minrisk.core.config import get_settings
from minrisk.domain.models import IncidentRiskAiSuggestion
from minrisk.persistence.db import SessionLocal
from minrisk.providers.identity.fake import FakeIdentityProvider
from minrisk.providers.llm.fake import FakeLLMProvider
from minrisk.tests.utils.seed import (
    build_app,
    count_rows,
    create_caller,
    create_incident,
    create_organization,
    create_pattern,
    create_risk,
    fetch_rows,
)


def _client(identity: FakeIdentityProvider, llm: FakeLLMProvider) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=build_app(identity, llm)), base_url="http://test")


def _mapping_response(*items: tuple[str, object]) -> str:
    suggestions = [
        {
            "risk_id": risk_id,
            "risk_code": "ECHOED",
            "risk_title": "Echoed title",
            "confidence_score": score,
            "reasoning": "Switch outage matches payment processing failure.",
            "keywords_matched": ["switch", "payments"],
        }
        for risk_id, score in items
    ]
    return "```json\n" + json.dumps({"suggestions": suggestions}) + "\n```"


async def _seed_register() -> tuple[str, str, str, str]:
    org_id = await create_organization()
    payments = await create_risk(org_id, risk_code="OPS-001", risk_title="Payment processing failure")
    fraud = await create_risk(org_id, risk_code="OPS-002", risk_title="Card fraud", status="MONITORING")
    incident_id = await create_incident(org_id)
    return org_id, payments, fraud, incident_id


@pytest.mark.asyncio
async def test_analysis_filters_and_persists_pending_suggestions() -> None:
    identity = FakeIdentityProvider()
    org_id, payments, fraud, incident_id = await _seed_register()
    await create_risk(org_id, risk_code="OPS-003", risk_title="Retired risk", status="CLOSED")
    await create_pattern(incident_id, similar=4, risk_code="OPS-001", confidence=75.0)
    _, headers = await create_caller(identity, role="user", organization_id=org_id)
    llm = FakeLLMProvider(_mapping_response((payments, 95), (fraud, 69), (str(uuid4()), 99)))

    async with _client(identity, llm) as client:
        response = await client.post(
            "/v1/ai/analyze-incident-for-risk-mapping", headers=headers, json={"incident_id": incident_id}
        )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["suggestions_count"] == 1
    suggestion = body["suggestions"][0]
    assert (suggestion["risk_id"], suggestion["risk_code"], suggestion["risk_title"]) == (
        payments,
        "OPS-001",
        "Payment processing failure",
    )
    assert suggestion["confidence_score"] == 95
    assert body["historical_context"] == {"similar_count": 4, "most_common_risk": "OPS-001", "confidence": 75.0}
    assert "OPS-003" not in llm.prompts[0]
    assert "OPS-002" in llm.prompts[0]

    rows = await fetch_rows(IncidentRiskAiSuggestion, IncidentRiskAiSuggestion.incident_id == incident_id)
    assert [(row.risk_id, row.status, row.similar_incident_count, row.ai_model_version) for row in rows] == [
        (payments, "pending", 4, "fake-llm")
    ]


@pytest.mark.asyncio
async def test_reanalysis_replaces_pending_and_keeps_reviewed() -> None:
    identity = FakeIdentityProvider()
    org_id, payments, fraud, incident_id = await _seed_register()
    _, headers = await create_caller(identity, role="user", organization_id=org_id)
    async with SessionLocal() as session:
        session.add(
            IncidentRiskAiSuggestion(
                organization_id=org_id,
                incident_id=incident_id,
                risk_id=fraud,
                confidence_score=88,
                status="accepted",
            )
        )
        await session.commit()
    llm = FakeLLMProvider(_mapping_response((payments, 90), (fraud, 80)))

    async with _client(identity, llm) as client:
        for _ in range(2):
            response = await client.post(
                "/v1/ai/analyze-incident-for-risk-mapping", headers=headers, json={"incident_id": incident_id}
            )
            assert response.json()["suggestions_count"] == 2

    pending = IncidentRiskAiSuggestion.status == "pending"
    assert await count_rows(IncidentRiskAiSuggestion, IncidentRiskAiSuggestion.incident_id == incident_id, pending) == 2
    assert await count_rows(IncidentRiskAiSuggestion, IncidentRiskAiSuggestion.status == "accepted") == 1


@pytest.mark.asyncio
async def test_empty_result_still_clears_previous_pending_set() -> None:
    identity = FakeIdentityProvider()
    org_id, payments, _, incident_id = await _seed_register()
    _, headers = await create_caller(identity, role="user", organization_id=org_id)

    async with _client(identity, FakeLLMProvider(_mapping_response((payments, 90)))) as client:
        await client.post(
            "/v1/ai/analyze-incident-for-risk-mapping", headers=headers, json={"incident_id": incident_id}
        )
    assert await count_rows(IncidentRiskAiSuggestion) == 1

    async with _client(identity, FakeLLMProvider(_mapping_response((payments, 40)))) as client:
        response = await client.post(
            "/v1/ai/analyze-incident-for-risk-mapping", headers=headers, json={"incident_id": incident_id}
        )
    assert response.json()["suggestions_count"] == 0
    assert await count_rows(IncidentRiskAiSuggestion) == 0


@pytest.mark.asyncio
async def test_llm_timeout_returns_fast_failure_and_persists_nothing(monkeypatch) -> None:
    monkeypatch.setenv("LLM_TIMEOUT_S", "0.2")
    get_settings.cache_clear()
    identity = FakeIdentityProvider()
    org_id, payments, _, incident_id = await _seed_register()
    _, headers = await create_caller(identity, role="user", organization_id=org_id)
    llm = FakeLLMProvider(_mapping_response((payments, 90)), delay_s=5.0)

    start = time.monotonic()
    async with _client(identity, llm) as client:
        response = await client.post(
            "/v1/ai/analyze-incident-for-risk-mapping", headers=headers, json={"incident_id": incident_id}
        )
    elapsed = time.monotonic() - start

    assert elapsed < 3.0
    assert response.status_code == 200
    body = response.json()
    assert (body["success"], body["code"]) == (False, "UPSTREAM_TIMEOUT")
    assert body["error"] == "AI analysis timeout - request took too long"
    assert await count_rows(IncidentRiskAiSuggestion) == 0


@pytest.mark.asyncio
async def test_unparseable_response_is_reported_in_body() -> None:
    identity = FakeIdentityProvider()
    org_id, _, _, incident_id = await _seed_register()
    _, headers = await create_caller(identity, role="user", organization_id=org_id)

    async with _client(identity, FakeLLMProvider("I am unable to help with that.")) as client:
        response = await client.post(
            "/v1/ai/analyze-incident-for-risk-mapping", headers=headers, json={"incident_id": incident_id}
        )

    assert response.status_code == 200
    body = response.json()
    assert (body["success"], body["code"]) == (False, "PARSE_ERROR")
    assert body["technical_details"].startswith("ParseError")


@pytest.mark.asyncio
async def test_empty_register_skips_model_call() -> None:
    identity = FakeIdentityProvider()
    org_id = await create_organization()
    incident_id = await create_incident(org_id)
    _, headers = await create_caller(identity, role="user", organization_id=org_id)
    llm = FakeLLMProvider()

    async with _client(identity, llm) as client:
        response = await client.post(
            "/v1/ai/analyze-incident-for-risk-mapping", headers=headers, json={"incident_id": incident_id}
        )

    body = response.json()
    assert (body["success"], body["suggestions_count"]) == (True, 0)
    assert body["message"] == "No active risks found in organization risk register"
    assert llm.prompts == []


@pytest.mark.asyncio
async def test_ai_failures_use_body_status_except_unauthenticated() -> None:
    identity = FakeIdentityProvider()
    org_id, _, _, incident_id = await _seed_register()
    other_org = await create_organization("Other")
    _, outsider = await create_caller(identity, role="user", organization_id=other_org)

    async with _client(identity, FakeLLMProvider()) as client:
        anonymous = await client.post(
            "/v1/ai/analyze-incident-for-risk-mapping", json={"incident_id": incident_id}
        )
        foreign = await client.post(
            "/v1/ai/analyze-incident-for-risk-mapping", headers=outsider, json={"incident_id": incident_id}
        )
        missing = await client.post(
            "/v1/ai/analyze-incident-for-risk-mapping", headers=outsider, json={"incident_id": str(uuid4())}
        )
        malformed = await client.post("/v1/ai/kri-suggestions", headers=outsider, json={"max_suggestions": "many"})

    assert anonymous.status_code == 401
    assert foreign.status_code == 200
    assert (foreign.json()["success"], foreign.json()["code"]) == (False, "AUTH_FORBIDDEN")
    assert missing.json()["code"] == "NOT_FOUND"
    assert malformed.status_code == 200
    assert malformed.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_kri_suggestions_are_capped_and_scoped() -> None:
    identity = FakeIdentityProvider()
    org_id, payments, _, _ = await _seed_register()
    other_org = await create_organization("Other")
    _, headers = await create_caller(identity, role="user", organization_id=org_id)
    _, outsider = await create_caller(identity, role="user", organization_id=other_org)
    kris = [
        {
            "indicator_name": f"Failed payment ratio {idx}",
            "indicator_description": "Share of failed card payments",
            "measurement_unit": "%",
            "target_value": 1,
            "threshold_warning": 2,
            "threshold_critical": 5,
            "frequency": "daily",
        }
        for idx in range(7)
    ]
    llm = FakeLLMProvider(json.dumps({"kris": kris}))

    async with _client(identity, llm) as client:
        capped = await client.post(
            "/v1/ai/kri-suggestions", headers=headers, json={"risk_id": payments, "max_suggestions": 3}
        )
        too_many = await client.post(
            "/v1/ai/kri-suggestions", headers=headers, json={"risk_id": payments, "max_suggestions": 11}
        )
        foreign = await client.post("/v1/ai/kri-suggestions", headers=outsider, json={"risk_id": payments})

    body = capped.json()
    assert body["success"] is True
    assert body["risk_id"] == payments
    assert [item["indicator_name"] for item in body["suggestions"]] == [
        "Failed payment ratio 0",
        "Failed payment ratio 1",
        "Failed payment ratio 2",
    ]
    assert "OPS-001" in llm.prompts[0]
    assert too_many.json()["code"] == "VALIDATION_ERROR"
    assert foreign.json()["code"] == "NOT_FOUND"
    assert len(llm.prompts) == 1
