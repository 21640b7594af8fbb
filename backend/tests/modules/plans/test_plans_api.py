# tests/modules/plans/test_plans_api.py
from typing import Dict

import pytest
from bson import ObjectId
from fastapi import status

from crmhub.core.security import create_access_token

pytestmark = pytest.mark.asyncio


def _headers(organization_id: str, *roles: str) -> Dict[str, str]:
    token = create_access_token({"sub": str(ObjectId()), "org": organization_id, "roles": list(roles)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def platform_headers(organization_id) -> Dict[str, str]:
    return _headers(organization_id, "owner", "super_admin")


async def test_effective_features_follow_plan_and_overrides(test_client, auth_headers, platform_headers):
    effective = (await test_client.get("/api/v1/plans/features/effective", headers=auth_headers)).json()
    assert effective["plan_id"] is None
    assert not any(effective["features"].values())

    plan = await test_client.post(
        "/api/v1/plans", json={"name": "Pro", "price_cents": 19900, "features": {"leads": True, "sales": True}},
        headers=platform_headers,
    )
    assert plan.status_code == status.HTTP_201_CREATED
    plan_id = plan.json()["_id"]

    subscribed = await test_client.put("/api/v1/plans/subscription", json={"plan_id": plan_id}, headers=platform_headers)
    assert subscribed.status_code == status.HTTP_200_OK

    toggled = await test_client.put(
        f"/api/v1/plans/{plan_id}/features/integrations", json={"is_enabled": True}, headers=platform_headers,
    )
    assert toggled.json()["features"]["integrations"] is True

    override = await test_client.put(
        "/api/v1/plans/features/overrides/sales", json={"is_enabled": False, "override_reason": "inadimplente"},
        headers=platform_headers,
    )
    assert override.status_code == status.HTTP_200_OK

    effective = (await test_client.get("/api/v1/plans/features/effective", headers=auth_headers)).json()
    assert effective["plan_name"] == "Pro"
    assert effective["features"]["leads"] is True
    assert effective["features"]["integrations"] is True
    assert effective["features"]["sales"] is False


async def test_unknown_features_and_plans(test_client, platform_headers):
    bad_plan = await test_client.post("/api/v1/plans", json={"name": "X", "features": {"teleport": True}}, headers=platform_headers)
    assert bad_plan.status_code == status.HTTP_400_BAD_REQUEST

    bad_override = await test_client.put(
        "/api/v1/plans/features/overrides/teleport", json={"is_enabled": True}, headers=platform_headers,
    )
    assert bad_override.status_code == status.HTTP_400_BAD_REQUEST

    missing = await test_client.put("/api/v1/plans/subscription", json={"plan_id": "0" * 24}, headers=platform_headers)
    assert missing.status_code == status.HTTP_404_NOT_FOUND

    missing = await test_client.put(
        f"/api/v1/plans/{'0' * 24}/features/leads", json={"is_enabled": True}, headers=platform_headers,
    )
    assert missing.status_code == status.HTTP_404_NOT_FOUND


async def test_catalog_is_readable_by_any_member(test_client, organization_id):
    headers = _headers(organization_id, "seller")

    catalog = await test_client.get("/api/v1/plans/features/catalog", headers=headers)
    assert catalog.status_code == status.HTTP_200_OK
    assert "Vendas" in catalog.json()

    forbidden = await test_client.post("/api/v1/plans", json={"name": "Y"}, headers=headers)
    assert forbidden.status_code == status.HTTP_403_FORBIDDEN


async def test_org_owner_cannot_change_plans_of_other_tenants(test_client, auth_headers, platform_headers):
    """O dono de uma organização não altera planos globais nem se concede features."""
    other_org = str(ObjectId())
    other_headers = _headers(other_org, "owner")

    plan_id = (await test_client.post("/api/v1/plans", json={"name": "Basic"}, headers=platform_headers)).json()["_id"]
    subscribed = await test_client.put(
        "/api/v1/plans/subscription", params={"organization_id": other_org}, json={"plan_id": plan_id},
        headers=platform_headers,
    )
    assert subscribed.json()["organization_id"] == other_org

    attempts = [
        ("put", f"/api/v1/plans/{plan_id}/features/financial", {"is_enabled": True}),
        ("put", "/api/v1/plans/features/overrides/ai_bots", {"is_enabled": True}),
        ("put", "/api/v1/plans/subscription", {"plan_id": plan_id}),
        ("post", "/api/v1/plans", {"name": "Free lunch"}),
    ]
    for method, url, body in attempts:
        response = await getattr(test_client, method)(url, json=body, headers=auth_headers)
        assert response.status_code == status.HTTP_403_FORBIDDEN, url

    effective = (await test_client.get("/api/v1/plans/features/effective", headers=other_headers)).json()
    assert effective["plan_name"] == "Basic"
    assert effective["features"]["financial"] is False

    mine = (await test_client.get("/api/v1/plans/features/effective", headers=auth_headers)).json()
    assert mine["features"]["ai_bots"] is False
