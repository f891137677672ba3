"""
Unit tests for the public plans endpoint.
"""

import pytest


@pytest.mark.asyncio
class TestPlansRoute:
    async def test_list_plans(self, client):
        response = await client.get("/api/v1/billing/plans")

        assert response.status_code == 200
        plans = response.json()["plans"]
        assert [p["code"] for p in plans] == ["FREE", "STARTER_50", "PRO_100", "SCALE_400"]

        pro = plans[2]
        assert pro["monthly_price_cents"] == 10000
        assert pro["annual_price_cents"] == 96000
        assert pro["currency"] == "BRL"
        assert pro["limits"]["users_limit"] == 100
        assert "api_access" in pro["features"]

        scale = plans[3]
        assert scale["limits"]["organizations_limit"] is None
