import pytest
from httpx import AsyncClient

from api.main import app
from packages.billing.providers.payment import get_payment_provider


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/api/v1/health/")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "tenant-billing"}

    async def test_db_health_check(self, client: AsyncClient):
        response = await client.get("/api/v1/health/db")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"

    @pytest.mark.parametrize("reachable,expected", [(True, "healthy"), (False, "unhealthy")])
    async def test_payment_provider_check(
        self, client: AsyncClient, mock_payment_provider, reachable, expected
    ):
        mock_payment_provider.health_check.return_value = reachable
        app.dependency_overrides[get_payment_provider] = lambda: mock_payment_provider

        response = await client.get("/api/v1/health/payments")

        assert response.status_code == 200
        assert response.json()["status"] == expected

    async def test_healthz(self, client: AsyncClient):
        response = await client.get("/healthz")
        assert response.json() == {"status": "ok"}
