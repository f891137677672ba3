"""
Unit tests for notification providers.
"""

import json
from datetime import datetime, timezone

import httpx
import pytest

from common.core.config import settings
from common.providers.notifications import (
    MemberRemoved,
    PaymentApproved,
    UsageThresholdReached,
    get_notification_provider,
)
from common.providers.notifications.http_notifier import HttpNotificationProvider
from common.providers.notifications.log_notifier import LogNotificationProvider


class TestNotificationFactory:
    def test_defaults_to_log_without_relay_url(self, monkeypatch):
        monkeypatch.setattr(settings, "notification_webhook_url", None)
        assert isinstance(get_notification_provider(), LogNotificationProvider)

    def test_http_when_relay_url_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "notification_webhook_url", "https://hooks.test/n")
        provider = get_notification_provider()
        assert isinstance(provider, HttpNotificationProvider)
        assert provider.url == "https://hooks.test/n"

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            get_notification_provider("carrier_pigeon")

    def test_http_requires_url(self, monkeypatch):
        monkeypatch.setattr(settings, "notification_webhook_url", None)
        with pytest.raises(ValueError):
            get_notification_provider("http")


@pytest.mark.asyncio
class TestNotificationProviders:
    async def test_log_provider(self, caplog):
        event = UsageThresholdReached(
            organization_id=1, metric_key="workspace_events", threshold_percent=80,
            consumed=80, limit=100,
        )

        with caplog.at_level("INFO"):
            await LogNotificationProvider().notify(event)

        assert "usage_threshold_reached" in caplog.text

    async def test_http_provider_posts_event(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(204)

        provider = HttpNotificationProvider(
            url="https://hooks.test/n", transport=httpx.MockTransport(handler)
        )
        await provider.notify(
            PaymentApproved(
                organization_id=1,
                owner_user_id=2,
                checkout_id="checkout_1",
                plan_code="PRO_100",
                amount_cents=10000,
                currency="BRL",
                paid_at=datetime(2025, 3, 10, tzinfo=timezone.utc),
                source="webhook",
            )
        )

        assert received[0]["kind"] == "payment_approved"
        assert received[0]["amount_cents"] == 10000

    async def test_http_provider_raises_on_error_status(self):
        provider = HttpNotificationProvider(
            url="https://hooks.test/n",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )

        with pytest.raises(httpx.HTTPStatusError):
            await provider.notify(MemberRemoved(organization_id=1, user_id=2))
