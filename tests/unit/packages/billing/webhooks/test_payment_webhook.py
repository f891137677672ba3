"""
Unit tests for the payment webhook handler and its verification helpers.
"""

import pytest
import pytest_asyncio
from starlette.requests import Request

from common.core.exceptions import ValidationError
from packages.billing.models.domain.enums import (
    CheckoutStatus,
    PlanCode,
    SubscriptionStatus,
    WebhookProcessingStatus,
)
from packages.billing.models.domain.webhooks import PaymentWebhookPayload
from packages.billing.repositories.checkout_repository import CheckoutSessionRepository
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.repositories.webhook_event_repository import WebhookEventRepository
from packages.billing.services.checkout_service import CheckoutService
from packages.billing.services.entitlement_service import EntitlementService
from packages.billing.webhooks.payment_webhook import (
    PaymentWebhookHandler,
    compute_webhook_signature,
    resolve_client_ip,
    verify_webhook_secret,
    verify_webhook_signature,
)


def make_payload(event_id: str, event: str = "billing.paid", **billing) -> PaymentWebhookPayload:
    data = {
        "id": "bill_mock123",
        "status": "PAID",
        "paidAmount": 10000,
        "currency": "BRL",
    }
    data.update(billing)
    return PaymentWebhookPayload.model_validate(
        {"id": event_id, "event": event, "devMode": True, "data": {"billing": data}}
    )


def make_request(headers: dict, client=("203.0.113.9", 443)) -> Request:
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/api/v1/webhooks/payment",
            "query_string": b"",
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
            "client": client,
        }
    )


@pytest.fixture
def checkout_service(clock, mock_payment_provider, mock_notifier):
    return CheckoutService(
        entitlement_service=EntitlementService(clock=clock),
        payment_provider=mock_payment_provider,
        notifier=mock_notifier,
        clock=clock,
    )


@pytest.fixture
def handler(checkout_service, clock):
    return PaymentWebhookHandler(checkout_service=checkout_service, clock=clock)


@pytest_asyncio.fixture
async def pending_checkout(checkout_service, sample_subscription):
    return await checkout_service.create_checkout(
        sample_subscription.organization_id, PlanCode.PRO_100
    )


class TestVerificationHelpers:
    def test_signature_round_trip(self):
        body = b'{"id":"evt_1"}'
        signature = compute_webhook_signature(body, "sig_key")

        assert verify_webhook_signature(body, signature, "sig_key")
        assert not verify_webhook_signature(body + b" ", signature, "sig_key")
        assert not verify_webhook_signature(body, signature, "other_key")
        assert not verify_webhook_signature(body, None, "sig_key")
        assert not verify_webhook_signature(body, signature, "")

    def test_non_ascii_signature_is_rejected(self):
        body = b'{"id":"evt_1"}'
        signature = compute_webhook_signature(body, "sig_key")

        assert not verify_webhook_signature(body, signature + "\u00e9", "sig_key")
        assert not verify_webhook_signature(body, "\u00e9" + signature, "sig_key")

    def test_secret(self):
        assert verify_webhook_secret("s3cret", "s3cret")
        assert not verify_webhook_secret("wrong", "s3cret")
        assert not verify_webhook_secret("s3cret", "")
        assert not verify_webhook_secret(None, "s3cret")

    def test_client_ip_prefers_proxy_headers(self):
        assert resolve_client_ip(make_request({})) == "203.0.113.9"
        assert (
            resolve_client_ip(make_request({"X-Forwarded-For": "198.51.100.1, 10.0.0.1"}))
            == "198.51.100.1"
        )
        assert (
            resolve_client_ip(
                make_request({"CF-Connecting-IP": "192.0.2.7", "X-Real-IP": "192.0.2.8"})
            )
            == "192.0.2.7"
        )
        assert resolve_client_ip(make_request({}, client=None)) is None


@pytest.mark.asyncio
class TestPaymentWebhookHandler:
    async def test_paid_event_activates_subscription(
        self, handler, pending_checkout, sample_subscription
    ):
        result = await handler.handle(make_payload("evt_paid"))

        assert result.processed is True
        assert result.duplicate is False
        subscription = await SubscriptionRepository().get_by_organization_id(
            sample_subscription.organization_id
        )
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.plan_code == PlanCode.PRO_100
        event = await WebhookEventRepository().get_by_event_id("evt_paid")
        assert event.status == WebhookProcessingStatus.PROCESSED
        assert event.provider == "abacatepay"

    async def test_duplicate_event_is_acknowledged(
        self, handler, pending_checkout, mock_notifier
    ):
        await handler.handle(make_payload("evt_dup"))

        result = await handler.handle(make_payload("evt_dup"))

        assert result.duplicate is True
        assert result.processed is False
        mock_notifier.notify.assert_awaited_once()

    async def test_billing_id_mismatch_is_ignored(self, handler, pending_checkout):
        payload = make_payload(
            "evt_external",
            id="bill_unknown",
            products=[
                {"externalId": pending_checkout.checkout_id, "quantity": 1, "price": 10000}
            ],
        )

        result = await handler.handle(payload)

        assert result.processed is False
        event = await WebhookEventRepository().get_by_event_id("evt_external")
        assert event.status == WebhookProcessingStatus.IGNORED
        assert event.error_message == "Billing id does not match checkout"

    async def test_checkout_matched_by_transaction_external_id(
        self, handler, pending_checkout
    ):
        payload = PaymentWebhookPayload.model_validate(
            {
                "id": "evt_tx",
                "event": "transaction.updated",
                "data": {
                    "transaction": {
                        "externalId": pending_checkout.checkout_id,
                        "status": "COMPLETE",
                        "amount": "10000",
                        "currency": "brl",
                    }
                },
            }
        )

        result = await handler.handle(payload)

        assert result.processed is True
        checkout = await CheckoutSessionRepository().get(pending_checkout.id)
        assert checkout.status == CheckoutStatus.PAID

    async def test_unhandled_event_is_ignored(self, handler, pending_checkout):
        result = await handler.handle(
            make_payload("evt_other", event="customer.created", status="PENDING")
        )

        assert result.processed is False
        event = await WebhookEventRepository().get_by_event_id("evt_other")
        assert event.status == WebhookProcessingStatus.IGNORED

    async def test_unknown_checkout_is_ignored(self, handler, sample_subscription):
        result = await handler.handle(make_payload("evt_orphan", id="bill_nobody"))

        assert result.processed is False
        event = await WebhookEventRepository().get_by_event_id("evt_orphan")
        assert event.error_message == "Checkout not found"

    async def test_failed_event_closes_checkout(self, handler, pending_checkout):
        result = await handler.handle(
            make_payload("evt_failed", event="billing.failed", status="CANCELLED")
        )

        assert result.processed is True
        checkout = await CheckoutSessionRepository().get(pending_checkout.id)
        assert checkout.status == CheckoutStatus.FAILED

    async def test_processing_error_marks_event_failed(self, handler, pending_checkout):
        with pytest.raises(ValidationError):
            await handler.handle(make_payload("evt_short", paidAmount=1))

        event = await WebhookEventRepository().get_by_event_id("evt_short")
        assert event.status == WebhookProcessingStatus.FAILED
        assert "does not match" in event.error_message
        checkout = await CheckoutSessionRepository().get(pending_checkout.id)
        assert checkout.status == CheckoutStatus.PENDING
