"""
AbacatePay webhook handler for payment events.

Every delivery goes through, in order:
- source IP allowlist (when configured)
- shared secret (header or query parameter)
- body size limit
- HMAC-SHA256 signature over the raw body
- payload validation

Missing server credentials fail closed. Nothing is written before all checks
pass. Accepted events are recorded by provider event id first, so a
redelivered event is acknowledged without being applied twice.
"""

import base64
import hashlib
import hmac
import json
from datetime import datetime
from typing import Any, Callable, Optional

from fastapi import HTTPException, Request, status
from pydantic import ValidationError

from common.core.config import settings
from common.core.exceptions import PaymentVerificationFailed, WebhookNotConfigured
from common.core.otel_axiom_exporter import get_logger
from common.db.base import utc_now
from packages.billing.models.domain.checkout import CheckoutSession
from packages.billing.models.domain.enums import (
    CheckoutStatus,
    PaymentSource,
    WebhookProcessingStatus,
)
from packages.billing.models.domain.outcomes import evidence_from_payload, infer_outcome
from packages.billing.models.domain.webhooks import PaymentWebhookPayload, WebhookResult
from packages.billing.repositories.checkout_repository import CheckoutSessionRepository
from packages.billing.repositories.webhook_event_repository import WebhookEventRepository
from packages.billing.services.checkout_service import CheckoutService

logger = get_logger(__name__)

PROVIDER_NAME = "abacatepay"
SIGNATURE_HEADER = "x-webhook-signature"
SECRET_HEADER = "x-webhook-secret"
SECRET_QUERY_PARAMS = ("webhookSecret", "secret")
_CLIENT_IP_HEADERS = ("cf-connecting-ip", "x-real-ip", "x-forwarded-for")


# ==================== Verification ====================


def compute_webhook_signature(raw_body: bytes, key: str) -> str:
    digest = hmac.new(key.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_signature(raw_body: bytes, signature: Optional[str], key: str) -> bool:
    """Constant-time check of a base64 HMAC-SHA256 signature."""
    if not signature or not key:
        return False
    candidate = signature.strip()
    # Base64 output is ASCII; anything else cannot be a valid signature
    if not candidate.isascii():
        return False
    expected = compute_webhook_signature(raw_body, key)
    return hmac.compare_digest(expected.encode("ascii"), candidate.encode("ascii"))


def verify_webhook_secret(provided: Optional[str], expected: str) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def resolve_client_ip(request: Request) -> Optional[str]:
    """First client address reported by the proxy chain, else the socket peer."""
    for header in _CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if value:
            return value.split(",")[0].strip()
    return request.client.host if request.client else None


def _provided_secret(request: Request) -> Optional[str]:
    header_secret = request.headers.get(SECRET_HEADER)
    if header_secret:
        return header_secret
    for name in SECRET_QUERY_PARAMS:
        if request.query_params.get(name):
            return request.query_params[name]
    return None


async def read_verified_payload(request: Request) -> tuple[PaymentWebhookPayload, dict[str, Any]]:
    """
    Authenticate a delivery and parse it.

    Raises:
        HTTPException: 403 for a disallowed source, 413 for an oversized body,
            400 for a malformed payload.
        PaymentVerificationFailed: missing or wrong secret or signature.
        WebhookNotConfigured: the server has no secret or signature key.
    """
    allowed_ips = settings.allowed_webhook_ips
    client_ip = resolve_client_ip(request)
    if allowed_ips and client_ip not in allowed_ips:
        logger.warning(
            f"Rejected payment webhook from disallowed address {client_ip}",
            extra={"client_ip": client_ip},
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    if not settings.abacatepay_webhook_secret:
        logger.error("Payment webhook received but no webhook secret is configured")
        raise WebhookNotConfigured("Webhook secret is not configured")

    if not verify_webhook_secret(_provided_secret(request), settings.abacatepay_webhook_secret):
        logger.warning(
            "Rejected payment webhook with invalid secret",
            extra={"client_ip": client_ip},
        )
        raise PaymentVerificationFailed("Invalid webhook secret")

    declared_length = request.headers.get("content-length")
    if declared_length and declared_length.isdigit() and int(declared_length) > settings.webhook_max_body_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Payload too large",
        )
    raw_body = await request.body()
    if len(raw_body) > settings.webhook_max_body_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Payload too large",
        )

    signature_key = settings.abacatepay_webhook_signature_key
    if not signature_key:
        logger.error("Payment webhook received but no signature key is configured")
        raise WebhookNotConfigured("Webhook signature key is not configured")

    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        logger.warning(
            "Rejected payment webhook without signature",
            extra={"client_ip": client_ip},
        )
        raise PaymentVerificationFailed("Missing webhook signature")

    if not verify_webhook_signature(raw_body, signature, signature_key):
        logger.error(
            "Payment webhook signature verification failed",
            extra={"client_ip": client_ip, "body_bytes": len(raw_body)},
        )
        raise PaymentVerificationFailed("Invalid webhook signature")

    try:
        raw = json.loads(raw_body)
        payload = PaymentWebhookPayload.model_validate(raw)
    except ValidationError as e:
        logger.error(
            "Invalid payment webhook payload",
            extra={"validation_errors": e.errors(include_url=False, include_context=False)},
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload"
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body"
        )

    return payload, raw


# ==================== Processing ====================


class PaymentWebhookHandler:
    """Records and applies verified payment events."""

    def __init__(
        self,
        checkout_service: Optional[CheckoutService] = None,
        checkout_repo: Optional[CheckoutSessionRepository] = None,
        event_repo: Optional[WebhookEventRepository] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.checkout_service = checkout_service or CheckoutService()
        self.checkout_repo = checkout_repo or CheckoutSessionRepository()
        self.event_repo = event_repo or WebhookEventRepository()
        self.clock = clock or utc_now

    async def handle(
        self, payload: PaymentWebhookPayload, raw: Optional[dict[str, Any]] = None
    ) -> WebhookResult:
        is_new = await self.event_repo.record_if_new(
            payload.id,
            PROVIDER_NAME,
            payload.event,
            raw if raw is not None else payload.model_dump(mode="json", by_alias=True),
        )
        if not is_new:
            logger.info(
                f"Duplicate payment webhook {payload.id}",
                extra={"event_id": payload.id, "event_type": payload.event},
            )
            return WebhookResult(duplicate=True)

        logger.info(
            f"Received payment webhook: {payload.event}",
            extra={
                "event_id": payload.id,
                "event_type": payload.event,
                "dev_mode": payload.dev_mode,
            },
        )

        try:
            processed = await self._process(payload)
        except Exception as e:
            logger.error(
                f"Failed to process payment webhook {payload.id}: {e}",
                extra={"event_id": payload.id, "event_type": payload.event, "error": str(e)},
            )
            await self.event_repo.mark(
                payload.id, WebhookProcessingStatus.FAILED, error_message=str(e)[:1000]
            )
            raise

        return WebhookResult(processed=processed)

    async def _process(self, payload: PaymentWebhookPayload) -> bool:
        outcome = infer_outcome(payload)
        if outcome is None:
            await self._ignore(payload, f"Unhandled event {payload.event}")
            return False

        checkout = await self._resolve_checkout(payload)
        if checkout is None:
            await self._ignore(payload, "Checkout not found")
            return False

        billing_id = payload.data.billing.id if payload.data and payload.data.billing else None
        if checkout.provider_checkout_id and billing_id and billing_id != checkout.provider_checkout_id:
            await self._ignore(payload, "Billing id does not match checkout")
            return False

        evidence = evidence_from_payload(payload) if outcome == CheckoutStatus.PAID else None
        await self.checkout_service.apply_provider_outcome(
            checkout, outcome, evidence, PaymentSource.WEBHOOK
        )
        await self.event_repo.mark(
            payload.id, WebhookProcessingStatus.PROCESSED, processed_at=self.clock()
        )
        return True

    async def _resolve_checkout(self, payload: PaymentWebhookPayload) -> Optional[CheckoutSession]:
        """Match by provider billing id, then by our checkout id sent as external id."""
        data = payload.data
        if data is None:
            return None

        if data.billing and data.billing.id:
            checkout = await self.checkout_repo.get_by_provider_checkout_id(data.billing.id)
            if checkout:
                return checkout

        external_ids = []
        if data.transaction and data.transaction.external_id:
            external_ids.append(data.transaction.external_id)
        if data.billing:
            external_ids.extend(p.external_id for p in data.billing.products if p.external_id)

        for external_id in external_ids:
            checkout = await self.checkout_repo.get_by_checkout_id(external_id)
            if checkout:
                return checkout
        return None

    async def _ignore(self, payload: PaymentWebhookPayload, reason: str) -> None:
        logger.info(
            f"Ignored payment webhook {payload.id}: {reason}",
            extra={"event_id": payload.id, "event_type": payload.event},
        )
        await self.event_repo.mark(
            payload.id,
            WebhookProcessingStatus.IGNORED,
            error_message=reason,
            processed_at=self.clock(),
        )


async def handle_payment_webhook(
    request: Request, handler: Optional[PaymentWebhookHandler] = None
) -> WebhookResult:
    """Verify, record and apply one payment webhook delivery."""
    payload, raw = await read_verified_payload(request)
    handler = handler or PaymentWebhookHandler()
    return await handler.handle(payload, raw)
