"""
Webhook endpoints for billing events.

Public endpoints (no user auth) for AbacatePay webhooks.
"""

from fastapi import APIRouter, Depends, Request

from common.core.config import settings
from common.providers.rate_limiter.limiter import limiter
from packages.billing.dependencies import get_payment_webhook_handler
from packages.billing.models.domain.webhooks import WebhookResult
from packages.billing.webhooks.payment_webhook import (
    PaymentWebhookHandler,
    handle_payment_webhook,
)

router = APIRouter()


@router.post("/webhooks/payment", response_model=WebhookResult)
@limiter.limit(settings.webhook_rate_limit)
async def payment_webhook(
    request: Request,
    handler: PaymentWebhookHandler = Depends(get_payment_webhook_handler),
):
    """
    Receive payment events from AbacatePay.

    Authenticated by shared secret and, when configured, source IP allowlist
    and HMAC signature - all checked before anything is stored.
    """
    return await handle_payment_webhook(request, handler)
