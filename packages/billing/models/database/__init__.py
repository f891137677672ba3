"""Database models for billing."""

from packages.billing.models.database.subscription import SubscriptionEntity
from packages.billing.models.database.usage import UsageCounterEntity
from packages.billing.models.database.checkout import CheckoutSessionEntity
from packages.billing.models.database.invoice import InvoiceEntity
from packages.billing.models.database.cancellation import CancellationFeedbackEntity
from packages.billing.models.database.webhook_event import WebhookEventEntity
from packages.billing.models.database.features import (
    FeatureOverrideEntity,
    FeatureRolloutEntity,
)

__all__ = [
    "SubscriptionEntity",
    "UsageCounterEntity",
    "CheckoutSessionEntity",
    "InvoiceEntity",
    "CancellationFeedbackEntity",
    "WebhookEventEntity",
    "FeatureOverrideEntity",
    "FeatureRolloutEntity",
]
