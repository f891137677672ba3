"""Billing repositories."""

from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.repositories.usage_repository import UsageCounterRepository
from packages.billing.repositories.checkout_repository import CheckoutSessionRepository
from packages.billing.repositories.cancellation_repository import (
    CancellationFeedbackRepository,
)
from packages.billing.repositories.webhook_event_repository import (
    WebhookEventRepository,
)
from packages.billing.repositories.feature_repository import (
    FeatureOverrideRepository,
    FeatureRolloutRepository,
)

__all__ = [
    "SubscriptionRepository",
    "UsageCounterRepository",
    "CheckoutSessionRepository",
    "CancellationFeedbackRepository",
    "WebhookEventRepository",
    "FeatureOverrideRepository",
    "FeatureRolloutRepository",
]
