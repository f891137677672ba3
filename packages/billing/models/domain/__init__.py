"""Domain models for billing."""

from packages.billing.models.domain.enums import (
    BillingCycle,
    BlockReason,
    CheckoutStatus,
    PlanCode,
    PlanFeature,
    SubscriptionStatus,
)
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionCreateModel,
    SubscriptionUpdateModel,
)
from packages.billing.models.domain.usage import QuotaCheck, UsageSnapshot
from packages.billing.models.domain.entitlements import Entitlements

__all__ = [
    # Enums
    "BillingCycle",
    "BlockReason",
    "CheckoutStatus",
    "PlanCode",
    "PlanFeature",
    "SubscriptionStatus",
    # Subscription
    "Subscription",
    "SubscriptionCreateModel",
    "SubscriptionUpdateModel",
    "Entitlements",
    # Usage
    "QuotaCheck",
    "UsageSnapshot",
]
