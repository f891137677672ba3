"""Billing services."""

from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.usage_service import UsageService
from packages.billing.services.checkout_service import CheckoutService
from packages.billing.services.entitlement_service import EntitlementService

__all__ = [
    "SubscriptionService",
    "UsageService",
    "CheckoutService",
    "EntitlementService",
]
