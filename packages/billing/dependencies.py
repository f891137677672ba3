"""
Service factories for billing routes.

Routes receive fully constructed services through ``Depends`` so tests can
swap collaborators with ``app.dependency_overrides``.
"""

from common.providers.notifications import (
    NotificationProviderInterface,
    get_notification_provider,
)
from packages.billing.providers.payment import get_payment_provider
from packages.billing.services.checkout_service import CheckoutService
from packages.billing.services.entitlement_service import EntitlementService
from packages.billing.services.invoice_service import InvoiceService
from packages.billing.services.limits_service import LimitsService
from packages.billing.services.plans_service import PlansService
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.usage_service import UsageService
from packages.billing.webhooks.payment_webhook import PaymentWebhookHandler


def get_notifier() -> NotificationProviderInterface:
    return get_notification_provider()


def get_entitlement_service() -> EntitlementService:
    return EntitlementService(notifier=get_notifier())


def get_plans_service() -> PlansService:
    return PlansService()


def get_limits_service() -> LimitsService:
    return LimitsService(entitlement_service=get_entitlement_service())


def get_subscription_service() -> SubscriptionService:
    return SubscriptionService(entitlement_service=get_entitlement_service())


def get_usage_service() -> UsageService:
    return UsageService(
        entitlement_service=get_entitlement_service(), notifier=get_notifier()
    )


def get_invoice_service() -> InvoiceService:
    return InvoiceService(payment_provider=get_payment_provider())


def get_checkout_service() -> CheckoutService:
    payment_provider = get_payment_provider()
    return CheckoutService(
        entitlement_service=get_entitlement_service(),
        payment_provider=payment_provider,
        notifier=get_notifier(),
        invoice_service=InvoiceService(payment_provider=payment_provider),
    )


def get_payment_webhook_handler() -> PaymentWebhookHandler:
    return PaymentWebhookHandler(checkout_service=get_checkout_service())
