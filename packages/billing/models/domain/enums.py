"""
Billing enums - strongly typed enumerations for subscription and billing states.
"""

from enum import Enum


class PlanCode(str, Enum):
    """Plan codes of the static catalog, cheapest first."""

    FREE = "FREE"
    STARTER_50 = "STARTER_50"
    PRO_100 = "PRO_100"
    SCALE_400 = "SCALE_400"

    @property
    def is_paid(self) -> bool:
        return self != PlanCode.FREE

    @property
    def rank(self) -> int:
        return list(PlanCode).index(self)


def to_plan_code(value: object) -> PlanCode:
    """Parse a stored or user-supplied plan code, falling back to FREE."""
    try:
        return PlanCode(str(value).strip().upper())
    except ValueError:
        return PlanCode.FREE


class SubscriptionStatus(str, Enum):
    """
    Subscription lifecycle.

    Flow: FREE -> TRIALING -> ACTIVE -> {PAST_DUE, CANCELED} -> EXPIRED
    """

    FREE = "FREE"
    TRIALING = "TRIALING"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"  # Period ended unpaid, inside the grace window
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"


class BillingCycle(str, Enum):
    MONTHLY = "MONTHLY"
    ANNUAL = "ANNUAL"

    @property
    def period_days(self) -> int:
        return 365 if self == BillingCycle.ANNUAL else 30


class ExpiryReason(str, Enum):
    """Why a subscription ended up EXPIRED."""

    TRIAL_ENDED = "TRIAL_ENDED"
    PAYMENT_OVERDUE = "PAYMENT_OVERDUE"
    PAYMENT_REVERSED = "PAYMENT_REVERSED"


class BlockReason(str, Enum):
    TRIAL_EXPIRED = "TRIAL_EXPIRED"
    PAYMENT_OVERDUE = "PAYMENT_OVERDUE"
    PAYMENT_REVERSED = "PAYMENT_REVERSED"
    SEAT_LIMIT_EXCEEDED = "SEAT_LIMIT_EXCEEDED"


class CheckoutStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    CHARGEBACK = "CHARGEBACK"

    @property
    def is_final(self) -> bool:
        return self != CheckoutStatus.PENDING


class PaymentSource(str, Enum):
    """Entry point that reported a payment outcome."""

    WEBHOOK = "webhook"
    SIMULATED = "simulated"
    RECONCILE = "reconcile"


class CancellationReason(str, Enum):
    TOO_EXPENSIVE = "TOO_EXPENSIVE"
    MISSING_FEATURES = "MISSING_FEATURES"
    LOW_USAGE = "LOW_USAGE"
    SWITCHING_PROVIDER = "SWITCHING_PROVIDER"
    TEMPORARY_PAUSE = "TEMPORARY_PAUSE"
    SUPPORT_ISSUES = "SUPPORT_ISSUES"
    OTHER = "OTHER"


class WebhookProcessingStatus(str, Enum):
    RECEIVED = "RECEIVED"
    PROCESSED = "PROCESSED"
    IGNORED = "IGNORED"
    FAILED = "FAILED"


class PlanFeature(str, Enum):
    TEAM_INVITES = "team_invites"
    BULK_PRODUCT_ACTIONS = "bulk_product_actions"
    ADVANCED_ANALYTICS = "advanced_analytics"
    API_ACCESS = "api_access"
    PRIORITY_SUPPORT = "priority_support"

    @classmethod
    def parse(cls, value: str) -> "PlanFeature | None":
        try:
            return cls(value)
        except ValueError:
            return None


class FeatureSource(str, Enum):
    OVERRIDE = "override"
    PLAN = "plan"
    ROLLOUT = "rollout"
    DISABLED = "disabled"
