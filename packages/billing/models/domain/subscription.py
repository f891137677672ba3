"""
Domain models for subscriptions.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator

from packages.billing.models.domain.enums import (
    BillingCycle,
    ExpiryReason,
    PlanCode,
    SubscriptionStatus,
)


class Subscription(BaseModel):
    """
    Organization subscription domain model.

    ``plan_code`` is the stored plan. What the organization can actually use
    right now is the effective plan, see
    ``packages.billing.models.domain.lifecycle.resolve_effective_plan``.
    """

    id: int
    owner_user_id: int
    organization_id: int

    status: SubscriptionStatus
    plan_code: PlanCode
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    pending_plan_code: Optional[PlanCode] = None

    trial_ends_at: Optional[datetime] = None
    trial_used_at: Optional[datetime] = None

    current_period_starts_at: Optional[datetime] = None
    current_period_ends_at: Optional[datetime] = None
    cancel_at_period_end: bool = False

    grace_ends_at: Optional[datetime] = None
    expiry_reason: Optional[ExpiryReason] = None
    canceled_at: Optional[datetime] = None

    billing_name: Optional[str] = None
    billing_cellphone: Optional[str] = None
    billing_tax_id: Optional[str] = None
    billing_email: Optional[str] = None
    provider_customer_id: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def has_billing_profile(self) -> bool:
        return all(
            (
                self.billing_name,
                self.billing_cellphone,
                self.billing_tax_id,
                self.billing_email,
            )
        )


class SubscriptionCreateModel(BaseModel):
    """Model for creating a new subscription."""

    owner_user_id: int
    organization_id: int
    status: str = SubscriptionStatus.FREE.value
    plan_code: str = PlanCode.FREE.value
    billing_cycle: str = BillingCycle.MONTHLY.value
    cancel_at_period_end: bool = False


class SubscriptionUpdateModel(BaseModel):
    """Model for updating a subscription.

    Only explicitly set fields are written; pass ``None`` to clear a column.
    """

    status: Optional[str] = None
    plan_code: Optional[str] = None
    billing_cycle: Optional[str] = None
    pending_plan_code: Optional[str] = None

    trial_ends_at: Optional[datetime] = None
    trial_used_at: Optional[datetime] = None

    current_period_starts_at: Optional[datetime] = None
    current_period_ends_at: Optional[datetime] = None
    cancel_at_period_end: Optional[bool] = None

    grace_ends_at: Optional[datetime] = None
    expiry_reason: Optional[str] = None
    canceled_at: Optional[datetime] = None

    billing_name: Optional[str] = None
    billing_cellphone: Optional[str] = None
    billing_tax_id: Optional[str] = None
    billing_email: Optional[str] = None
    provider_customer_id: Optional[str] = None

    @field_validator(
        "status",
        "plan_code",
        "billing_cycle",
        "pending_plan_code",
        "expiry_reason",
        mode="before",
    )
    @classmethod
    def validate_enum_value(cls, v):
        if isinstance(v, (SubscriptionStatus, PlanCode, BillingCycle, ExpiryReason)):
            return v.value
        return v
