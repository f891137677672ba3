"""
Domain models for checkout sessions and payment evidence.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator

from packages.billing.models.domain.enums import (
    BillingCycle,
    CheckoutStatus,
    PlanCode,
)


class CheckoutSession(BaseModel):
    """
    One attempt to pay for a plan.

    Write-once-then-closed: once the status is final the only accepted moves
    are PAID -> CHARGEBACK and a late provider PAID over FAILED/EXPIRED.
    """

    id: int
    checkout_id: str
    organization_id: int
    subscription_id: int
    owner_user_id: int

    target_plan_code: PlanCode
    billing_cycle: BillingCycle
    amount_cents: int
    currency: str

    status: CheckoutStatus
    provider_checkout_id: Optional[str] = None
    checkout_url: Optional[str] = None
    allow_same_plan: bool = False

    expires_at: datetime
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CheckoutSessionCreateModel(BaseModel):
    checkout_id: str
    organization_id: int
    subscription_id: int
    owner_user_id: int
    target_plan_code: str
    billing_cycle: str
    amount_cents: int
    currency: str
    status: str = CheckoutStatus.PENDING.value
    allow_same_plan: bool = False
    expires_at: datetime

    @field_validator("target_plan_code", "billing_cycle", "status", mode="before")
    @classmethod
    def validate_enum_value(cls, v):
        if isinstance(v, (PlanCode, BillingCycle, CheckoutStatus)):
            return v.value
        return v


class CheckoutSessionUpdateModel(BaseModel):
    status: Optional[str] = None
    provider_checkout_id: Optional[str] = None
    checkout_url: Optional[str] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        if isinstance(v, CheckoutStatus):
            return v.value
        return v


class PaymentEvidence(BaseModel):
    """Amount and currency the provider says were paid."""

    amount_cents: Optional[int] = None
    currency: Optional[str] = None
    provider_checkout_id: Optional[str] = None
