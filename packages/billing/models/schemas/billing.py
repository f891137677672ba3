"""
API schemas for billing operations.

Request and response models for billing endpoints.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from packages.billing.models.domain.billing_profile import MAX_NAME_LENGTH
from packages.billing.models.domain.cancellation import MAX_FEEDBACK_NOTE_LENGTH
from packages.billing.models.domain.enums import (
    BillingCycle,
    BlockReason,
    CancellationReason,
    CheckoutStatus,
    PlanCode,
    SubscriptionStatus,
)
from packages.billing.models.domain.features import FeatureStatus
from packages.billing.models.domain.lifecycle import DunningState


# ============================================================================
# Subscription Schemas
# ============================================================================


class SubscriptionResponse(BaseModel):
    """Stored subscription state after a lifecycle move."""

    id: int
    organization_id: int
    status: SubscriptionStatus
    plan_code: PlanCode
    billing_cycle: BillingCycle
    pending_plan_code: Optional[PlanCode] = None
    trial_ends_at: Optional[datetime] = None
    current_period_starts_at: Optional[datetime] = None
    current_period_ends_at: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SubscriptionStatusResponse(BaseModel):
    """Current subscription status and what it grants right now."""

    organization_id: int
    status: SubscriptionStatus
    plan_code: PlanCode
    effective_plan_code: PlanCode
    billing_cycle: BillingCycle
    pending_plan_code: Optional[PlanCode] = None
    trial_ends_at: Optional[datetime] = None
    trial_used: bool
    current_period_ends_at: Optional[datetime] = None
    cancel_at_period_end: bool
    is_blocked: bool = Field(..., description="Whether the organization is locked out")
    block_reason: Optional[BlockReason] = None
    dunning: DunningState


class StartTrialRequest(BaseModel):
    plan_code: PlanCode


class CancelSubscriptionRequest(BaseModel):
    """Request to cancel; feedback is optional and never blocks the cancellation."""

    immediate: bool = Field(
        default=False,
        description="Drop to FREE now instead of at the end of the paid period.",
    )
    reason_code: Optional[CancellationReason] = None
    note: Optional[str] = Field(default=None, max_length=MAX_FEEDBACK_NOTE_LENGTH)


# ============================================================================
# Billing Profile Schemas
# ============================================================================


class BillingProfileRequest(BaseModel):
    """Who AbacatePay bills; required before the first checkout."""

    name: str = Field(..., max_length=MAX_NAME_LENGTH)
    cellphone: str = Field(..., max_length=32, description="Brazilian number with area code")
    tax_id: str = Field(..., max_length=32, description="CPF or CNPJ")
    email: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Defaults to the caller's email.",
    )


class BillingProfileResponse(BaseModel):
    organization_id: int
    billing_name: Optional[str] = None
    billing_cellphone: Optional[str] = None
    billing_tax_id: Optional[str] = None
    billing_email: Optional[str] = None
    has_billing_profile: bool
    has_provider_customer: bool


# ============================================================================
# Checkout Schemas
# ============================================================================


class CheckoutSessionRequest(BaseModel):
    """Request to create a checkout session."""

    plan_code: PlanCode
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    allow_same_plan: bool = Field(
        default=False,
        description="Pay for the plan already in effect (renewal, overdue payment).",
    )


class CheckoutSessionResponse(BaseModel):
    """Checkout session with the hosted payment URL."""

    checkout_id: str
    status: CheckoutStatus
    checkout_url: Optional[str] = Field(None, description="AbacatePay checkout URL")
    target_plan_code: PlanCode
    billing_cycle: BillingCycle
    amount_cents: int
    currency: str
    expires_at: datetime
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    class Config:
        from_attributes = True


class ReconcileCheckoutResponse(BaseModel):
    checkout: CheckoutSessionResponse
    provider_status: Optional[str] = None
    outcome: Optional[CheckoutStatus] = None
    applied: bool


# ============================================================================
# Invoice Schemas
# ============================================================================


class InvoiceResponse(BaseModel):
    provider_invoice_id: str
    status: CheckoutStatus
    amount_cents: int
    currency: str
    invoice_url: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# Feature Schemas
# ============================================================================


class FeaturesResponse(BaseModel):
    features: list[FeatureStatus]
