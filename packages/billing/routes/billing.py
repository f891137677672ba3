"""
Billing API routes.

Protected endpoints for subscription, checkout, usage and feature flags.
Reads are open to every member; mutations require OWNER or ADMIN.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from packages.auth.dependencies import get_billing_admin_user, get_current_active_user
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.billing.dependencies import (
    get_checkout_service,
    get_entitlement_service,
    get_invoice_service,
    get_subscription_service,
    get_usage_service,
)
from packages.billing.models.domain.entitlements import Entitlements
from packages.billing.models.domain.features import FeatureStatus
from packages.billing.models.domain.subscription import Subscription
from packages.billing.models.domain.usage import DEFAULT_USAGE_METRIC, UsageSnapshot
from packages.billing.models.schemas.billing import (
    BillingProfileRequest,
    BillingProfileResponse,
    CancelSubscriptionRequest,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    FeaturesResponse,
    InvoiceResponse,
    ReconcileCheckoutResponse,
    StartTrialRequest,
    SubscriptionResponse,
    SubscriptionStatusResponse,
)
from packages.billing.services.checkout_service import CheckoutService
from packages.billing.services.entitlement_service import EntitlementService
from packages.billing.services.invoice_service import InvoiceService
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.usage_service import UsageService

router = APIRouter()


# ============================================================================
# Subscription Status
# ============================================================================


@router.get("/status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service),
):
    """
    Get current subscription status for the organization.

    Creates a FREE subscription on first access and applies any lifecycle
    transition that became due.
    """
    entitlements = await entitlement_service.get_entitlements(
        current_user.organization_id
    )
    return SubscriptionStatusResponse(
        organization_id=entitlements.organization_id,
        status=entitlements.status,
        plan_code=entitlements.plan_code,
        effective_plan_code=entitlements.effective_plan_code,
        billing_cycle=entitlements.billing_cycle,
        pending_plan_code=entitlements.pending_plan_code,
        trial_ends_at=entitlements.trial_ends_at,
        trial_used=entitlements.trial_used,
        current_period_ends_at=entitlements.current_period_ends_at,
        cancel_at_period_end=entitlements.cancel_at_period_end,
        is_blocked=entitlements.is_blocked,
        block_reason=entitlements.block_reason,
        dunning=entitlements.dunning,
    )


@router.get("/entitlements", response_model=Entitlements)
async def get_entitlements(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service),
):
    return await entitlement_service.get_entitlements(current_user.organization_id)


# ============================================================================
# Usage
# ============================================================================


@router.get("/usage", response_model=UsageSnapshot)
async def get_usage(
    metric: str = DEFAULT_USAGE_METRIC,
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    usage_service: UsageService = Depends(get_usage_service),
):
    """Usage of a metric in the current calendar month."""
    return await usage_service.get_usage(current_user.organization_id, metric)


# ============================================================================
# Feature Flags
# ============================================================================


@router.get("/features", response_model=FeaturesResponse)
async def list_features(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service),
):
    features = await entitlement_service.list_feature_statuses(
        current_user.organization_id
    )
    return FeaturesResponse(features=features)


@router.get("/features/{feature_key}", response_model=FeatureStatus)
async def get_feature(
    feature_key: str,
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service),
):
    feature = await entitlement_service.get_feature_status(
        current_user.organization_id,
        feature_key,
        subject_key=f"{current_user.organization_id}:{current_user.user_id}",
    )
    if feature is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown feature: {feature_key}",
        )
    return feature


# ============================================================================
# Lifecycle
# ============================================================================


@router.post("/trial", response_model=SubscriptionResponse)
async def start_trial(
    request: StartTrialRequest,
    current_user: AuthenticatedUser = Depends(get_billing_admin_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """Start the organization's one trial of a paid plan."""
    return await subscription_service.start_trial(
        current_user.organization_id, request.plan_code
    )


@router.post("/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    request: CancelSubscriptionRequest,
    current_user: AuthenticatedUser = Depends(get_billing_admin_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Cancel subscription.

    Without ``immediate`` an active plan stays in effect until the end of the
    paid period.
    """
    return await subscription_service.cancel(
        current_user.organization_id,
        immediate=request.immediate,
        reason_code=request.reason_code,
        note=request.note,
    )


@router.post("/reactivate", response_model=SubscriptionResponse)
async def reactivate_subscription(
    current_user: AuthenticatedUser = Depends(get_billing_admin_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    return await subscription_service.reactivate(current_user.organization_id)


@router.post("/downgrade", response_model=SubscriptionResponse)
async def downgrade_to_free(
    current_user: AuthenticatedUser = Depends(get_billing_admin_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    return await subscription_service.downgrade_to_free(current_user.organization_id)


# ============================================================================
# Checkout
# ============================================================================


@router.get("/checkouts", response_model=list[CheckoutSessionResponse])
async def list_checkout_sessions(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    checkout_service: CheckoutService = Depends(get_checkout_service),
):
    return await checkout_service.list_checkouts(current_user.organization_id)


@router.get("/checkout/{checkout_id}", response_model=CheckoutSessionResponse)
async def get_checkout_session(
    checkout_id: str,
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    checkout_service: CheckoutService = Depends(get_checkout_service),
):
    return await checkout_service.get_checkout(current_user.organization_id, checkout_id)


@router.post("/checkout", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    request: CheckoutSessionRequest,
    current_user: AuthenticatedUser = Depends(get_billing_admin_user),
    checkout_service: CheckoutService = Depends(get_checkout_service),
):
    """Create an AbacatePay checkout for a paid plan."""
    return await checkout_service.create_checkout(
        current_user.organization_id,
        request.plan_code,
        billing_cycle=request.billing_cycle,
        allow_same_plan=request.allow_same_plan,
    )


@router.post("/checkout/{checkout_id}/simulate-payment", response_model=SubscriptionResponse)
async def simulate_checkout_payment(
    checkout_id: str,
    current_user: AuthenticatedUser = Depends(get_billing_admin_user),
    checkout_service: CheckoutService = Depends(get_checkout_service),
):
    """Mark a checkout as paid. Not available in production."""
    return await checkout_service.simulate_payment(
        current_user.organization_id, checkout_id
    )


@router.post("/checkout/{checkout_id}/reconcile", response_model=ReconcileCheckoutResponse)
async def reconcile_checkout(
    checkout_id: str,
    current_user: AuthenticatedUser = Depends(get_billing_admin_user),
    checkout_service: CheckoutService = Depends(get_checkout_service),
):
    """Pull the checkout's state from AbacatePay, for when a webhook was missed."""
    result = await checkout_service.reconcile_checkout(
        current_user.organization_id, checkout_id
    )
    return ReconcileCheckoutResponse(
        checkout=CheckoutSessionResponse.model_validate(result.checkout),
        provider_status=result.provider_status,
        outcome=result.outcome,
        applied=result.applied,
    )


# ============================================================================
# Billing Profile
# ============================================================================


def _profile_response(subscription: Subscription) -> BillingProfileResponse:
    return BillingProfileResponse(
        organization_id=subscription.organization_id,
        billing_name=subscription.billing_name,
        billing_cellphone=subscription.billing_cellphone,
        billing_tax_id=subscription.billing_tax_id,
        billing_email=subscription.billing_email,
        has_billing_profile=subscription.has_billing_profile,
        has_provider_customer=subscription.provider_customer_id is not None,
    )


@router.get("/profile", response_model=BillingProfileResponse)
async def get_billing_profile(
    current_user: AuthenticatedUser = Depends(get_billing_admin_user),
    entitlement_service: EntitlementService = Depends(get_entitlement_service),
):
    subscription = await entitlement_service.ensure_subscription(
        current_user.organization_id
    )
    return _profile_response(subscription)


@router.put("/profile", response_model=BillingProfileResponse)
async def update_billing_profile(
    request: BillingProfileRequest,
    current_user: AuthenticatedUser = Depends(get_billing_admin_user),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """Set the billing name, cellphone, CPF/CNPJ and email used for checkouts."""
    subscription = await subscription_service.update_billing_profile(
        current_user.organization_id,
        name=request.name,
        cellphone=request.cellphone,
        tax_id=request.tax_id,
        email=request.email or current_user.email,
    )
    return _profile_response(subscription)


# ============================================================================
# Invoices
# ============================================================================


@router.get("/invoices", response_model=list[InvoiceResponse])
async def list_invoices(
    current_user: AuthenticatedUser = Depends(get_current_active_user),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    """Most recent invoices of the organization."""
    return await invoice_service.list_invoices(current_user.organization_id)


@router.post("/invoices/sync", response_model=list[InvoiceResponse])
async def sync_invoices(
    current_user: AuthenticatedUser = Depends(get_billing_admin_user),
    invoice_service: InvoiceService = Depends(get_invoice_service),
):
    """Refresh invoices from AbacatePay's billing list."""
    return await invoice_service.sync_from_provider(current_user.organization_id)
