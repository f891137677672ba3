"""
Service for checkout sessions and payment confirmation.

Three entry points can report a payment: the provider webhook, the
non-production simulation and provider reconciliation. All of them end in
``confirm_payment`` (or ``apply_provider_outcome``), which claims the
checkout with a compare-and-swap on its status so the subscription is
activated exactly once.

Provider calls are never made inside a database transaction.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import uuid4

from pydantic import BaseModel

from common.core.best_effort import best_effort
from common.core.config import settings
from common.core.exceptions import (
    InvalidStateTransition,
    NotFoundError,
    PaymentProviderError,
    UntrustedRedirect,
    ValidationError,
)
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.base import utc_now
from common.db.context import readonly
from common.db.scoped import transaction
from common.providers.notifications import (
    NotificationProviderInterface,
    get_notification_provider,
)
from common.providers.notifications.models import PaymentApproved
from packages.billing.models.domain.checkout import (
    CheckoutSession,
    CheckoutSessionCreateModel,
    CheckoutSessionUpdateModel,
    PaymentEvidence,
)
from packages.billing.models.domain.enums import (
    BillingCycle,
    CheckoutStatus,
    ExpiryReason,
    PaymentSource,
    PlanCode,
    SubscriptionStatus,
)
from packages.billing.models.domain.outcomes import (
    outcome_from_billing_status,
    parse_amount_cents,
    parse_currency,
    sum_products_cents,
    verify_payment_evidence,
)
from packages.billing.models.domain.plans import get_plan
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionUpdateModel,
)
from packages.billing.providers.payment import (
    PaymentProviderInterface,
    get_payment_provider,
)
from packages.billing.providers.payment.models import (
    CheckoutRequest,
    CustomerRequest,
    ProviderCheckout,
)
from packages.billing.providers.payment.trusted_urls import is_trusted_checkout_url
from packages.billing.repositories.checkout_repository import CheckoutSessionRepository
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.services.entitlement_service import EntitlementService
from packages.billing.services.invoice_service import InvoiceService

logger = get_logger(__name__)

# Sessions that may still be claimed by a provider PAID report
_PAYABLE_STATUSES = (
    CheckoutStatus.PENDING,
    CheckoutStatus.FAILED,
    CheckoutStatus.EXPIRED,
)


class ReconcileResult(BaseModel):
    """What reconciliation found at the provider and whether it changed anything."""

    checkout: CheckoutSession
    provider_status: Optional[str] = None
    outcome: Optional[CheckoutStatus] = None
    applied: bool = False


class CheckoutService:
    """Service for checkout creation, payment confirmation and reconciliation."""

    def __init__(
        self,
        entitlement_service: Optional[EntitlementService] = None,
        subscription_repo: Optional[SubscriptionRepository] = None,
        checkout_repo: Optional[CheckoutSessionRepository] = None,
        payment_provider: Optional[PaymentProviderInterface] = None,
        notifier: Optional[NotificationProviderInterface] = None,
        invoice_service: Optional[InvoiceService] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.clock = clock or utc_now
        self.entitlement_service = entitlement_service or EntitlementService(
            clock=self.clock
        )
        self.subscription_repo = subscription_repo or SubscriptionRepository()
        self.checkout_repo = checkout_repo or CheckoutSessionRepository()
        self.payment_provider = payment_provider or get_payment_provider()
        self.notifier = notifier or get_notification_provider()
        self.invoice_service = invoice_service or InvoiceService(
            payment_provider=self.payment_provider
        )

    # ==================== Queries ====================

    @trace_span
    async def get_checkout(self, organization_id: int, checkout_id: str) -> CheckoutSession:
        """Checkout of an organization; other organizations' sessions are not found."""
        checkout = await self.checkout_repo.get_by_checkout_id(checkout_id)
        if not checkout or checkout.organization_id != organization_id:
            raise NotFoundError(f"Checkout {checkout_id} not found")
        return checkout

    @trace_span
    @readonly
    async def list_checkouts(self, organization_id: int) -> list[CheckoutSession]:
        return await self.checkout_repo.list_by_organization(organization_id)

    # ==================== Creation ====================

    @trace_span
    async def create_checkout(
        self,
        organization_id: int,
        plan_code: PlanCode,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        allow_same_plan: bool = False,
    ) -> CheckoutSession:
        """
        Open a hosted checkout for a paid plan.

        Raises:
            ValidationError: plan is not a paid plan, or the billing profile
                is incomplete.
            InvalidStateTransition: the organization already has that plan in
                effect and ``allow_same_plan`` is not set.
            PaymentProviderError: the provider could not register the customer
                or open a checkout.
            UntrustedRedirect: the provider returned a URL off the allowlist.
        """
        if not plan_code.is_paid:
            raise ValidationError("Checkout is only available for paid plans")

        entitlements = await self.entitlement_service.get_entitlements(organization_id)
        if entitlements.effective_plan_code == plan_code and not allow_same_plan:
            raise InvalidStateTransition(
                f"Organization is already on {plan_code.value}"
            )

        customer_id = await self._ensure_customer(entitlements.subscription_id)
        plan = get_plan(plan_code)
        now = self.clock()
        checkout_id = f"checkout_{uuid4().hex}"

        async with transaction():
            expired = await self.checkout_repo.expire_stale_pending(organization_id, now)
            if expired:
                logger.info(
                    f"Expired {expired} stale checkout(s) for organization {organization_id}",
                    extra={"organization_id": organization_id, "expired": expired},
                )
            checkout = await self.checkout_repo.create(
                CheckoutSessionCreateModel(
                    checkout_id=checkout_id,
                    organization_id=organization_id,
                    subscription_id=entitlements.subscription_id,
                    owner_user_id=entitlements.owner_user_id,
                    target_plan_code=plan_code,
                    billing_cycle=billing_cycle,
                    amount_cents=plan.price_cents(billing_cycle),
                    currency=settings.billing_currency,
                    allow_same_plan=allow_same_plan,
                    expires_at=now
                    + timedelta(minutes=settings.checkout_session_ttl_minutes),
                )
            )

        request = CheckoutRequest(
            checkout_id=checkout_id,
            organization_id=organization_id,
            plan_code=plan_code.value,
            plan_name=plan.name,
            billing_cycle=billing_cycle.value,
            amount_cents=checkout.amount_cents,
            currency=checkout.currency,
            return_url=f"{settings.app_base_url}/billing",
            completion_url=f"{settings.app_base_url}/billing?checkout={checkout_id}",
            customer_id=customer_id,
        )
        try:
            provider_checkout = await self.payment_provider.create_checkout_session(request)
        except PaymentProviderError as e:
            await self._mark_failed(checkout, e.message)
            raise
        except Exception as e:
            await self._mark_failed(checkout, f"Unexpected provider error: {e}")
            raise PaymentProviderError(f"Checkout could not be created: {e}") from e

        if not is_trusted_checkout_url(
            provider_checkout.url, settings.allowed_checkout_hosts
        ):
            logger.error(
                f"Provider returned untrusted checkout URL for {checkout_id}",
                extra={
                    "checkout_id": checkout_id,
                    "organization_id": organization_id,
                    "provider_checkout_id": provider_checkout.id,
                    "checkout_url": provider_checkout.url,
                },
            )
            await self._mark_failed(checkout, "Untrusted checkout URL returned by provider")
            raise UntrustedRedirect("Payment provider returned an untrusted checkout URL")

        async with transaction():
            checkout = await self.checkout_repo.update(
                checkout.id,
                CheckoutSessionUpdateModel(
                    provider_checkout_id=provider_checkout.id,
                    checkout_url=provider_checkout.url,
                ),
            )
            await self.subscription_repo.update(
                entitlements.subscription_id,
                SubscriptionUpdateModel(pending_plan_code=plan_code),
            )
            await self.invoice_service.record_checkout_invoice(
                checkout,
                CheckoutStatus.PENDING,
                provider_invoice_id=provider_checkout.id,
                invoice_url=provider_checkout.url,
            )

        logger.info(
            f"Created checkout {checkout_id} for organization {organization_id}",
            extra={
                "checkout_id": checkout_id,
                "organization_id": organization_id,
                "plan_code": plan_code.value,
                "billing_cycle": billing_cycle.value,
                "amount_cents": checkout.amount_cents,
                "provider_checkout_id": provider_checkout.id,
            },
        )
        return checkout

    async def _ensure_customer(self, subscription_id: int) -> str:
        """
        Provider customer id for the subscription, registering one if needed.

        A customer the same owner already registered with the same tax id is
        reused. The id is stored with a compare-and-swap so concurrent
        checkouts settle on one customer.
        """
        subscription = await self.subscription_repo.get(subscription_id)
        if not subscription:
            raise NotFoundError(f"Subscription {subscription_id} not found")
        if subscription.provider_customer_id:
            return subscription.provider_customer_id
        if not subscription.has_billing_profile:
            raise ValidationError(
                "Billing name, cellphone, tax id and email are required before checkout"
            )

        customer_id = await self.subscription_repo.find_provider_customer_id(
            subscription.owner_user_id, subscription.billing_tax_id, subscription.id
        )
        if customer_id is None:
            try:
                customer = await self.payment_provider.create_customer(
                    CustomerRequest(
                        name=subscription.billing_name,
                        cellphone=subscription.billing_cellphone,
                        email=subscription.billing_email,
                        tax_id=subscription.billing_tax_id,
                    )
                )
            except PaymentProviderError:
                raise
            except Exception as e:
                raise PaymentProviderError(f"Customer could not be created: {e}") from e
            customer_id = customer.id

        stored = await self.subscription_repo.compare_and_update(
            subscription.id,
            {"provider_customer_id": None},
            SubscriptionUpdateModel(provider_customer_id=customer_id),
        )
        if not stored:
            current = await self.subscription_repo.get(subscription.id)
            if current and current.provider_customer_id:
                return current.provider_customer_id

        logger.info(
            f"Linked provider customer to subscription {subscription.id}",
            extra={
                "subscription_id": subscription.id,
                "organization_id": subscription.organization_id,
                "provider_customer_id": customer_id,
            },
        )
        return customer_id

    async def _mark_failed(self, checkout: CheckoutSession, reason: str) -> None:
        await self.checkout_repo.compare_and_update(
            checkout.id,
            {"status": CheckoutStatus.PENDING.value},
            CheckoutSessionUpdateModel(
                status=CheckoutStatus.FAILED, failure_reason=reason[:500]
            ),
        )
        logger.warning(
            f"Checkout {checkout.checkout_id} failed: {reason}",
            extra={
                "checkout_id": checkout.checkout_id,
                "organization_id": checkout.organization_id,
            },
        )

    # ==================== Payment outcomes ====================

    @trace_span
    async def confirm_payment(
        self,
        checkout_id: str,
        evidence: Optional[PaymentEvidence] = None,
        source: PaymentSource = PaymentSource.WEBHOOK,
    ) -> Subscription:
        """
        Activate the subscription a checkout was opened for.

        Idempotent: only the call that moves the session to PAID touches the
        subscription; every other call returns the current subscription.
        """
        now = self.clock()

        async with transaction():
            checkout = await self.checkout_repo.get_by_checkout_id(checkout_id)
            if not checkout:
                raise NotFoundError(f"Checkout {checkout_id} not found")

            if checkout.status == CheckoutStatus.PAID:
                return await self._lock_subscription(checkout)
            if checkout.status not in _PAYABLE_STATUSES:
                raise InvalidStateTransition(
                    f"Cannot confirm payment of a {checkout.status.value} checkout"
                )

            if evidence is not None:
                verify_payment_evidence(checkout, evidence)

            claim = {"status": CheckoutStatus.PAID, "paid_at": now, "failure_reason": None}
            if evidence and evidence.provider_checkout_id and not checkout.provider_checkout_id:
                claim["provider_checkout_id"] = evidence.provider_checkout_id

            claimed = await self.checkout_repo.compare_and_update(
                checkout.id,
                {"status": checkout.status.value},
                CheckoutSessionUpdateModel(**claim),
            )
            if not claimed:
                current = await self.checkout_repo.get(checkout.id)
                if current and current.status == CheckoutStatus.PAID:
                    return await self._lock_subscription(checkout)
                raise InvalidStateTransition(
                    f"Checkout {checkout_id} changed while confirming payment"
                )

            subscription = await self._lock_subscription(checkout)
            period_starts_at = now
            if (
                subscription.status == SubscriptionStatus.ACTIVE
                and subscription.plan_code == checkout.target_plan_code
                and subscription.current_period_ends_at is not None
                and subscription.current_period_ends_at > now
            ):
                period_starts_at = subscription.current_period_ends_at

            updated = await self.subscription_repo.update(
                subscription.id,
                SubscriptionUpdateModel(
                    status=SubscriptionStatus.ACTIVE,
                    plan_code=checkout.target_plan_code,
                    billing_cycle=checkout.billing_cycle,
                    current_period_starts_at=period_starts_at,
                    current_period_ends_at=period_starts_at
                    + timedelta(days=checkout.billing_cycle.period_days),
                    trial_ends_at=None,
                    cancel_at_period_end=False,
                    canceled_at=None,
                    grace_ends_at=None,
                    pending_plan_code=None,
                    expiry_reason=None,
                ),
            )
            await self.invoice_service.record_checkout_invoice(
                checkout,
                CheckoutStatus.PAID,
                provider_invoice_id=claim.get("provider_checkout_id"),
                paid_at=now,
            )

        logger.info(
            f"Confirmed payment for checkout {checkout_id}",
            extra={
                "checkout_id": checkout_id,
                "organization_id": checkout.organization_id,
                "subscription_id": updated.id,
                "previous_status": subscription.status.value,
                "plan_code": updated.plan_code.value,
                "current_period_ends_at": updated.current_period_ends_at.isoformat(),
                "source": source.value,
            },
        )
        await self._notify_payment_approved(checkout, now, source)
        return updated

    async def _lock_subscription(self, checkout: CheckoutSession) -> Subscription:
        subscription = await self.subscription_repo.get_by_organization_id(
            checkout.organization_id, for_update=True
        )
        if not subscription:
            raise NotFoundError(
                f"Subscription for organization {checkout.organization_id} not found"
            )
        return subscription

    @best_effort("payment_approved_notification")
    async def _notify_payment_approved(
        self, checkout: CheckoutSession, paid_at: datetime, source: PaymentSource
    ) -> None:
        await self.notifier.notify(
            PaymentApproved(
                organization_id=checkout.organization_id,
                owner_user_id=checkout.owner_user_id,
                checkout_id=checkout.checkout_id,
                plan_code=checkout.target_plan_code.value,
                amount_cents=checkout.amount_cents,
                currency=checkout.currency,
                paid_at=paid_at,
                source=source.value,
            )
        )

    @trace_span
    async def apply_provider_outcome(
        self,
        checkout: CheckoutSession,
        outcome: CheckoutStatus,
        evidence: Optional[PaymentEvidence] = None,
        source: PaymentSource = PaymentSource.WEBHOOK,
    ) -> bool:
        """
        Apply an outcome reported by the provider. Returns True if state changed.

        PAID confirms the payment. FAILED/EXPIRED close a PENDING session and
        drop the pending plan. CHARGEBACK reverses a PAID session and expires
        the subscription. Anything else on a final session is ignored.
        """
        if outcome == checkout.status:
            return False

        if outcome == CheckoutStatus.PAID:
            if checkout.status not in _PAYABLE_STATUSES:
                self._log_ignored(checkout, outcome, source)
                return False
            await self.confirm_payment(checkout.checkout_id, evidence, source)
            return True

        if outcome in (CheckoutStatus.FAILED, CheckoutStatus.EXPIRED):
            return await self._close_unpaid(checkout, outcome, source)

        if outcome == CheckoutStatus.CHARGEBACK:
            return await self._reverse_payment(checkout, source)

        self._log_ignored(checkout, outcome, source)
        return False

    async def _close_unpaid(
        self, checkout: CheckoutSession, outcome: CheckoutStatus, source: PaymentSource
    ) -> bool:
        async with transaction():
            closed = await self.checkout_repo.compare_and_update(
                checkout.id,
                {"status": CheckoutStatus.PENDING.value},
                CheckoutSessionUpdateModel(
                    status=outcome,
                    failure_reason=f"Provider reported {outcome.value} ({source.value})",
                ),
            )
            if not closed:
                self._log_ignored(checkout, outcome, source)
                return False

            await self.subscription_repo.compare_and_update(
                checkout.subscription_id,
                {"pending_plan_code": checkout.target_plan_code.value},
                SubscriptionUpdateModel(pending_plan_code=None),
            )
            await self.invoice_service.record_checkout_invoice(checkout, outcome)

        logger.info(
            f"Checkout {checkout.checkout_id} closed as {outcome.value}",
            extra={
                "checkout_id": checkout.checkout_id,
                "organization_id": checkout.organization_id,
                "source": source.value,
            },
        )
        return True

    async def _reverse_payment(self, checkout: CheckoutSession, source: PaymentSource) -> bool:
        async with transaction():
            reversed_payment = await self.checkout_repo.compare_and_update(
                checkout.id,
                {"status": CheckoutStatus.PAID.value},
                CheckoutSessionUpdateModel(
                    status=CheckoutStatus.CHARGEBACK,
                    failure_reason=f"Payment reversed ({source.value})",
                ),
            )
            if not reversed_payment:
                self._log_ignored(checkout, CheckoutStatus.CHARGEBACK, source)
                return False

            subscription = await self._lock_subscription(checkout)
            await self.subscription_repo.update(
                subscription.id,
                SubscriptionUpdateModel(
                    status=SubscriptionStatus.EXPIRED,
                    plan_code=PlanCode.FREE,
                    expiry_reason=ExpiryReason.PAYMENT_REVERSED,
                    pending_plan_code=None,
                    cancel_at_period_end=False,
                    grace_ends_at=None,
                ),
            )
            await self.invoice_service.record_checkout_invoice(
                checkout, CheckoutStatus.CHARGEBACK
            )

        logger.warning(
            f"Payment reversed for checkout {checkout.checkout_id}; subscription expired",
            extra={
                "checkout_id": checkout.checkout_id,
                "organization_id": checkout.organization_id,
                "subscription_id": subscription.id,
                "source": source.value,
            },
        )
        return True

    def _log_ignored(
        self, checkout: CheckoutSession, outcome: CheckoutStatus, source: PaymentSource
    ) -> None:
        logger.info(
            f"Ignored {outcome.value} for {checkout.status.value} checkout {checkout.checkout_id}",
            extra={
                "checkout_id": checkout.checkout_id,
                "checkout_status": checkout.status.value,
                "outcome": outcome.value,
                "source": source.value,
            },
        )

    # ==================== Simulation & reconciliation ====================

    @trace_span
    async def simulate_payment(self, organization_id: int, checkout_id: str) -> Subscription:
        """Mark a checkout as paid without the provider. Not available in production."""
        if settings.is_production:
            raise NotFoundError("Not found")

        checkout = await self.get_checkout(organization_id, checkout_id)
        if checkout.provider_checkout_id and settings.abacatepay_api_key:
            await self._simulate_at_provider(checkout)

        return await self.confirm_payment(
            checkout.checkout_id, source=PaymentSource.SIMULATED
        )

    @best_effort("provider_payment_simulation")
    async def _simulate_at_provider(self, checkout: CheckoutSession) -> None:
        await self.payment_provider.simulate_payment(
            checkout.provider_checkout_id,
            metadata={"checkoutId": checkout.checkout_id},
        )

    @trace_span
    async def reconcile_checkout(
        self, organization_id: int, checkout_id: str
    ) -> ReconcileResult:
        """
        Pull the checkout's state from the provider and apply it.

        Used when a webhook was missed. A checkout the provider does not know
        is returned unchanged.
        """
        checkout = await self.get_checkout(organization_id, checkout_id)
        provider_checkouts = await self.payment_provider.list_checkouts()
        match = _find_provider_checkout(checkout, provider_checkouts)
        if match is None:
            logger.info(
                f"Checkout {checkout_id} not found at provider",
                extra={"checkout_id": checkout_id, "organization_id": organization_id},
            )
            return ReconcileResult(checkout=checkout)

        if match.url and not is_trusted_checkout_url(
            match.url, settings.allowed_checkout_hosts
        ):
            logger.error(
                f"Provider billing for {checkout_id} has an untrusted URL",
                extra={"checkout_id": checkout_id, "checkout_url": match.url},
            )
            raise UntrustedRedirect("Payment provider returned an untrusted checkout URL")

        outcome = outcome_from_billing_status(match.status)
        if outcome is None:
            if not checkout.status.is_final and checkout.provider_checkout_id != match.id:
                checkout = await self.checkout_repo.update(
                    checkout.id,
                    CheckoutSessionUpdateModel(
                        provider_checkout_id=match.id,
                        checkout_url=match.url or checkout.checkout_url,
                    ),
                )
            return ReconcileResult(checkout=checkout, provider_status=match.status)

        applied = await self.apply_provider_outcome(
            checkout, outcome, _evidence_from_provider(match), PaymentSource.RECONCILE
        )
        refreshed = await self.checkout_repo.get(checkout.id)
        return ReconcileResult(
            checkout=refreshed or checkout,
            provider_status=match.status,
            outcome=outcome,
            applied=applied,
        )


def _find_provider_checkout(
    checkout: CheckoutSession, provider_checkouts: list[ProviderCheckout]
) -> Optional[ProviderCheckout]:
    if checkout.provider_checkout_id:
        for candidate in provider_checkouts:
            if candidate.id == checkout.provider_checkout_id:
                return candidate
    for candidate in provider_checkouts:
        if checkout.checkout_id in candidate.external_ids:
            return candidate
    return None


def _evidence_from_provider(provider_checkout: ProviderCheckout) -> PaymentEvidence:
    amount = parse_amount_cents(provider_checkout.paid_amount)
    if amount is None:
        amount = parse_amount_cents(provider_checkout.amount)
    if amount is None:
        amount = sum_products_cents(provider_checkout.products)
    return PaymentEvidence(
        amount_cents=amount,
        currency=parse_currency(provider_checkout.currency),
        provider_checkout_id=provider_checkout.id,
    )
