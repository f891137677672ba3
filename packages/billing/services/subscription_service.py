"""
Service for subscription lifecycle moves: trial, cancel, reactivate, downgrade.

Every move re-reads the subscription under a row lock inside a transaction
and raises InvalidStateTransition when the move is not legal from the
current state. Payment-driven moves live in CheckoutService.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from common.core.best_effort import best_effort
from common.core.config import settings
from common.core.exceptions import (
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.base import utc_now
from common.db.scoped import transaction
from packages.billing.models.domain.billing_profile import normalize_billing_profile
from packages.billing.models.domain.cancellation import CancellationFeedbackCreateModel
from packages.billing.models.domain.enums import (
    BillingCycle,
    CancellationReason,
    PlanCode,
    SubscriptionStatus,
)
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionUpdateModel,
)
from packages.billing.repositories.cancellation_repository import (
    CancellationFeedbackRepository,
)
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.services.entitlement_service import EntitlementService

logger = get_logger(__name__)


class SubscriptionService:
    """Service for subscription management."""

    def __init__(
        self,
        entitlement_service: Optional[EntitlementService] = None,
        subscription_repo: Optional[SubscriptionRepository] = None,
        feedback_repo: Optional[CancellationFeedbackRepository] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.clock = clock or utc_now
        self.entitlement_service = entitlement_service or EntitlementService(
            clock=self.clock
        )
        self.subscription_repo = subscription_repo or SubscriptionRepository()
        self.feedback_repo = feedback_repo or CancellationFeedbackRepository()

    async def _lock_current(self, organization_id: int) -> Subscription:
        subscription = await self.subscription_repo.get_by_organization_id(
            organization_id, for_update=True
        )
        if not subscription:
            raise NotFoundError(
                f"Subscription for organization {organization_id} not found"
            )
        return subscription

    async def _write(
        self, subscription: Subscription, update: SubscriptionUpdateModel
    ) -> Subscription:
        updated = await self.subscription_repo.update(subscription.id, update)
        logger.info(
            f"Updated subscription {subscription.id} for organization {subscription.organization_id}",
            extra={
                "subscription_id": subscription.id,
                "organization_id": subscription.organization_id,
                "old_status": subscription.status.value,
                "new_status": updated.status.value,
                "plan_code": updated.plan_code.value,
            },
        )
        return updated

    @trace_span
    async def start_trial(self, organization_id: int, plan_code: PlanCode) -> Subscription:
        """
        Start the one trial a subscription gets, on a paid plan.

        Only legal from FREE; a second call raises InvalidStateTransition.
        """
        if not plan_code.is_paid:
            raise ValidationError("Trials are only available for paid plans")

        # Lazy transitions first so a lapsed state is seen as it is now
        await self.entitlement_service.get_subscription(organization_id)
        now = self.clock()

        async with transaction():
            subscription = await self._lock_current(organization_id)

            if subscription.status != SubscriptionStatus.FREE:
                raise InvalidStateTransition(
                    f"Cannot start a trial from {subscription.status.value}"
                )
            if subscription.trial_used_at is not None:
                raise InvalidStateTransition(
                    "A trial was already used for this organization"
                )

            return await self._write(
                subscription,
                SubscriptionUpdateModel(
                    status=SubscriptionStatus.TRIALING,
                    plan_code=plan_code,
                    billing_cycle=BillingCycle.MONTHLY,
                    trial_ends_at=now + timedelta(days=settings.trial_duration_days),
                    trial_used_at=now,
                    cancel_at_period_end=False,
                    canceled_at=None,
                    expiry_reason=None,
                ),
            )

    @trace_span
    async def cancel(
        self,
        organization_id: int,
        immediate: bool = False,
        reason_code: Optional[CancellationReason] = None,
        note: Optional[str] = None,
    ) -> Subscription:
        """
        Cancel a subscription.

        ACTIVE and not ``immediate``: keep the plan until the period ends.
        Otherwise (or from TRIALING/PAST_DUE): drop to FREE right now.
        A cancellation scheduled for period end can be escalated to immediate.
        """
        await self.entitlement_service.get_subscription(organization_id)
        now = self.clock()

        async with transaction():
            subscription = await self._lock_current(organization_id)
            status = subscription.status
            period_open = (
                subscription.current_period_ends_at is not None
                and subscription.current_period_ends_at > now
            )

            if status in (SubscriptionStatus.FREE, SubscriptionStatus.EXPIRED):
                raise InvalidStateTransition(f"Cannot cancel from {status.value}")
            if status == SubscriptionStatus.CANCELED and not (
                period_open and subscription.cancel_at_period_end
            ):
                raise InvalidStateTransition("Subscription is already canceled")
            if status == SubscriptionStatus.CANCELED and not immediate:
                raise InvalidStateTransition(
                    "Cancellation is already scheduled for the end of the period"
                )

            if status == SubscriptionStatus.ACTIVE and not immediate:
                update = SubscriptionUpdateModel(
                    status=SubscriptionStatus.CANCELED,
                    cancel_at_period_end=True,
                    canceled_at=now,
                    pending_plan_code=None,
                )
            else:
                update = SubscriptionUpdateModel(
                    status=SubscriptionStatus.CANCELED,
                    plan_code=PlanCode.FREE,
                    current_period_ends_at=now,
                    cancel_at_period_end=False,
                    canceled_at=now,
                    pending_plan_code=None,
                    grace_ends_at=None,
                    trial_ends_at=(
                        now
                        if status == SubscriptionStatus.TRIALING
                        else subscription.trial_ends_at
                    ),
                )
            updated = await self._write(subscription, update)

        if reason_code is not None:
            await self._record_feedback(updated, reason_code, note)
        return updated

    @best_effort("cancellation_feedback")
    async def _record_feedback(
        self,
        subscription: Subscription,
        reason_code: CancellationReason,
        note: Optional[str],
    ) -> None:
        await self.feedback_repo.create(
            CancellationFeedbackCreateModel(
                subscription_id=subscription.id,
                organization_id=subscription.organization_id,
                reason_code=reason_code,
                note=note.strip() if note and note.strip() else None,
            )
        )

    @trace_span
    async def reactivate(self, organization_id: int) -> Subscription:
        """Undo a cancellation scheduled for period end, while the period lasts."""
        await self.entitlement_service.get_subscription(organization_id)
        now = self.clock()

        async with transaction():
            subscription = await self._lock_current(organization_id)
            period_end = subscription.current_period_ends_at

            if (
                subscription.status != SubscriptionStatus.CANCELED
                or subscription.plan_code == PlanCode.FREE
                or period_end is None
                or period_end <= now
            ):
                raise InvalidStateTransition(
                    "Only a canceled subscription whose period has not ended can be reactivated"
                )

            return await self._write(
                subscription,
                SubscriptionUpdateModel(
                    status=SubscriptionStatus.ACTIVE,
                    cancel_at_period_end=False,
                    canceled_at=None,
                ),
            )

    @trace_span
    async def downgrade_to_free(self, organization_id: int) -> Subscription:
        """Move any non-FREE subscription back to the FREE plan."""
        await self.entitlement_service.get_subscription(organization_id)

        async with transaction():
            subscription = await self._lock_current(organization_id)
            if subscription.status == SubscriptionStatus.FREE:
                raise InvalidStateTransition("Subscription is already on FREE")

            return await self._write(
                subscription,
                SubscriptionUpdateModel(
                    status=SubscriptionStatus.FREE,
                    plan_code=PlanCode.FREE,
                    billing_cycle=BillingCycle.MONTHLY,
                    pending_plan_code=None,
                    trial_ends_at=None,
                    current_period_starts_at=None,
                    current_period_ends_at=None,
                    cancel_at_period_end=False,
                    canceled_at=None,
                    grace_ends_at=None,
                    expiry_reason=None,
                ),
            )

    @trace_span
    async def update_billing_profile(
        self,
        organization_id: int,
        name: str,
        cellphone: str,
        tax_id: str,
        email: Optional[str],
    ) -> Subscription:
        """
        Store who the provider bills for this organization.

        Changing the tax id unlinks the provider customer; the next checkout
        registers (or reuses) one for the new tax id.
        """
        profile = normalize_billing_profile(name, cellphone, tax_id, email)
        await self.entitlement_service.ensure_subscription(organization_id)

        async with transaction():
            subscription = await self._lock_current(organization_id)
            fields = {
                "billing_name": profile.name,
                "billing_cellphone": profile.cellphone,
                "billing_tax_id": profile.tax_id,
                "billing_email": profile.email,
            }
            if subscription.billing_tax_id != profile.tax_id:
                fields["provider_customer_id"] = None
            updated = await self.subscription_repo.update(
                subscription.id, SubscriptionUpdateModel(**fields)
            )

        logger.info(
            f"Updated billing profile of organization {organization_id}",
            extra={
                "organization_id": organization_id,
                "subscription_id": updated.id,
                "customer_unlinked": subscription.provider_customer_id is not None
                and updated.provider_customer_id is None,
            },
        )
        return updated
