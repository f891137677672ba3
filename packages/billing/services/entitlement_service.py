"""
Service resolving what an organization is entitled to right now.

There is no scheduler: every read applies the lifecycle transitions that
became due since the last one (trial end, period end, grace end), using
compare-and-swap writes so concurrent readers agree on the outcome.
"""

from datetime import datetime
from typing import Callable, Optional

from common.core.best_effort import best_effort
from common.core.config import settings
from common.core.exceptions import NotFoundError
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.base import utc_now
from common.db.context import get_current_session, is_readonly_forced
from common.providers.notifications import (
    NotificationProviderInterface,
    PaymentOverdueReminder,
    get_notification_provider,
)
from packages.billing.models.domain.entitlements import Entitlements
from packages.billing.models.domain.enums import (
    PlanFeature,
    SubscriptionStatus,
    WebhookProcessingStatus,
)
from packages.billing.models.domain.features import (
    FeatureStatus,
    resolve_feature_status,
)
from packages.billing.models.domain.lifecycle import (
    next_lazy_transition,
    resolve_block_reason,
    resolve_dunning_state,
    resolve_effective_plan,
)
from packages.billing.models.domain.plans import get_plan
from packages.billing.models.domain.subscription import Subscription
from packages.billing.repositories.feature_repository import (
    FeatureOverrideRepository,
    FeatureRolloutRepository,
)
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.repositories.webhook_event_repository import WebhookEventRepository
from packages.organizations.repositories.organization_repository import (
    OrganizationInvitationRepository,
    OrganizationMemberRepository,
    OrganizationRepository,
)

logger = get_logger(__name__)

# TRIALING -> EXPIRED and ACTIVE -> PAST_DUE -> EXPIRED are the longest chains
MAX_LAZY_TRANSITIONS = 4

INTERNAL_EVENT_PROVIDER = "internal"
OVERDUE_REMINDER_EVENT = "notification.payment_overdue_reminder"


class EntitlementService:
    """Service for subscription reads, entitlements and feature flags."""

    def __init__(
        self,
        subscription_repo: Optional[SubscriptionRepository] = None,
        organization_repo: Optional[OrganizationRepository] = None,
        member_repo: Optional[OrganizationMemberRepository] = None,
        invitation_repo: Optional[OrganizationInvitationRepository] = None,
        override_repo: Optional[FeatureOverrideRepository] = None,
        rollout_repo: Optional[FeatureRolloutRepository] = None,
        event_repo: Optional[WebhookEventRepository] = None,
        notifier: Optional[NotificationProviderInterface] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.subscription_repo = subscription_repo or SubscriptionRepository()
        self.organization_repo = organization_repo or OrganizationRepository()
        self.member_repo = member_repo or OrganizationMemberRepository()
        self.invitation_repo = invitation_repo or OrganizationInvitationRepository()
        self.override_repo = override_repo or FeatureOverrideRepository()
        self.rollout_repo = rollout_repo or FeatureRolloutRepository()
        self.event_repo = event_repo or WebhookEventRepository()
        self.notifier = notifier or get_notification_provider()
        self.clock = clock

    @trace_span
    async def ensure_subscription(self, organization_id: int) -> Subscription:
        """
        Return the organization's subscription, creating a FREE one if missing.

        Safe to call concurrently: the insert ignores a conflicting row and
        every caller then reads the single winner.
        """
        subscription = await self.subscription_repo.get_by_organization_id(
            organization_id
        )
        if subscription:
            return subscription

        organization = await self.organization_repo.get(organization_id)
        if not organization:
            raise NotFoundError(f"Organization {organization_id} not found")

        created = await self.subscription_repo.create_free_if_missing(
            owner_user_id=organization.owner_user_id,
            organization_id=organization_id,
        )
        if created:
            logger.info(
                f"Created FREE subscription for organization {organization_id}",
                extra={
                    "organization_id": organization_id,
                    "owner_user_id": organization.owner_user_id,
                },
            )

        subscription = await self.subscription_repo.get_by_organization_id(
            organization_id
        )
        if not subscription:
            raise NotFoundError(
                f"Subscription for organization {organization_id} not found"
            )
        return subscription

    @trace_span
    async def lock_subscription(self, organization_id: int) -> Subscription:
        """
        Take the row lock on the organization's subscription.

        Call inside ``transaction()``; seat checks made after it see every
        seat granted by a concurrent writer holding the same lock.
        """
        await self.ensure_subscription(organization_id)
        subscription = await self.subscription_repo.get_by_organization_id(
            organization_id, for_update=True
        )
        if not subscription:
            raise NotFoundError(
                f"Subscription for organization {organization_id} not found"
            )
        return subscription

    async def _apply_lazy_transitions(
        self, subscription: Subscription, now: datetime
    ) -> Subscription:
        for _ in range(MAX_LAZY_TRANSITIONS):
            transition = next_lazy_transition(
                subscription, now, settings.past_due_grace_days
            )
            if transition is None:
                break

            applied = await self.subscription_repo.compare_and_update(
                subscription.id,
                {
                    "status": transition.from_status.value,
                    "plan_code": subscription.plan_code.value,
                },
                transition.update,
            )
            if applied:
                logger.info(
                    f"Applied lazy transition for organization {subscription.organization_id}",
                    extra={
                        "organization_id": subscription.organization_id,
                        "subscription_id": subscription.id,
                        "from_status": transition.from_status.value,
                        "update": transition.update.model_dump(
                            mode="json", exclude_unset=True
                        ),
                    },
                )

            # Either way the row changed; continue from what is stored now
            refreshed = await self.subscription_repo.get(subscription.id)
            if refreshed is None:
                break
            subscription = refreshed

        return subscription

    @trace_span
    async def get_subscription(self, organization_id: int) -> Subscription:
        """Subscription with every due lifecycle transition applied."""
        subscription = await self.ensure_subscription(organization_id)
        now = self.clock()
        subscription = await self._apply_lazy_transitions(subscription, now)
        if subscription.status == SubscriptionStatus.PAST_DUE:
            await self._send_overdue_reminder(subscription, now)
        return subscription

    @best_effort("payment_overdue_reminder")
    async def _send_overdue_reminder(self, subscription: Subscription, now: datetime) -> None:
        """
        Send the dunning reminder for the current checkpoint, once.

        The first reader past a checkpoint claims an internal event marker;
        everyone else finds it taken. Reads inside a caller's transaction
        skip the reminder, since that transaction may still roll back.
        """
        dunning = resolve_dunning_state(subscription, now)
        if dunning.reminder_day is None or subscription.current_period_ends_at is None:
            return
        if get_current_session() is not None or is_readonly_forced():
            return

        grace_token = subscription.current_period_ends_at.date().isoformat()
        marker = f"dunning:{subscription.id}:{grace_token}:day-{dunning.reminder_day}"
        claimed = await self.event_repo.record_if_new(
            marker,
            INTERNAL_EVENT_PROVIDER,
            OVERDUE_REMINDER_EVENT,
            {
                "organization_id": subscription.organization_id,
                "subscription_id": subscription.id,
                "reminder_day": dunning.reminder_day,
            },
        )
        if not claimed:
            return

        await self.notifier.notify(
            PaymentOverdueReminder(
                organization_id=subscription.organization_id,
                owner_user_id=subscription.owner_user_id,
                plan_code=subscription.plan_code.value,
                reminder_day=dunning.reminder_day,
                grace_ends_at=dunning.grace_ends_at,
                days_until_downgrade=dunning.days_until_downgrade,
            )
        )
        await self.event_repo.mark(
            marker, WebhookProcessingStatus.PROCESSED, processed_at=now
        )
        logger.info(
            f"Sent day {dunning.reminder_day} overdue reminder for organization {subscription.organization_id}",
            extra={
                "organization_id": subscription.organization_id,
                "subscription_id": subscription.id,
                "reminder_day": dunning.reminder_day,
            },
        )

    @trace_span
    async def count_seats(self, organization_id: int) -> int:
        """Members plus pending invitations."""
        members = await self.member_repo.count_by_organization(organization_id)
        pending = await self.invitation_repo.count_pending(organization_id)
        return members + pending

    @trace_span
    async def get_entitlements(self, organization_id: int) -> Entitlements:
        subscription = await self.get_subscription(organization_id)
        now = self.clock()

        effective_plan_code = resolve_effective_plan(subscription, now)
        plan = get_plan(effective_plan_code)
        seats_used = await self.count_seats(organization_id)
        block_reason = resolve_block_reason(
            subscription, now, seats_used, settings.trial_expiry_grace_days
        )

        return Entitlements(
            organization_id=organization_id,
            owner_user_id=subscription.owner_user_id,
            subscription_id=subscription.id,
            status=subscription.status,
            plan_code=subscription.plan_code,
            effective_plan_code=effective_plan_code,
            billing_cycle=subscription.billing_cycle,
            pending_plan_code=subscription.pending_plan_code,
            limits=plan.limits,
            feature_flags=sorted(feature.value for feature in plan.features),
            is_blocked=block_reason is not None,
            block_reason=block_reason,
            seats_used=seats_used,
            trial_ends_at=subscription.trial_ends_at,
            trial_used=subscription.trial_used_at is not None,
            current_period_ends_at=subscription.current_period_ends_at,
            cancel_at_period_end=subscription.cancel_at_period_end,
            dunning=resolve_dunning_state(subscription, now),
        )

    @trace_span
    async def list_feature_statuses(self, organization_id: int) -> list[FeatureStatus]:
        entitlements = await self.get_entitlements(organization_id)
        plan = get_plan(entitlements.effective_plan_code)

        overrides = {
            override.feature_key: override
            for override in await self.override_repo.list_for_owner(
                entitlements.owner_user_id
            )
        }
        rollouts = {
            rollout.feature_key: rollout
            for rollout in await self.rollout_repo.list_all()
        }

        return [
            resolve_feature_status(
                feature,
                plan.features,
                overrides.get(feature.value),
                rollouts.get(feature.value),
                f"{organization_id}:{feature.value}",
            )
            for feature in PlanFeature
        ]

    @trace_span
    async def get_feature_status(
        self,
        organization_id: int,
        feature_key: str,
        subject_key: Optional[str] = None,
    ) -> Optional[FeatureStatus]:
        """Status of one feature, or None when the key is not a known feature."""
        feature = PlanFeature.parse(feature_key)
        if feature is None:
            return None

        entitlements = await self.get_entitlements(organization_id)
        plan = get_plan(entitlements.effective_plan_code)
        overrides = await self.override_repo.list_for_owner(entitlements.owner_user_id)
        override = next(
            (item for item in overrides if item.feature_key == feature.value), None
        )
        rollout = await self.rollout_repo.get_by_feature(feature.value)

        return resolve_feature_status(
            feature,
            plan.features,
            override,
            rollout,
            subject_key or f"{organization_id}:{feature.value}",
        )

    @trace_span
    async def is_feature_enabled(
        self,
        organization_id: int,
        feature_key: str,
        subject_key: Optional[str] = None,
    ) -> bool:
        """Unknown feature keys are always off."""
        status = await self.get_feature_status(organization_id, feature_key, subject_key)
        if status is None:
            logger.warning(
                f"Unknown feature flag requested: {feature_key}",
                extra={"organization_id": organization_id, "feature_key": feature_key},
            )
            return False
        return status.enabled
