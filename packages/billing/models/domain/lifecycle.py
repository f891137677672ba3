"""
Pure subscription lifecycle rules.

Nothing here touches the database: given a subscription snapshot and the
current time these functions decide the effective plan, the next lazy
transition to persist, the block state and the dunning state. The
entitlement service applies the transitions with compare-and-swap writes.
"""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel

from packages.billing.models.domain.enums import (
    BlockReason,
    ExpiryReason,
    PlanCode,
    SubscriptionStatus,
)
from packages.billing.models.domain.plans import exceeds_limit, get_plan
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionUpdateModel,
)

DUNNING_REMINDER_DAYS = (7, 14, 21)


class LazyTransition(BaseModel):
    """A status change that became due while nobody was looking."""

    from_status: SubscriptionStatus
    update: SubscriptionUpdateModel


class DunningState(BaseModel):
    in_grace_period: bool = False
    grace_ends_at: Optional[datetime] = None
    days_until_downgrade: Optional[int] = None
    reminder_day: Optional[int] = None


def _before(now: datetime, deadline: Optional[datetime]) -> bool:
    return deadline is not None and now < deadline


def resolve_effective_plan(subscription: Subscription, now: datetime) -> PlanCode:
    """Plan whose limits and features apply at ``now``."""
    status = subscription.status
    plan = subscription.plan_code

    if status == SubscriptionStatus.TRIALING:
        return plan if _before(now, subscription.trial_ends_at) else PlanCode.FREE
    if status == SubscriptionStatus.ACTIVE:
        # An open-ended period is still paid for.
        if subscription.current_period_ends_at is None:
            return plan
        return plan if _before(now, subscription.current_period_ends_at) else PlanCode.FREE
    if status == SubscriptionStatus.PAST_DUE:
        return plan if _before(now, subscription.grace_ends_at) else PlanCode.FREE
    if status == SubscriptionStatus.CANCELED:
        return (
            plan if _before(now, subscription.current_period_ends_at) else PlanCode.FREE
        )
    return PlanCode.FREE


def next_lazy_transition(
    subscription: Subscription, now: datetime, past_due_grace_days: int
) -> Optional[LazyTransition]:
    """Return the transition due at ``now``, or None when the row is current."""
    status = subscription.status

    if status == SubscriptionStatus.TRIALING:
        if subscription.trial_ends_at is None or now >= subscription.trial_ends_at:
            return LazyTransition(
                from_status=status,
                update=SubscriptionUpdateModel(
                    status=SubscriptionStatus.EXPIRED,
                    plan_code=PlanCode.FREE,
                    expiry_reason=ExpiryReason.TRIAL_ENDED,
                    pending_plan_code=None,
                ),
            )

    elif status == SubscriptionStatus.ACTIVE:
        period_end = subscription.current_period_ends_at
        if period_end is not None and now >= period_end:
            return LazyTransition(
                from_status=status,
                update=SubscriptionUpdateModel(
                    status=SubscriptionStatus.PAST_DUE,
                    grace_ends_at=period_end + timedelta(days=past_due_grace_days),
                ),
            )

    elif status == SubscriptionStatus.PAST_DUE:
        if subscription.grace_ends_at is None or now >= subscription.grace_ends_at:
            return LazyTransition(
                from_status=status,
                update=SubscriptionUpdateModel(
                    status=SubscriptionStatus.EXPIRED,
                    plan_code=PlanCode.FREE,
                    expiry_reason=ExpiryReason.PAYMENT_OVERDUE,
                    pending_plan_code=None,
                ),
            )

    elif status == SubscriptionStatus.CANCELED:
        if subscription.plan_code != PlanCode.FREE and not _before(
            now, subscription.current_period_ends_at
        ):
            return LazyTransition(
                from_status=status,
                update=SubscriptionUpdateModel(
                    plan_code=PlanCode.FREE,
                    cancel_at_period_end=False,
                ),
            )

    return None


def resolve_block_reason(
    subscription: Subscription,
    now: datetime,
    seats_used: int,
    trial_expiry_grace_days: int,
) -> Optional[BlockReason]:
    """Decide whether the organization is locked out, and why."""
    if subscription.status == SubscriptionStatus.EXPIRED:
        reason = subscription.expiry_reason
        if reason == ExpiryReason.TRIAL_ENDED:
            trial_end = subscription.trial_ends_at
            if trial_end is None or now >= trial_end + timedelta(
                days=trial_expiry_grace_days
            ):
                return BlockReason.TRIAL_EXPIRED
        elif reason == ExpiryReason.PAYMENT_OVERDUE:
            return BlockReason.PAYMENT_OVERDUE
        elif reason == ExpiryReason.PAYMENT_REVERSED:
            return BlockReason.PAYMENT_REVERSED

    effective = get_plan(resolve_effective_plan(subscription, now))
    if exceeds_limit(seats_used, 0, effective.limits.users_limit):
        return BlockReason.SEAT_LIMIT_EXCEEDED
    return None


def resolve_dunning_state(subscription: Subscription, now: datetime) -> DunningState:
    """Grace-period view for a PAST_DUE subscription."""
    if subscription.status != SubscriptionStatus.PAST_DUE or not _before(
        now, subscription.grace_ends_at
    ):
        return DunningState()

    grace_ends_at = subscription.grace_ends_at
    remaining = grace_ends_at - now
    days_until_downgrade = remaining.days + (1 if remaining.seconds else 0)

    reminder_day = None
    grace_started_at = subscription.current_period_ends_at
    if grace_started_at is not None:
        elapsed_days = (now - grace_started_at).days
        due = [day for day in DUNNING_REMINDER_DAYS if elapsed_days >= day]
        reminder_day = max(due) if due else None

    return DunningState(
        in_grace_period=True,
        grace_ends_at=grace_ends_at,
        days_until_downgrade=days_until_downgrade,
        reminder_day=reminder_day,
    )
