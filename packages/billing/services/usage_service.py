"""
Service for usage metering against plan limits.
"""

from datetime import datetime
from typing import Callable, Optional

from common.core.best_effort import best_effort
from common.core.config import settings
from common.core.exceptions import QuotaExceeded, ValidationError
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.base import utc_now
from common.db.scoped import transaction
from common.providers.notifications.factory import get_notification_provider
from common.providers.notifications.interface import NotificationProviderInterface
from common.providers.notifications.models import UsageThresholdReached
from packages.billing.models.domain.usage import (
    DEFAULT_USAGE_METRIC,
    QuotaCheck,
    UsageConsumption,
    UsageSnapshot,
    crossed_thresholds,
    month_period,
)
from packages.billing.repositories.usage_repository import UsageCounterRepository
from packages.billing.services.entitlement_service import EntitlementService
from packages.billing.services.limits_service import assert_not_blocked, limit_message

logger = get_logger(__name__)


def _validate_amount(amount: int) -> None:
    if amount <= 0:
        raise ValidationError("Usage amount must be a positive integer")


class UsageService:
    """Service for monthly usage metering."""

    def __init__(
        self,
        entitlement_service: Optional[EntitlementService] = None,
        usage_repo: Optional[UsageCounterRepository] = None,
        notifier: Optional[NotificationProviderInterface] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.clock = clock or utc_now
        self.entitlement_service = entitlement_service or EntitlementService(
            clock=self.clock
        )
        self.usage_repo = usage_repo or UsageCounterRepository()
        self.notifier = notifier or get_notification_provider()

    @trace_span
    async def get_usage(
        self, organization_id: int, metric_key: str = DEFAULT_USAGE_METRIC
    ) -> UsageSnapshot:
        entitlements = await self.entitlement_service.get_entitlements(organization_id)
        period_start, period_end = month_period(self.clock())
        consumed = await self.usage_repo.get_consumed(
            organization_id, metric_key, period_start
        )
        limit = entitlements.limits.monthly_usage_limit

        return UsageSnapshot(
            organization_id=organization_id,
            metric_key=metric_key,
            consumed=consumed,
            limit=limit,
            remaining=max(limit - consumed, 0) if limit is not None else None,
            percentage_used=(consumed / limit * 100) if limit else None,
            period_start=period_start,
            period_end=period_end,
        )

    @trace_span
    async def assert_can_consume(
        self,
        organization_id: int,
        amount: int = 1,
        metric_key: str = DEFAULT_USAGE_METRIC,
    ) -> QuotaCheck:
        """
        Check that ``amount`` more units fit in the current period.

        Advisory only: ``consume`` re-checks atomically.
        """
        _validate_amount(amount)
        entitlements = await self.entitlement_service.get_entitlements(organization_id)
        assert_not_blocked(entitlements)

        period_start, _ = month_period(self.clock())
        current = await self.usage_repo.get_consumed(
            organization_id, metric_key, period_start
        )
        limit = entitlements.limits.monthly_usage_limit
        allowed = limit is None or current + amount <= limit

        check = QuotaCheck(
            allowed=allowed,
            organization_id=organization_id,
            metric_key=metric_key,
            current_usage=current,
            requested=amount,
            limit=limit,
            remaining=max(limit - current, 0) if limit is not None else None,
        )
        if not allowed:
            raise QuotaExceeded(limit_message(f"monthly {metric_key}", current, limit))
        return check

    @trace_span
    async def consume(
        self,
        organization_id: int,
        amount: int = 1,
        metric_key: str = DEFAULT_USAGE_METRIC,
    ) -> UsageConsumption:
        """
        Record ``amount`` units of usage, refusing to pass the plan limit.

        The check and the increment are a single conditional UPDATE, so any
        number of concurrent callers can never push the counter over the limit.
        """
        _validate_amount(amount)
        entitlements = await self.entitlement_service.get_entitlements(organization_id)
        assert_not_blocked(entitlements)

        limit = entitlements.limits.monthly_usage_limit
        period_start, _ = month_period(self.clock())

        async with transaction():
            await self.usage_repo.ensure_counter(organization_id, metric_key, period_start)
            consumed_after = await self.usage_repo.increment_within_limit(
                organization_id, metric_key, period_start, amount, limit
            )

        if consumed_after is None:
            current = await self.usage_repo.get_consumed(
                organization_id, metric_key, period_start
            )
            logger.warning(
                f"Organization {organization_id} exceeded monthly {metric_key} quota",
                extra={
                    "organization_id": organization_id,
                    "metric_key": metric_key,
                    "current": current,
                    "requested": amount,
                    "limit": limit,
                },
            )
            raise QuotaExceeded(limit_message(f"monthly {metric_key}", current, limit))

        consumed_before = consumed_after - amount
        crossed = crossed_thresholds(
            consumed_before, consumed_after, limit, settings.usage_alert_thresholds
        )
        for threshold in crossed:
            await self._notify_threshold(
                organization_id, metric_key, threshold, consumed_after, limit
            )

        return UsageConsumption(
            organization_id=organization_id,
            metric_key=metric_key,
            amount=amount,
            consumed_before=consumed_before,
            consumed_after=consumed_after,
            limit=limit,
            thresholds_crossed=crossed,
        )

    @best_effort("usage_threshold_notification")
    async def _notify_threshold(
        self,
        organization_id: int,
        metric_key: str,
        threshold: int,
        consumed: int,
        limit: int,
    ) -> None:
        await self.notifier.notify(
            UsageThresholdReached(
                organization_id=organization_id,
                metric_key=metric_key,
                threshold_percent=threshold,
                consumed=consumed,
                limit=limit,
            )
        )
