"""
Service for organization and seat limit checks.

Organization collaborators call these inside the transaction that writes the
new row; a failed check raises and the transaction rolls back.
"""

from typing import Optional

from common.core.exceptions import OrganizationBlocked, QuotaExceeded
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.models.domain.entitlements import Entitlements
from packages.billing.models.domain.enums import BlockReason, PlanCode
from packages.billing.models.domain.lifecycle import resolve_effective_plan
from packages.billing.models.domain.plans import exceeds_limit, get_plan
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.services.entitlement_service import EntitlementService

logger = get_logger(__name__)

BLOCK_MESSAGES = {
    BlockReason.TRIAL_EXPIRED: "Trial has ended. Choose a plan to keep using the organization.",
    BlockReason.PAYMENT_OVERDUE: "Payment is overdue. Settle the subscription to continue.",
    BlockReason.PAYMENT_REVERSED: "The last payment was reversed. Settle the subscription to continue.",
    BlockReason.SEAT_LIMIT_EXCEEDED: "Seats exceed the current plan. Upgrade or remove members to continue.",
}


def assert_not_blocked(entitlements: Entitlements, allow_seat_overage: bool = False) -> None:
    """Raise OrganizationBlocked for blocked organizations."""
    reason = entitlements.block_reason
    if reason is None:
        return
    if allow_seat_overage and reason == BlockReason.SEAT_LIMIT_EXCEEDED:
        return
    raise OrganizationBlocked(BLOCK_MESSAGES[reason])


def limit_message(label: str, current: int, limit: int) -> str:
    return f"Plan limit reached for {label} ({current}/{limit}). Upgrade to continue."


class LimitsService:
    """Service for plan limit enforcement outside usage metering."""

    def __init__(
        self,
        entitlement_service: Optional[EntitlementService] = None,
        subscription_repo: Optional[SubscriptionRepository] = None,
    ):
        self.entitlement_service = entitlement_service or EntitlementService()
        self.subscription_repo = subscription_repo or SubscriptionRepository()

    @trace_span
    async def lock_owner_subscriptions(self, owner_user_id: int) -> None:
        """Row-lock every subscription of an owner; call inside ``transaction()``."""
        await self.subscription_repo.list_by_owner(owner_user_id, for_update=True)

    @trace_span
    async def assert_can_create_organization(
        self, owner_user_id: int, current_count: int
    ) -> None:
        """
        Check an owner may create one more organization.

        The limit comes from the best effective plan across every
        subscription the owner holds; an owner without any is on FREE.
        """
        subscriptions = await self.subscription_repo.list_by_owner(owner_user_id)
        now = self.entitlement_service.clock()
        plan_codes = [resolve_effective_plan(sub, now) for sub in subscriptions] or [
            PlanCode.FREE
        ]

        limits = [get_plan(code).limits.organizations_limit for code in plan_codes]
        if any(limit is None for limit in limits):
            return

        max_allowed = max(limits)
        if exceeds_limit(current_count, 1, max_allowed):
            logger.warning(
                f"Owner {owner_user_id} reached the organization limit",
                extra={
                    "owner_user_id": owner_user_id,
                    "current": current_count,
                    "limit": max_allowed,
                },
            )
            raise QuotaExceeded(limit_message("organizations", current_count, max_allowed))

    async def _assert_seats(self, organization_id: int, additional: int) -> Entitlements:
        entitlements = await self.entitlement_service.get_entitlements(organization_id)
        assert_not_blocked(entitlements, allow_seat_overage=True)

        limit = entitlements.limits.users_limit
        if exceeds_limit(entitlements.seats_used, additional, limit):
            logger.warning(
                f"Organization {organization_id} reached the seat limit",
                extra={
                    "organization_id": organization_id,
                    "seats_used": entitlements.seats_used,
                    "additional": additional,
                    "limit": limit,
                },
            )
            raise QuotaExceeded(
                limit_message("users", entitlements.seats_used + additional, limit)
            )
        return entitlements

    @trace_span
    async def assert_can_add_member(
        self, organization_id: int, additional: int = 1
    ) -> Entitlements:
        return await self._assert_seats(organization_id, additional)

    @trace_span
    async def assert_can_invite(self, organization_id: int) -> Entitlements:
        return await self._assert_seats(organization_id, 1)

    @trace_span
    async def assert_can_accept_invitation(
        self, organization_id: int, invitation_is_pending: bool = True
    ) -> Entitlements:
        """A pending invitation already holds its seat."""
        return await self._assert_seats(organization_id, 0 if invitation_is_pending else 1)
