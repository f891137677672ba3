"""
Unit tests for OrganizationService.

Plan limits are enforced for real through LimitsService and the test
database; only the notifier is mocked.
"""

import pytest
from datetime import timedelta

from common.core.exceptions import (
    InvalidStateTransition,
    NotFoundError,
    QuotaExceeded,
    ValidationError,
)
from common.db.context import get_current_session
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.auth.models.domain.roles import OrganizationRole
from packages.billing.models.domain.enums import PlanCode, SubscriptionStatus
from packages.billing.models.domain.subscription import SubscriptionUpdateModel
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.services.entitlement_service import EntitlementService
from packages.organizations.models.domain.organization import InvitationStatus
from packages.organizations.repositories.organization_repository import (
    OrganizationInvitationRepository,
    OrganizationMemberRepository,
    OrganizationRepository,
)
from packages.organizations.services.organization_service import (
    OrganizationService,
    normalize_email,
)


@pytest.fixture
def organization_service(clock, mock_notifier):
    return OrganizationService(
        entitlement_service=EntitlementService(clock=clock), notifier=mock_notifier
    )


async def upgrade(subscription, clock, plan=PlanCode.STARTER_50):
    await SubscriptionRepository().update(
        subscription.id,
        SubscriptionUpdateModel(
            status=SubscriptionStatus.ACTIVE,
            plan_code=plan,
            current_period_ends_at=clock.now + timedelta(days=30),
        ),
    )


class TestNormalizeEmail:
    def test_normalizes(self):
        assert normalize_email("  Ana@Example.COM ") == "ana@example.com"

    @pytest.mark.parametrize("email", ["", "ana", "@example.com", "ana@localhost"])
    def test_rejects_invalid(self, email):
        with pytest.raises(ValidationError):
            normalize_email(email)


@pytest.mark.asyncio
class TestCreateOrganization:
    async def test_create_organization(self, organization_service):
        organization = await organization_service.create_organization(5, "  New Co ")

        assert organization.name == "New Co"
        members = await organization_service.list_members(organization.id)
        assert [(m.user_id, m.role) for m in members] == [(5, OrganizationRole.OWNER)]
        subscription = await SubscriptionRepository().get_by_organization_id(
            organization.id
        )
        assert subscription.status == SubscriptionStatus.FREE

    async def test_free_owner_limited_to_one_organization(
        self, organization_service, sample_subscription
    ):
        with pytest.raises(QuotaExceeded):
            await organization_service.create_organization(
                sample_subscription.owner_user_id, "Second"
            )

    async def test_paid_plan_raises_organization_limit(
        self, organization_service, sample_subscription, clock
    ):
        await upgrade(sample_subscription, clock)

        organization = await organization_service.create_organization(
            sample_subscription.owner_user_id, "Second"
        )
        assert organization.owner_user_id == sample_subscription.owner_user_id

    async def test_organization_limit_checked_inside_transaction(
        self, organization_service, sample_subscription
    ):
        limits_service = organization_service.limits_service
        check = limits_service.assert_can_create_organization
        sessions = []

        async def recording_check(owner_user_id, current_count):
            sessions.append(get_current_session())
            return await check(owner_user_id, current_count)

        limits_service.assert_can_create_organization = recording_check

        with pytest.raises(QuotaExceeded):
            await organization_service.create_organization(
                sample_subscription.owner_user_id, "Second"
            )

        assert len(sessions) == 1
        assert sessions[0] is not None
        assert await OrganizationRepository().count_by_owner(
            sample_subscription.owner_user_id
        ) == 1

    async def test_blank_name(self, organization_service):
        with pytest.raises(ValidationError):
            await organization_service.create_organization(5, "   ")


@pytest.mark.asyncio
class TestInvitations:
    async def test_free_plan_cannot_invite(
        self, organization_service, sample_subscription
    ):
        with pytest.raises(QuotaExceeded):
            await organization_service.invite_member(
                sample_subscription.organization_id,
                sample_subscription.owner_user_id,
                "new@acme.test",
            )

        invitations = await OrganizationInvitationRepository().list_by_organization(
            sample_subscription.organization_id
        )
        assert invitations == []

    async def test_invite_on_paid_plan(
        self, organization_service, sample_subscription, clock
    ):
        await upgrade(sample_subscription, clock)

        invitation = await organization_service.invite_member(
            sample_subscription.organization_id,
            sample_subscription.owner_user_id,
            "New@Acme.test",
            role=OrganizationRole.ADMIN,
        )

        assert invitation.email == "new@acme.test"
        assert invitation.status == InvitationStatus.PENDING
        assert invitation.role == OrganizationRole.ADMIN

    async def test_duplicate_pending_invitation(
        self, organization_service, sample_subscription, clock
    ):
        await upgrade(sample_subscription, clock)
        await organization_service.invite_member(
            sample_subscription.organization_id,
            sample_subscription.owner_user_id,
            "new@acme.test",
        )

        with pytest.raises(InvalidStateTransition):
            await organization_service.invite_member(
                sample_subscription.organization_id,
                sample_subscription.owner_user_id,
                "NEW@acme.test",
            )

    async def test_seat_check_runs_inside_write_transaction(
        self, organization_service, sample_subscription, clock
    ):
        await upgrade(sample_subscription, clock)
        limits_service = organization_service.limits_service
        check = limits_service.assert_can_invite
        sessions = []

        async def recording_check(organization_id):
            sessions.append(get_current_session())
            return await check(organization_id)

        limits_service.assert_can_invite = recording_check

        await organization_service.invite_member(
            sample_subscription.organization_id,
            sample_subscription.owner_user_id,
            "new@acme.test",
        )

        assert len(sessions) == 1
        assert sessions[0] is not None

    async def test_cannot_invite_owner(
        self, organization_service, sample_subscription, clock
    ):
        await upgrade(sample_subscription, clock)
        with pytest.raises(ValidationError):
            await organization_service.invite_member(
                sample_subscription.organization_id,
                sample_subscription.owner_user_id,
                "boss@acme.test",
                role=OrganizationRole.OWNER,
            )

    async def test_accept_invitation(
        self, organization_service, sample_subscription, clock
    ):
        await upgrade(sample_subscription, clock)
        invitation = await organization_service.invite_member(
            sample_subscription.organization_id,
            sample_subscription.owner_user_id,
            "new@acme.test",
        )
        user = AuthenticatedUser(user_id=77, email="new@acme.test")

        member = await organization_service.accept_invitation(invitation.id, user)

        assert member.user_id == 77
        assert member.role == OrganizationRole.MEMBER
        stored = await OrganizationInvitationRepository().get(invitation.id)
        assert stored.status == InvitationStatus.ACCEPTED
        assert stored.accepted_by_user_id == 77

        with pytest.raises(InvalidStateTransition):
            await organization_service.accept_invitation(invitation.id, user)

    async def test_accept_invitation_for_someone_else(
        self, organization_service, sample_subscription, clock
    ):
        await upgrade(sample_subscription, clock)
        invitation = await organization_service.invite_member(
            sample_subscription.organization_id,
            sample_subscription.owner_user_id,
            "new@acme.test",
        )

        with pytest.raises(NotFoundError):
            await organization_service.accept_invitation(
                invitation.id, AuthenticatedUser(user_id=78, email="other@acme.test")
            )

    async def test_accept_invitation_without_email(
        self, organization_service, sample_subscription, clock
    ):
        await upgrade(sample_subscription, clock)
        invitation = await organization_service.invite_member(
            sample_subscription.organization_id,
            sample_subscription.owner_user_id,
            "alice@acme.test",
        )

        with pytest.raises(NotFoundError):
            await organization_service.accept_invitation(
                invitation.id, AuthenticatedUser(user_id=9999, email=None)
            )

        members = await organization_service.list_members(
            sample_subscription.organization_id
        )
        assert 9999 not in [m.user_id for m in members]
        stored = await OrganizationInvitationRepository().get(invitation.id)
        assert stored.status == InvitationStatus.PENDING

    async def test_accept_invitation_matches_email_case_insensitively(
        self, organization_service, sample_subscription, clock
    ):
        await upgrade(sample_subscription, clock)
        invitation = await organization_service.invite_member(
            sample_subscription.organization_id,
            sample_subscription.owner_user_id,
            "alice@acme.test",
        )

        member = await organization_service.accept_invitation(
            invitation.id, AuthenticatedUser(user_id=80, email=" Alice@Acme.TEST ")
        )

        assert member.user_id == 80


@pytest.mark.asyncio
class TestRemoveMember:
    async def test_remove_member_notifies(
        self, organization_service, sample_subscription, clock, mock_notifier
    ):
        await upgrade(sample_subscription, clock)
        invitation = await organization_service.invite_member(
            sample_subscription.organization_id,
            sample_subscription.owner_user_id,
            "new@acme.test",
        )
        await organization_service.accept_invitation(
            invitation.id, AuthenticatedUser(user_id=77, email="new@acme.test")
        )

        await organization_service.remove_member(
            sample_subscription.organization_id, 77, sample_subscription.owner_user_id
        )

        assert (
            await OrganizationMemberRepository().get_member(
                sample_subscription.organization_id, 77
            )
            is None
        )
        event = mock_notifier.notify.await_args.args[0]
        assert event.kind == "member_removed"
        assert event.user_id == 77

    async def test_owner_cannot_be_removed(
        self, organization_service, sample_subscription
    ):
        with pytest.raises(InvalidStateTransition):
            await organization_service.remove_member(
                sample_subscription.organization_id, sample_subscription.owner_user_id
            )

    async def test_remove_unknown_member(
        self, organization_service, sample_subscription
    ):
        with pytest.raises(NotFoundError):
            await organization_service.remove_member(
                sample_subscription.organization_id, 404
            )
