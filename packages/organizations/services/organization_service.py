"""
Service for organizations, members and invitations.

Every mutation that adds an organization or a seat runs the billing limit
check inside its own transaction, under the subscription row lock, so a
refused request leaves no row behind.
"""

from typing import List, Optional

from common.core.best_effort import best_effort
from common.core.exceptions import (
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.context import readonly
from common.db.scoped import transaction
from common.providers.notifications import (
    MemberRemoved,
    NotificationProviderInterface,
    get_notification_provider,
)
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.auth.models.domain.roles import OrganizationRole
from packages.billing.services.entitlement_service import EntitlementService
from packages.billing.services.limits_service import LimitsService
from packages.organizations.models.domain.organization import (
    InvitationStatus,
    Organization,
    OrganizationCreateModel,
    OrganizationInvitation,
    OrganizationInvitationCreateModel,
    OrganizationInvitationUpdateModel,
    OrganizationMember,
    OrganizationMemberCreateModel,
)
from packages.organizations.repositories.organization_repository import (
    OrganizationInvitationRepository,
    OrganizationMemberRepository,
    OrganizationRepository,
)

logger = get_logger(__name__)


def normalize_email(email: str) -> str:
    normalized = (email or "").strip().lower()
    local, _, domain = normalized.partition("@")
    if not local or "." not in domain:
        raise ValidationError(f"Invalid email address: {email}")
    return normalized


def _is_recipient(user: AuthenticatedUser, invitation: OrganizationInvitation) -> bool:
    """Only a caller with a verified email matching the invitation may accept it."""
    if not user.email:
        return False
    try:
        return normalize_email(user.email) == invitation.email
    except ValidationError:
        return False


class OrganizationService:
    """Service for handling organization operations."""

    def __init__(
        self,
        organization_repo: Optional[OrganizationRepository] = None,
        member_repo: Optional[OrganizationMemberRepository] = None,
        invitation_repo: Optional[OrganizationInvitationRepository] = None,
        entitlement_service: Optional[EntitlementService] = None,
        limits_service: Optional[LimitsService] = None,
        notifier: Optional[NotificationProviderInterface] = None,
    ):
        self.organization_repo = organization_repo or OrganizationRepository()
        self.member_repo = member_repo or OrganizationMemberRepository()
        self.invitation_repo = invitation_repo or OrganizationInvitationRepository()
        self.entitlement_service = entitlement_service or EntitlementService()
        self.limits_service = limits_service or LimitsService(
            entitlement_service=self.entitlement_service
        )
        self.notifier = notifier or get_notification_provider()

    @trace_span
    async def create_organization(self, owner_user_id: int, name: str) -> Organization:
        """Create an organization owned by the caller, with a FREE subscription."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Organization name is required")

        async with transaction():
            # Owner subscription locks serialize concurrent creations
            await self.limits_service.lock_owner_subscriptions(owner_user_id)
            current_count = await self.organization_repo.count_by_owner(owner_user_id)
            await self.limits_service.assert_can_create_organization(
                owner_user_id, current_count
            )

            organization = await self.organization_repo.create(
                OrganizationCreateModel(name=name, owner_user_id=owner_user_id)
            )
            await self.member_repo.create(
                OrganizationMemberCreateModel(
                    organization_id=organization.id,
                    user_id=owner_user_id,
                    role=OrganizationRole.OWNER,
                )
            )

        await self.entitlement_service.ensure_subscription(organization.id)
        logger.info(
            f"Created organization {organization.id}",
            extra={"organization_id": organization.id, "owner_user_id": owner_user_id},
        )
        return organization

    @trace_span
    @readonly
    async def list_members(self, organization_id: int) -> List[OrganizationMember]:
        return await self.member_repo.list_by_organization(organization_id)

    @trace_span
    @readonly
    async def list_invitations(self, organization_id: int) -> List[OrganizationInvitation]:
        return await self.invitation_repo.list_by_organization(organization_id)

    @trace_span
    async def invite_member(
        self,
        organization_id: int,
        invited_by_user_id: int,
        email: str,
        role: OrganizationRole = OrganizationRole.MEMBER,
    ) -> OrganizationInvitation:
        """Invite someone by email. A pending invitation takes a seat."""
        email = normalize_email(email)
        if role == OrganizationRole.OWNER:
            raise ValidationError("Invitations cannot grant the OWNER role")

        async with transaction():
            await self.entitlement_service.lock_subscription(organization_id)
            existing = await self.invitation_repo.get_pending_by_email(
                organization_id, email
            )
            if existing:
                raise InvalidStateTransition(f"{email} already has a pending invitation")

            await self.limits_service.assert_can_invite(organization_id)

            invitation = await self.invitation_repo.create(
                OrganizationInvitationCreateModel(
                    organization_id=organization_id,
                    email=email,
                    role=role,
                    invited_by_user_id=invited_by_user_id,
                )
            )
        logger.info(
            f"Invited {email} to organization {organization_id}",
            extra={
                "organization_id": organization_id,
                "invitation_id": invitation.id,
                "invited_by_user_id": invited_by_user_id,
            },
        )
        return invitation

    @trace_span
    async def accept_invitation(
        self, invitation_id: int, user: AuthenticatedUser
    ) -> OrganizationMember:
        invitation = await self.invitation_repo.get(invitation_id)
        # Invitations addressed to someone else are reported as missing
        if not invitation or not _is_recipient(user, invitation):
            raise NotFoundError(f"Invitation {invitation_id} not found")
        if invitation.status != InvitationStatus.PENDING:
            raise InvalidStateTransition(
                f"Invitation is {invitation.status.value.lower()}"
            )

        async with transaction():
            await self.entitlement_service.lock_subscription(invitation.organization_id)
            await self.limits_service.assert_can_accept_invitation(
                invitation.organization_id, invitation_is_pending=True
            )

            claimed = await self.invitation_repo.compare_and_update(
                invitation.id,
                {"status": InvitationStatus.PENDING.value},
                OrganizationInvitationUpdateModel(
                    status=InvitationStatus.ACCEPTED, accepted_by_user_id=user.user_id
                ),
            )
            if not claimed:
                raise InvalidStateTransition("Invitation was already used")

            member = await self.member_repo.get_member(
                invitation.organization_id, user.user_id
            )
            if member is None:
                member = await self.member_repo.create(
                    OrganizationMemberCreateModel(
                        organization_id=invitation.organization_id,
                        user_id=user.user_id,
                        role=invitation.role,
                    )
                )

        logger.info(
            f"User {user.user_id} joined organization {invitation.organization_id}",
            extra={
                "organization_id": invitation.organization_id,
                "invitation_id": invitation.id,
                "user_id": user.user_id,
            },
        )
        return member

    @trace_span
    async def remove_member(
        self, organization_id: int, user_id: int, removed_by_user_id: Optional[int] = None
    ) -> None:
        member = await self.member_repo.get_member(organization_id, user_id)
        if not member:
            raise NotFoundError(f"User {user_id} is not a member of this organization")
        if member.role == OrganizationRole.OWNER:
            raise InvalidStateTransition("The organization owner cannot be removed")

        await self.member_repo.delete_member(organization_id, user_id)
        logger.info(
            f"Removed user {user_id} from organization {organization_id}",
            extra={
                "organization_id": organization_id,
                "user_id": user_id,
                "removed_by_user_id": removed_by_user_id,
            },
        )
        await self._notify_member_removed(organization_id, user_id, removed_by_user_id)

    @best_effort("member_removed_notification")
    async def _notify_member_removed(
        self, organization_id: int, user_id: int, removed_by_user_id: Optional[int]
    ) -> None:
        await self.notifier.notify(
            MemberRemoved(
                organization_id=organization_id,
                user_id=user_id,
                removed_by_user_id=removed_by_user_id,
            )
        )
