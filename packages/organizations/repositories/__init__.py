from packages.organizations.repositories.organization_repository import (
    OrganizationInvitationRepository,
    OrganizationMemberRepository,
    OrganizationRepository,
)

__all__ = [
    "OrganizationInvitationRepository",
    "OrganizationMemberRepository",
    "OrganizationRepository",
]
