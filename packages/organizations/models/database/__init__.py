from packages.organizations.models.database.organization import (
    OrganizationEntity,
    OrganizationInvitationEntity,
    OrganizationMemberEntity,
)

__all__ = [
    "OrganizationEntity",
    "OrganizationInvitationEntity",
    "OrganizationMemberEntity",
]
