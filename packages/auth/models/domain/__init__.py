from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.auth.models.domain.roles import OrganizationRole

__all__ = [
    "AuthenticatedUser",
    "OrganizationRole",
]
