from typing import Optional
from pydantic import BaseModel

from packages.auth.models.domain.roles import OrganizationRole


class AuthenticatedUser(BaseModel):
    """User context passed through authentication dependencies"""

    user_id: int
    organization_id: Optional[int] = None
    role: OrganizationRole = OrganizationRole.MEMBER
    email: Optional[str] = None

    class Config:
        from_attributes = True

    @property
    def can_manage_billing(self) -> bool:
        return self.role.can_manage_billing
