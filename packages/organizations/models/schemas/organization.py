from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from packages.auth.models.domain.roles import OrganizationRole
from packages.organizations.models.domain.organization import InvitationStatus


class OrganizationCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class OrganizationResponse(BaseModel):
    id: int
    name: str
    owner_user_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvitationCreateRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    role: OrganizationRole = OrganizationRole.MEMBER


class InvitationResponse(BaseModel):
    id: int
    organization_id: int
    email: str
    role: OrganizationRole
    status: InvitationStatus
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MemberResponse(BaseModel):
    organization_id: int
    user_id: int
    role: OrganizationRole

    class Config:
        from_attributes = True
