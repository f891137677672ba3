from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, field_validator

from packages.auth.models.domain.roles import OrganizationRole


class InvitationStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REVOKED = "REVOKED"


class Organization(BaseModel):
    id: int
    name: str
    owner_user_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrganizationCreateModel(BaseModel):
    name: str
    owner_user_id: int


class OrganizationMember(BaseModel):
    id: int
    organization_id: int
    user_id: int
    role: OrganizationRole
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrganizationMemberCreateModel(BaseModel):
    organization_id: int
    user_id: int
    role: str = OrganizationRole.MEMBER.value

    @field_validator("role", mode="before")
    @classmethod
    def validate_role(cls, v):
        if isinstance(v, OrganizationRole):
            return v.value
        return v


class OrganizationInvitation(BaseModel):
    id: int
    organization_id: int
    email: str
    role: OrganizationRole
    status: InvitationStatus
    invited_by_user_id: int
    accepted_by_user_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrganizationInvitationCreateModel(BaseModel):
    organization_id: int
    email: str
    role: str = OrganizationRole.MEMBER.value
    status: str = InvitationStatus.PENDING.value
    invited_by_user_id: int

    @field_validator("role", "status", mode="before")
    @classmethod
    def validate_enum_value(cls, v):
        if isinstance(v, (OrganizationRole, InvitationStatus)):
            return v.value
        return v


class OrganizationInvitationUpdateModel(BaseModel):
    status: Optional[str] = None
    accepted_by_user_id: Optional[int] = None

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        if isinstance(v, InvitationStatus):
            return v.value
        return v
