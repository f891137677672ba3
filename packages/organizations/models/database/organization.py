from sqlalchemy import Column, String, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, UTCDateTime


class OrganizationEntity(Base):
    __tablename__ = "organizations"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    owner_user_id = Column(BigIntegerType, nullable=False, index=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())


class OrganizationMemberEntity(Base):
    __tablename__ = "organization_members"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    organization_id = Column(
        BigIntegerType,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(BigIntegerType, nullable=False, index=True)
    role = Column(String(20), nullable=False, server_default="MEMBER")

    created_at = Column(UTCDateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "user_id", name="uq_organization_members_org_user"
        ),
    )


class OrganizationInvitationEntity(Base):
    __tablename__ = "organization_invitations"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    organization_id = Column(
        BigIntegerType,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email = Column(String(320), nullable=False)
    role = Column(String(20), nullable=False, server_default="MEMBER")
    status = Column(String(20), nullable=False, server_default="PENDING")
    invited_by_user_id = Column(BigIntegerType, nullable=False)
    accepted_by_user_id = Column(BigIntegerType, nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_invitation_org_status", "organization_id", "status"),
    )
