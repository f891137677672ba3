from typing import Optional
from sqlalchemy import delete, func, select

from common.repositories.base import BaseRepository
from packages.organizations.models.database.organization import (
    OrganizationEntity,
    OrganizationInvitationEntity,
    OrganizationMemberEntity,
)
from packages.organizations.models.domain.organization import (
    InvitationStatus,
    Organization,
    OrganizationInvitation,
    OrganizationMember,
)
from common.core.otel_axiom_exporter import trace_span


class OrganizationRepository(BaseRepository[OrganizationEntity, Organization]):
    def __init__(self):
        super().__init__(OrganizationEntity, Organization)

    @trace_span
    async def count_by_owner(self, owner_user_id: int) -> int:
        """Number of organizations owned by a user."""
        async with self._get_session() as session:
            result = await session.execute(
                select(func.count(OrganizationEntity.id)).where(
                    OrganizationEntity.owner_user_id == owner_user_id
                )
            )
            return result.scalar_one() or 0


class OrganizationMemberRepository(
    BaseRepository[OrganizationMemberEntity, OrganizationMember]
):
    def __init__(self):
        super().__init__(OrganizationMemberEntity, OrganizationMember)

    @trace_span
    async def get_member(
        self, organization_id: int, user_id: int
    ) -> Optional[OrganizationMember]:
        async with self._get_session() as session:
            result = await session.execute(
                select(OrganizationMemberEntity).where(
                    OrganizationMemberEntity.organization_id == organization_id,
                    OrganizationMemberEntity.user_id == user_id,
                )
            )
            db_member = result.scalar_one_or_none()
            return self._entity_to_domain(db_member) if db_member else None

    @trace_span
    async def list_by_organization(self, organization_id: int) -> list[OrganizationMember]:
        async with self._get_session() as session:
            result = await session.execute(
                select(OrganizationMemberEntity)
                .where(OrganizationMemberEntity.organization_id == organization_id)
                .order_by(OrganizationMemberEntity.id)
            )
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def count_by_organization(self, organization_id: int) -> int:
        async with self._get_session() as session:
            result = await session.execute(
                select(func.count(OrganizationMemberEntity.id)).where(
                    OrganizationMemberEntity.organization_id == organization_id
                )
            )
            return result.scalar_one() or 0

    @trace_span
    async def delete_member(self, organization_id: int, user_id: int) -> bool:
        async with self._get_session() as session:
            result = await session.execute(
                delete(OrganizationMemberEntity).where(
                    OrganizationMemberEntity.organization_id == organization_id,
                    OrganizationMemberEntity.user_id == user_id,
                )
            )
            return (result.rowcount or 0) > 0


class OrganizationInvitationRepository(
    BaseRepository[OrganizationInvitationEntity, OrganizationInvitation]
):
    def __init__(self):
        super().__init__(OrganizationInvitationEntity, OrganizationInvitation)

    @trace_span
    async def count_pending(self, organization_id: int) -> int:
        async with self._get_session() as session:
            result = await session.execute(
                select(func.count(OrganizationInvitationEntity.id)).where(
                    OrganizationInvitationEntity.organization_id == organization_id,
                    OrganizationInvitationEntity.status
                    == InvitationStatus.PENDING.value,
                )
            )
            return result.scalar_one() or 0

    @trace_span
    async def list_by_organization(
        self, organization_id: int
    ) -> list[OrganizationInvitation]:
        async with self._get_session() as session:
            result = await session.execute(
                select(OrganizationInvitationEntity)
                .where(OrganizationInvitationEntity.organization_id == organization_id)
                .order_by(OrganizationInvitationEntity.id)
            )
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def get_pending_by_email(
        self, organization_id: int, email: str
    ) -> Optional[OrganizationInvitation]:
        async with self._get_session() as session:
            result = await session.execute(
                select(OrganizationInvitationEntity).where(
                    OrganizationInvitationEntity.organization_id == organization_id,
                    OrganizationInvitationEntity.email == email,
                    OrganizationInvitationEntity.status
                    == InvitationStatus.PENDING.value,
                )
            )
            db_invitation = result.scalars().first()
            return self._entity_to_domain(db_invitation) if db_invitation else None
