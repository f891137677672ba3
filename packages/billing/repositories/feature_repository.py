"""
Repositories for feature overrides and rollouts.
"""

from typing import Optional
from sqlalchemy import select

from common.repositories.base import BaseRepository
from packages.billing.models.database.features import (
    FeatureOverrideEntity,
    FeatureRolloutEntity,
)
from packages.billing.models.domain.features import FeatureOverride, FeatureRollout
from common.core.otel_axiom_exporter import trace_span


class FeatureOverrideRepository(BaseRepository[FeatureOverrideEntity, FeatureOverride]):
    def __init__(self):
        super().__init__(FeatureOverrideEntity, FeatureOverride)

    @trace_span
    async def list_for_owner(self, owner_user_id: int) -> list[FeatureOverride]:
        async with self._get_session() as session:
            result = await session.execute(
                select(FeatureOverrideEntity).where(
                    FeatureOverrideEntity.owner_user_id == owner_user_id
                )
            )
            return self._entities_to_domain(result.scalars().all())


class FeatureRolloutRepository(BaseRepository[FeatureRolloutEntity, FeatureRollout]):
    def __init__(self):
        super().__init__(FeatureRolloutEntity, FeatureRollout)

    @trace_span
    async def get_by_feature(self, feature_key: str) -> Optional[FeatureRollout]:
        async with self._get_session() as session:
            result = await session.execute(
                select(FeatureRolloutEntity).where(
                    FeatureRolloutEntity.feature_key == feature_key
                )
            )
            db_rollout = result.scalar_one_or_none()
            return self._entity_to_domain(db_rollout) if db_rollout else None

    @trace_span
    async def list_all(self) -> list[FeatureRollout]:
        async with self._get_session() as session:
            result = await session.execute(
                select(FeatureRolloutEntity).order_by(FeatureRolloutEntity.feature_key)
            )
            return self._entities_to_domain(result.scalars().all())
