"""
Database entities for feature overrides and rollouts.
"""

from sqlalchemy import Boolean, Column, String, Integer, UniqueConstraint
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, UTCDateTime


class FeatureOverrideEntity(Base):
    """Per-owner switch that wins over plan flags and rollouts."""

    __tablename__ = "feature_overrides"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    owner_user_id = Column(BigIntegerType, nullable=False, index=True)
    feature_key = Column(String(100), nullable=False)
    enabled = Column(Boolean, nullable=False)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint(
            "owner_user_id", "feature_key", name="uq_feature_overrides_owner_feature"
        ),
    )


class FeatureRolloutEntity(Base):
    """Percentage rollout of a feature to organizations outside its plans."""

    __tablename__ = "feature_rollouts"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    feature_key = Column(String(100), nullable=False, unique=True)
    enabled = Column(Boolean, nullable=False, default=False)
    rollout_percentage = Column(Integer, nullable=False, server_default="0")
    seed = Column(String(100), nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())
