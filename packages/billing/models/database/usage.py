"""
Database entity for usage counters.
"""

from sqlalchemy import Column, String, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, UTCDateTime


class UsageCounterEntity(Base):
    """
    Monthly usage counter database entity.

    One row per organization, metric and UTC calendar month. ``consumed`` is
    only ever changed by a conditional increment that keeps it within the
    plan limit.
    """

    __tablename__ = "usage_counters"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    organization_id = Column(
        BigIntegerType,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    metric_key = Column(String(100), nullable=False, server_default="workspace_events")
    period_start = Column(UTCDateTime, nullable=False)
    consumed = Column(Integer, nullable=False, server_default="0")

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "metric_key",
            "period_start",
            name="uq_usage_counters_org_metric_period",
        ),
    )
