"""
Database entity for subscriptions.
"""

from sqlalchemy import Boolean, Column, String, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, UTCDateTime


class SubscriptionEntity(Base):
    """
    Organization subscription database entity.

    Exactly one row per organization, owned by the organization's owner.
    Rows are never deleted; lifecycle changes are status transitions.
    """

    __tablename__ = "subscriptions"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    owner_user_id = Column(BigIntegerType, nullable=False, index=True)
    organization_id = Column(
        BigIntegerType,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    status = Column(String(50), nullable=False, index=True)
    plan_code = Column(String(50), nullable=False)
    billing_cycle = Column(String(20), nullable=False, server_default="MONTHLY")
    pending_plan_code = Column(String(50), nullable=True)

    # Trial
    trial_ends_at = Column(UTCDateTime, nullable=True)
    trial_used_at = Column(UTCDateTime, nullable=True)

    # Billing period
    current_period_starts_at = Column(UTCDateTime, nullable=True)
    current_period_ends_at = Column(UTCDateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)

    # Dunning / expiry
    grace_ends_at = Column(UTCDateTime, nullable=True)
    expiry_reason = Column(String(50), nullable=True)
    canceled_at = Column(UTCDateTime, nullable=True)

    # Billing profile and provider customer
    billing_name = Column(String(200), nullable=True)
    billing_cellphone = Column(String(20), nullable=True)
    billing_tax_id = Column(String(14), nullable=True)
    billing_email = Column(String(255), nullable=True)
    provider_customer_id = Column(String(255), nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint(
            "owner_user_id", "organization_id", name="uq_subscriptions_owner_org"
        ),
        Index("idx_subscription_status_plan", "status", "plan_code"),
        Index("idx_subscription_period_end", "current_period_ends_at"),
    )
