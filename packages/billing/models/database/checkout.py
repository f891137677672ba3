"""
Database entity for checkout sessions.
"""

from sqlalchemy import Boolean, Column, String, ForeignKey, Index, Integer, Text
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, UTCDateTime


class CheckoutSessionEntity(Base):
    """Checkout session database entity."""

    __tablename__ = "checkout_sessions"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    checkout_id = Column(String(64), nullable=False, unique=True, index=True)
    organization_id = Column(
        BigIntegerType,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subscription_id = Column(
        BigIntegerType,
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    owner_user_id = Column(BigIntegerType, nullable=False)

    target_plan_code = Column(String(50), nullable=False)
    billing_cycle = Column(String(20), nullable=False)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, server_default="BRL")

    status = Column(String(20), nullable=False, index=True)
    provider_checkout_id = Column(String(255), nullable=True, unique=True)
    checkout_url = Column(Text, nullable=True)
    allow_same_plan = Column(Boolean, nullable=False, default=False)

    expires_at = Column(UTCDateTime, nullable=False)
    paid_at = Column(UTCDateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_checkout_org_status", "organization_id", "status"),
    )
