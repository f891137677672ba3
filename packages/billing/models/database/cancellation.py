"""
Database entity for cancellation feedback.
"""

from sqlalchemy import Column, String, ForeignKey, Text
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, UTCDateTime


class CancellationFeedbackEntity(Base):
    """Append-only record of why a subscription was canceled."""

    __tablename__ = "cancellation_feedback"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    subscription_id = Column(
        BigIntegerType,
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    organization_id = Column(BigIntegerType, nullable=False, index=True)
    reason_code = Column(String(50), nullable=False)
    note = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
