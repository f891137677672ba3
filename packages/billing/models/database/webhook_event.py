"""
Database entity for received payment webhook events.
"""

from sqlalchemy import Column, String, JSON, Text
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, UTCDateTime


class WebhookEventEntity(Base):
    """
    Payment webhook event log.

    The unique provider event id doubles as the replay guard: a second
    delivery of the same event cannot be inserted.
    """

    __tablename__ = "webhook_events"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    event_id = Column(String(255), nullable=False, unique=True, index=True)
    provider = Column(String(50), nullable=False)
    event_type = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, index=True)
    error_message = Column(Text, nullable=True)
    payload = Column(JSON, nullable=False, default=dict)
    processed_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
