"""
Database entity for invoices.
"""

from sqlalchemy import Column, String, ForeignKey, Index, Integer, Text
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, UTCDateTime


class InvoiceEntity(Base):
    """One provider billing charged to an organization."""

    __tablename__ = "invoices"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
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
    )
    checkout_session_id = Column(
        BigIntegerType,
        ForeignKey("checkout_sessions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    owner_user_id = Column(BigIntegerType, nullable=False)

    provider_invoice_id = Column(String(255), nullable=False, unique=True)
    status = Column(String(20), nullable=False)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, server_default="BRL")
    invoice_url = Column(Text, nullable=True)
    paid_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_invoice_org_created", "organization_id", "created_at"),
    )
