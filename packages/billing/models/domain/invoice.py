"""
Domain models for invoices.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator

from packages.billing.models.domain.enums import CheckoutStatus


class Invoice(BaseModel):
    """
    A provider billing as the organization sees it.

    Checkouts record what we asked for; invoices record what the provider
    billed and how it ended.
    """

    id: int
    organization_id: int
    subscription_id: int
    checkout_session_id: Optional[int] = None
    owner_user_id: int

    provider_invoice_id: str
    status: CheckoutStatus
    amount_cents: int
    currency: str
    invoice_url: Optional[str] = None
    paid_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvoiceCreateModel(BaseModel):
    organization_id: int
    subscription_id: int
    checkout_session_id: Optional[int] = None
    owner_user_id: int
    provider_invoice_id: str
    status: str
    amount_cents: int
    currency: str
    invoice_url: Optional[str] = None
    paid_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        if isinstance(v, CheckoutStatus):
            return v.value
        return v


class InvoiceUpdateModel(BaseModel):
    checkout_session_id: Optional[int] = None
    provider_invoice_id: Optional[str] = None
    status: Optional[str] = None
    invoice_url: Optional[str] = None
    paid_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        if isinstance(v, CheckoutStatus):
            return v.value
        return v


def resolve_invoice_status(
    current: Optional[CheckoutStatus], incoming: CheckoutStatus
) -> CheckoutStatus:
    """A final status sticks; the one exception is a PAID invoice charged back."""
    if current is None or not current.is_final:
        return incoming
    if current == CheckoutStatus.PAID and incoming == CheckoutStatus.CHARGEBACK:
        return incoming
    return current
