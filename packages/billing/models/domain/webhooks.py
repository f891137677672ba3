"""
Payment provider webhook payloads and the stored event log.

Payload models are permissive: the provider adds fields freely and only the
parts needed to infer an outcome and match a checkout are read.
"""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from packages.billing.models.domain.enums import WebhookProcessingStatus

# Raw provider amount; validated when an outcome is applied.
Amount = Any


class _ProviderModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class WebhookProduct(_ProviderModel):
    external_id: Optional[str] = Field(default=None, alias="externalId")
    quantity: Amount = None
    price: Amount = None


class WebhookBilling(_ProviderModel):
    id: Optional[str] = None
    status: Optional[str] = None
    url: Optional[str] = None
    amount: Amount = None
    paid_amount: Amount = Field(default=None, alias="paidAmount")
    currency: Optional[str] = None
    products: list[WebhookProduct] = []


class WebhookTransaction(_ProviderModel):
    id: Optional[str] = None
    status: Optional[str] = None
    external_id: Optional[str] = Field(default=None, alias="externalId")
    amount: Amount = None
    amount_cents: Amount = Field(default=None, alias="amountCents")
    currency: Optional[str] = None


class WebhookPayment(_ProviderModel):
    amount: Amount = None
    amount_cents: Amount = Field(default=None, alias="amountCents")
    currency: Optional[str] = None


class WebhookPixQrCode(_ProviderModel):
    id: Optional[str] = None
    status: Optional[str] = None
    amount: Amount = None
    currency: Optional[str] = None


class WebhookData(_ProviderModel):
    billing: Optional[WebhookBilling] = None
    transaction: Optional[WebhookTransaction] = None
    payment: Optional[WebhookPayment] = None
    pix_qr_code: Optional[WebhookPixQrCode] = Field(default=None, alias="pixQrCode")


class PaymentWebhookPayload(_ProviderModel):
    id: str
    event: str
    dev_mode: bool = Field(default=False, alias="devMode")
    data: Optional[WebhookData] = None

    @field_validator("id", "event")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class WebhookEvent(BaseModel):
    id: int
    event_id: str
    provider: str
    event_type: str
    status: WebhookProcessingStatus
    error_message: Optional[str] = None
    payload: dict[str, Any] = {}
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WebhookResult(BaseModel):
    ok: bool = True
    duplicate: bool = False
    processed: bool = False
