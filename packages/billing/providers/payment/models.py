"""
Provider-side views of checkouts, as returned by the payment provider.
"""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class ProviderCheckout(BaseModel):
    """A hosted checkout (AbacatePay "billing") created for a checkout session."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    url: Optional[str] = None
    status: Optional[str] = None
    amount: Any = None
    paid_amount: Any = Field(default=None, alias="paidAmount")
    currency: Optional[str] = None
    products: list[dict[str, Any]] = []

    @property
    def external_ids(self) -> list[str]:
        return [
            product["externalId"]
            for product in self.products
            if isinstance(product, dict) and product.get("externalId")
        ]


class CheckoutRequest(BaseModel):
    """What the provider needs to open a hosted checkout."""

    checkout_id: str
    organization_id: int
    plan_code: str
    plan_name: str
    billing_cycle: str
    amount_cents: int
    currency: str
    return_url: str
    completion_url: str
    customer_id: Optional[str] = None


class CustomerRequest(BaseModel):
    """Who the provider bills; built from the subscription's billing profile."""

    name: str
    cellphone: str
    email: str
    tax_id: str


class ProviderCustomer(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
