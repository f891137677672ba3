"""
Interface for payment providers.

Money movement is delegated to the provider; only checkout state is kept
locally.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from packages.billing.providers.payment.models import (
    CheckoutRequest,
    CustomerRequest,
    ProviderCheckout,
    ProviderCustomer,
)


class PaymentProviderInterface(ABC):
    """Abstract interface for payment providers."""

    @abstractmethod
    async def create_checkout_session(self, request: CheckoutRequest) -> ProviderCheckout:
        """
        Create a hosted checkout for a local checkout session.

        ``request.checkout_id`` is sent as the idempotency key and as the
        external id, so retries never open a second checkout and inbound
        notifications can be matched back.

        Raises:
            PaymentProviderError: when the provider cannot be reached or
                rejects the request.
        """
        pass

    @abstractmethod
    async def create_customer(self, request: CustomerRequest) -> ProviderCustomer:
        """
        Register the customer a checkout is billed to.

        Raises:
            PaymentProviderError: when the provider cannot be reached or
                rejects the request.
        """
        pass

    @abstractmethod
    async def list_checkouts(self) -> list[ProviderCheckout]:
        """List hosted checkouts known to the provider."""
        pass

    @abstractmethod
    async def simulate_payment(
        self, provider_checkout_id: str, metadata: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """Ask the provider sandbox to mark a checkout as paid."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the payment backend is available and healthy.

        Returns:
            True if healthy, False otherwise
        """
        pass
