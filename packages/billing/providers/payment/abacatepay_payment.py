"""
AbacatePay implementation of payment provider.

AbacatePay wraps every response in a ``{"data": ..., "error": ...}`` envelope;
a missing ``data`` is an error even on HTTP 200.
"""

import asyncio
from typing import Any, Optional

import httpx

from common.core.config import settings
from common.core.exceptions import PaymentProviderError
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.billing.providers.payment.models import (
    CheckoutRequest,
    CustomerRequest,
    ProviderCheckout,
    ProviderCustomer,
)

logger = get_logger(__name__)

RETRY_DELAYS = [0.5, 1.5]
USER_AGENT = "tenant-billing/1.0"


class _RetryableError(Exception):
    pass


class AbacatePayPaymentProvider(PaymentProviderInterface):
    """AbacatePay-based payment implementation."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.abacatepay_api_key
        self.base_url = (base_url or settings.abacatepay_base_url).rstrip("/")
        self.timeout = timeout or settings.abacatepay_timeout_seconds
        self.max_retries = (
            max_retries if max_retries is not None else settings.abacatepay_max_retries
        )
        self._transport = transport

    def _headers(self, idempotency_key: Optional[str] = None) -> dict[str, str]:
        if not self.api_key:
            raise PaymentProviderError("Payment provider API key is not configured")
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    @staticmethod
    def _unwrap(response: httpx.Response) -> Any:
        try:
            payload = response.json()
        except ValueError:
            payload = None

        remote_error = payload.get("error") if isinstance(payload, dict) else None

        if response.status_code >= 500:
            raise _RetryableError(f"HTTP {response.status_code}")
        if response.is_error:
            message = remote_error if isinstance(remote_error, str) else "request rejected"
            raise PaymentProviderError(
                f"Payment provider error: {message} (HTTP {response.status_code})"
            )
        if not isinstance(payload, dict) or payload.get("data") is None:
            message = remote_error if isinstance(remote_error, str) else "empty response"
            raise PaymentProviderError(f"Invalid payment provider response: {message}")
        return payload["data"]

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
    ) -> Any:
        """Send a request, retrying timeouts, connection errors and 5xx."""
        retries = self.max_retries if retries is None else retries
        headers = self._headers(idempotency_key)
        last_error: Optional[Exception] = None

        for attempt in range(1 + retries):
            try:
                async with httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=timeout or self.timeout,
                    transport=self._transport,
                ) as client:
                    response = await client.request(
                        method, path, json=json, params=params, headers=headers
                    )
                return self._unwrap(response)
            except (httpx.TimeoutException, httpx.TransportError, _RetryableError) as e:
                last_error = e
                if attempt < retries:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.warning(
                        f"Payment provider retry {attempt + 1}/{retries} for {method} {path}: {e}",
                        extra={"path": path, "attempt": attempt + 1, "delay": delay},
                    )
                    await asyncio.sleep(delay)

        logger.error(
            f"Payment provider request failed after {1 + retries} attempts: {method} {path}",
            extra={"path": path, "error": str(last_error)},
        )
        raise PaymentProviderError(
            f"Payment provider unavailable: {last_error}"
        ) from last_error

    @trace_span
    async def create_checkout_session(self, request: CheckoutRequest) -> ProviderCheckout:
        body = {
            "frequency": "ONE_TIME",
            "methods": ["PIX"],
            "products": [
                {
                    "externalId": request.checkout_id,
                    "name": f"{request.plan_name} ({request.billing_cycle.lower()})",
                    "quantity": 1,
                    "price": request.amount_cents,
                }
            ],
            "returnUrl": request.return_url,
            "completionUrl": request.completion_url,
            "externalId": request.checkout_id,
            "metadata": {
                "checkoutId": request.checkout_id,
                "organizationId": str(request.organization_id),
                "planCode": request.plan_code,
                "billingCycle": request.billing_cycle,
                "currency": request.currency,
            },
        }
        if request.customer_id:
            body["customerId"] = request.customer_id
        data = await self._request(
            "POST",
            "/billing/create",
            json=body,
            idempotency_key=request.checkout_id,
        )
        checkout = ProviderCheckout.model_validate(data)

        logger.info(
            "Created provider checkout",
            extra={
                "checkout_id": request.checkout_id,
                "provider_checkout_id": checkout.id,
                "plan_code": request.plan_code,
            },
        )
        return checkout

    @trace_span
    async def create_customer(self, request: CustomerRequest) -> ProviderCustomer:
        data = await self._request(
            "POST",
            "/customer/create",
            json={
                "name": request.name,
                "cellphone": request.cellphone,
                "email": request.email,
                "taxId": request.tax_id,
            },
        )
        customer = ProviderCustomer.model_validate(data)
        logger.info(
            "Created provider customer",
            extra={"provider_customer_id": customer.id},
        )
        return customer

    @trace_span
    async def list_checkouts(self) -> list[ProviderCheckout]:
        # Listing is slow on the provider side; only timeouts are worth a retry
        retries = settings.abacatepay_billing_list_retries
        timeout = settings.abacatepay_billing_list_timeout_seconds
        for attempt in range(1 + retries):
            try:
                data = await self._request(
                    "GET", "/billing/list", timeout=timeout, retries=0
                )
                break
            except PaymentProviderError as e:
                timed_out = isinstance(e.__cause__, httpx.TimeoutException)
                if attempt == retries or not timed_out:
                    raise
                logger.warning(
                    f"Listing provider checkouts timed out, retrying ({attempt + 1}/{retries})"
                )

        if not isinstance(data, list):
            raise PaymentProviderError("Invalid payment provider response: expected a list")
        return [ProviderCheckout.model_validate(item) for item in data]

    @trace_span
    async def simulate_payment(
        self, provider_checkout_id: str, metadata: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        provider_checkout_id = provider_checkout_id.strip()
        if not provider_checkout_id:
            raise PaymentProviderError("Provider checkout id is required for simulation")

        data = await self._request(
            "POST",
            "/pixQrCode/simulate-payment",
            params={"id": provider_checkout_id},
            json={"metadata": metadata or {}},
        )
        return data if isinstance(data, dict) else {"result": data}

    async def health_check(self) -> bool:
        if not self.api_key:
            return False
        try:
            await self._request("GET", "/billing/list", retries=0)
            return True
        except PaymentProviderError as e:
            logger.warning(f"Payment provider health check failed: {e}")
            return False
