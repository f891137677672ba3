"""
Mapping provider reports onto checkout outcomes, and checking what was paid.

Shared by the inbound webhook and provider reconciliation so both reach the
same conclusion from the same data.
"""

import re
from typing import Any, Iterable, Optional

from common.core.exceptions import ValidationError
from packages.billing.models.domain.checkout import CheckoutSession, PaymentEvidence
from packages.billing.models.domain.enums import CheckoutStatus
from packages.billing.models.domain.webhooks import PaymentWebhookPayload

_EVENT_OUTCOMES = {
    "billing.paid": CheckoutStatus.PAID,
    "billing.failed": CheckoutStatus.FAILED,
    "billing.expired": CheckoutStatus.EXPIRED,
    "subscription.expired": CheckoutStatus.EXPIRED,
    "billing.chargeback": CheckoutStatus.CHARGEBACK,
    "billing.refunded": CheckoutStatus.CHARGEBACK,
}

# Provider billing status -> outcome; PENDING has none
_BILLING_STATUS_OUTCOMES = {
    "PAID": CheckoutStatus.PAID,
    "EXPIRED": CheckoutStatus.EXPIRED,
    "CANCELLED": CheckoutStatus.FAILED,
    "REFUNDED": CheckoutStatus.CHARGEBACK,
}

_TRANSACTION_STATUS_OUTCOMES = {
    "COMPLETE": CheckoutStatus.PAID,
    "CANCELLED": CheckoutStatus.FAILED,
    "REFUNDED": CheckoutStatus.CHARGEBACK,
}

_DIGITS = re.compile(r"^\d+$")
_CURRENCY = re.compile(r"^[A-Z]{3}$")


def outcome_from_billing_status(status: Optional[str]) -> Optional[CheckoutStatus]:
    return _BILLING_STATUS_OUTCOMES.get((status or "").upper())


def infer_outcome(payload: PaymentWebhookPayload) -> Optional[CheckoutStatus]:
    """Event name first, then billing status, then transaction status."""
    outcome = _EVENT_OUTCOMES.get(payload.event)
    if outcome is not None:
        return outcome

    data = payload.data
    if data is None:
        return None
    if data.billing is not None:
        outcome = outcome_from_billing_status(data.billing.status)
        if outcome is not None:
            return outcome
    if data.transaction is not None:
        return _TRANSACTION_STATUS_OUTCOMES.get((data.transaction.status or "").upper())
    return None


def parse_amount_cents(value: Any) -> Optional[int]:
    """Non-negative integer or digit string, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and _DIGITS.match(value.strip()):
        return int(value.strip())
    return None


def parse_currency(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    normalized = value.strip().upper()
    return normalized if _CURRENCY.match(normalized) else None


def sum_products_cents(products: Iterable[Any]) -> Optional[int]:
    """Sum of quantity * price; None if any line is unreadable."""
    total = 0
    seen = False
    for product in products:
        quantity = parse_amount_cents(_field(product, "quantity"))
        price = parse_amount_cents(_field(product, "price"))
        if quantity is None or price is None or quantity <= 0:
            return None
        total += quantity * price
        seen = True
    return total if seen else None


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _first(parser, candidates: Iterable[Any]):
    for candidate in candidates:
        parsed = parser(candidate)
        if parsed is not None:
            return parsed
    return None


def evidence_from_payload(payload: PaymentWebhookPayload) -> PaymentEvidence:
    data = payload.data
    if data is None:
        return PaymentEvidence()

    payment, transaction, billing, pix = (
        data.payment,
        data.transaction,
        data.billing,
        data.pix_qr_code,
    )
    amount = _first(
        parse_amount_cents,
        [
            payment and payment.amount_cents,
            payment and payment.amount,
            transaction and transaction.amount_cents,
            transaction and transaction.amount,
            billing and billing.paid_amount,
            billing and billing.amount,
            pix and pix.amount,
        ],
    )
    if amount is None and billing is not None:
        amount = sum_products_cents(billing.products)

    currency = _first(
        parse_currency,
        [
            payment and payment.currency,
            transaction and transaction.currency,
            billing and billing.currency,
            pix and pix.currency,
        ],
    )
    return PaymentEvidence(
        amount_cents=amount,
        currency=currency,
        provider_checkout_id=billing.id if billing else None,
    )


def verify_payment_evidence(checkout: CheckoutSession, evidence: PaymentEvidence) -> None:
    """
    Raise ValidationError unless the evidence matches what the checkout charges.

    A missing currency is only accepted when the checkout is in BRL.
    """
    if evidence.amount_cents is None:
        raise ValidationError("Payment notification carries no valid amount")
    if evidence.amount_cents != checkout.amount_cents:
        raise ValidationError(
            f"Paid amount {evidence.amount_cents} does not match checkout amount {checkout.amount_cents}"
        )

    expected_currency = checkout.currency.strip().upper()
    paid_currency = parse_currency(evidence.currency)
    if paid_currency and paid_currency != expected_currency:
        raise ValidationError(
            f"Paid currency {paid_currency} does not match checkout currency {expected_currency}"
        )
    if not paid_currency and expected_currency != "BRL":
        raise ValidationError("Payment notification carries no currency")
