"""
Factory for getting payment provider instance.
"""

from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.billing.providers.payment.abacatepay_payment import (
    AbacatePayPaymentProvider,
)


def get_payment_provider() -> PaymentProviderInterface:
    """
    Get payment provider instance based on configuration.

    Currently only AbacatePay is supported.
    """
    return AbacatePayPaymentProvider()
