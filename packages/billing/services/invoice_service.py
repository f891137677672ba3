"""
Service for the invoice history of an organization.

Invoices follow checkout state changes and can be refreshed from the
provider's billing list. A sync never replaces a final invoice status,
except PAID by CHARGEBACK.
"""

from datetime import datetime
from typing import Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.context import readonly
from packages.billing.models.domain.checkout import CheckoutSession
from packages.billing.models.domain.enums import CheckoutStatus
from packages.billing.models.domain.invoice import (
    Invoice,
    InvoiceCreateModel,
    InvoiceUpdateModel,
    resolve_invoice_status,
)
from packages.billing.models.domain.outcomes import outcome_from_billing_status
from packages.billing.providers.payment import (
    PaymentProviderInterface,
    get_payment_provider,
)
from packages.billing.providers.payment.models import ProviderCheckout
from packages.billing.providers.payment.trusted_urls import is_trusted_checkout_url
from packages.billing.repositories.checkout_repository import CheckoutSessionRepository
from packages.billing.repositories.invoice_repository import InvoiceRepository

logger = get_logger(__name__)

# Checkouts considered when matching provider billings during a sync
SYNC_CHECKOUT_LIMIT = 200


class InvoiceService:
    """Service for recording, listing and syncing invoices."""

    def __init__(
        self,
        invoice_repo: Optional[InvoiceRepository] = None,
        checkout_repo: Optional[CheckoutSessionRepository] = None,
        payment_provider: Optional[PaymentProviderInterface] = None,
    ):
        self.invoice_repo = invoice_repo or InvoiceRepository()
        self.checkout_repo = checkout_repo or CheckoutSessionRepository()
        self.payment_provider = payment_provider or get_payment_provider()

    @trace_span
    @readonly
    async def list_invoices(self, organization_id: int) -> list[Invoice]:
        return await self.invoice_repo.list_by_organization(organization_id)

    @trace_span
    async def record_checkout_invoice(
        self,
        checkout: CheckoutSession,
        status: CheckoutStatus,
        provider_invoice_id: Optional[str] = None,
        invoice_url: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> Invoice:
        """
        Create or move the invoice of a checkout.

        Mirrors the checkout, whose own transitions are already guarded.
        Joins the caller's transaction when there is one, so the invoice
        commits together with the checkout change that caused it.
        """
        existing = await self.invoice_repo.get_by_checkout_session_id(checkout.id)
        if existing is None:
            provider_invoice_id = (
                provider_invoice_id
                or checkout.provider_checkout_id
                or f"local_{checkout.checkout_id}"
            )
        return await self._upsert(
            checkout,
            existing,
            provider_invoice_id or existing.provider_invoice_id,
            status,
            invoice_url or checkout.checkout_url,
            paid_at,
            keep_final=False,
        )

    @trace_span
    async def sync_from_provider(self, organization_id: int) -> list[Invoice]:
        """
        Refresh invoices from the provider's billing list.

        Billings are matched to the organization's checkouts by provider
        billing id, then by our checkout id sent as external id; billings of
        other organizations never match. Subscriptions are not touched; use
        checkout reconciliation for that.
        """
        checkouts = await self.checkout_repo.list_by_organization(
            organization_id, limit=SYNC_CHECKOUT_LIMIT
        )
        by_checkout_id = {checkout.checkout_id: checkout for checkout in checkouts}
        by_provider_id = {
            checkout.provider_checkout_id: checkout
            for checkout in checkouts
            if checkout.provider_checkout_id
        }

        billings = await self.payment_provider.list_checkouts()
        synced = 0
        for billing in billings:
            checkout = by_provider_id.get(billing.id) or next(
                (
                    by_checkout_id[external_id]
                    for external_id in billing.external_ids
                    if external_id in by_checkout_id
                ),
                None,
            )
            if checkout is None:
                continue
            await self._sync_billing(checkout, billing)
            synced += 1

        logger.info(
            f"Synced {synced} invoice(s) for organization {organization_id}",
            extra={
                "organization_id": organization_id,
                "provider_billings": len(billings),
                "synced": synced,
            },
        )
        return await self.invoice_repo.list_by_organization(organization_id)

    async def _sync_billing(
        self, checkout: CheckoutSession, billing: ProviderCheckout
    ) -> None:
        status = outcome_from_billing_status(billing.status) or CheckoutStatus.PENDING
        invoice_url = billing.url
        if invoice_url and not is_trusted_checkout_url(
            invoice_url, settings.allowed_checkout_hosts
        ):
            logger.warning(
                f"Dropped untrusted billing URL for checkout {checkout.checkout_id}",
                extra={"checkout_id": checkout.checkout_id, "provider_invoice_id": billing.id},
            )
            invoice_url = None

        existing = await self.invoice_repo.get_by_provider_invoice_id(billing.id)
        if existing is None:
            # Invoice recorded before the provider id was known
            existing = await self.invoice_repo.get_by_checkout_session_id(checkout.id)
        paid_at = checkout.paid_at if status == CheckoutStatus.PAID else None
        await self._upsert(
            checkout, existing, billing.id, status, invoice_url, paid_at, keep_final=True
        )

    async def _upsert(
        self,
        checkout: CheckoutSession,
        existing: Optional[Invoice],
        provider_invoice_id: str,
        status: CheckoutStatus,
        invoice_url: Optional[str],
        paid_at: Optional[datetime],
        keep_final: bool,
    ) -> Invoice:
        if existing is None:
            created = await self.invoice_repo.create_if_missing(
                InvoiceCreateModel(
                    organization_id=checkout.organization_id,
                    subscription_id=checkout.subscription_id,
                    checkout_session_id=checkout.id,
                    owner_user_id=checkout.owner_user_id,
                    provider_invoice_id=provider_invoice_id,
                    status=status,
                    amount_cents=checkout.amount_cents,
                    currency=checkout.currency,
                    invoice_url=invoice_url,
                    paid_at=paid_at,
                )
            )
            stored = await self.invoice_repo.get_by_provider_invoice_id(provider_invoice_id)
            if created or stored is None:
                return stored
            existing = stored

        next_status = (
            resolve_invoice_status(existing.status, status) if keep_final else status
        )
        if next_status != status:
            logger.info(
                f"Kept final status {existing.status.value} of invoice {existing.provider_invoice_id}",
                extra={
                    "provider_invoice_id": existing.provider_invoice_id,
                    "current_status": existing.status.value,
                    "incoming_status": status.value,
                },
            )

        fields = {
            "checkout_session_id": checkout.id,
            "provider_invoice_id": provider_invoice_id,
            "status": next_status,
            "invoice_url": invoice_url or existing.invoice_url,
        }
        if next_status == CheckoutStatus.PAID and existing.status != CheckoutStatus.PAID:
            fields["paid_at"] = paid_at
        return await self.invoice_repo.update(existing.id, InvoiceUpdateModel(**fields))
