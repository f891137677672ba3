"""
Repository for invoices.
"""

from typing import Optional
from sqlalchemy import select

from common.repositories.base import BaseRepository
from packages.billing.models.database.invoice import InvoiceEntity
from packages.billing.models.domain.invoice import Invoice, InvoiceCreateModel
from common.core.otel_axiom_exporter import trace_span

DEFAULT_INVOICE_LIMIT = 50


class InvoiceRepository(BaseRepository[InvoiceEntity, Invoice]):
    def __init__(self):
        super().__init__(InvoiceEntity, Invoice)

    @trace_span
    async def get_by_provider_invoice_id(
        self, provider_invoice_id: str
    ) -> Optional[Invoice]:
        async with self._get_session() as session:
            result = await session.execute(
                select(InvoiceEntity).where(
                    InvoiceEntity.provider_invoice_id == provider_invoice_id
                )
            )
            db_invoice = result.scalar_one_or_none()
            return self._entity_to_domain(db_invoice) if db_invoice else None

    @trace_span
    async def get_by_checkout_session_id(
        self, checkout_session_id: int
    ) -> Optional[Invoice]:
        async with self._get_session() as session:
            result = await session.execute(
                select(InvoiceEntity)
                .where(InvoiceEntity.checkout_session_id == checkout_session_id)
                .order_by(InvoiceEntity.id)
                .limit(1)
            )
            db_invoice = result.scalar_one_or_none()
            return self._entity_to_domain(db_invoice) if db_invoice else None

    @trace_span
    async def list_by_organization(
        self, organization_id: int, limit: int = DEFAULT_INVOICE_LIMIT
    ) -> list[Invoice]:
        """Newest invoices first."""
        async with self._get_session() as session:
            result = await session.execute(
                select(InvoiceEntity)
                .where(InvoiceEntity.organization_id == organization_id)
                .order_by(InvoiceEntity.id.desc())
                .limit(limit)
            )
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def create_if_missing(self, create_model: InvoiceCreateModel) -> bool:
        """Insert unless the provider invoice id is already stored. True if inserted."""
        async with self._get_session() as session:
            stmt = self._insert_ignoring_conflicts(
                session,
                create_model.model_dump(exclude_none=True),
                index_elements=["provider_invoice_id"],
            ).returning(InvoiceEntity.id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None
