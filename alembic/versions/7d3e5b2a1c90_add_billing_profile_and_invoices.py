"""add_billing_profile_and_invoices

Revision ID: 7d3e5b2a1c90
Revises: 4c2a9e1f7b3d
Create Date: 2026-10-17 15:40:21.904117

Adds the billing profile and provider customer id to subscriptions, and the
invoices table.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7d3e5b2a1c90'
down_revision: Union[str, Sequence[str], None] = '4c2a9e1f7b3d'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column('subscriptions', sa.Column('billing_name', sa.String(200), nullable=True))
    op.add_column('subscriptions', sa.Column('billing_cellphone', sa.String(20), nullable=True))
    op.add_column('subscriptions', sa.Column('billing_tax_id', sa.String(14), nullable=True))
    op.add_column('subscriptions', sa.Column('billing_email', sa.String(255), nullable=True))
    op.add_column('subscriptions', sa.Column('provider_customer_id', sa.String(255), nullable=True))

    op.create_table(
        'invoices',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('organization_id', sa.BigInteger(), nullable=False),
        sa.Column('subscription_id', sa.BigInteger(), nullable=False),
        sa.Column('checkout_session_id', sa.BigInteger(), nullable=True),
        sa.Column('owner_user_id', sa.BigInteger(), nullable=False),
        sa.Column('provider_invoice_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='BRL'),
        sa.Column('invoice_url', sa.Text(), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_invoices'),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'], ondelete='CASCADE',
            name='fk_invoices_organization_id_organizations',
        ),
        sa.ForeignKeyConstraint(
            ['subscription_id'], ['subscriptions.id'], ondelete='CASCADE',
            name='fk_invoices_subscription_id_subscriptions',
        ),
        sa.ForeignKeyConstraint(
            ['checkout_session_id'], ['checkout_sessions.id'], ondelete='SET NULL',
            name='fk_invoices_checkout_session_id_checkout_sessions',
        ),
        sa.UniqueConstraint('provider_invoice_id', name='uq_invoices_provider_invoice_id'),
    )
    op.create_index('ix_invoices_id', 'invoices', ['id'])
    op.create_index('ix_invoices_organization_id', 'invoices', ['organization_id'])
    op.create_index('ix_invoices_checkout_session_id', 'invoices', ['checkout_session_id'])
    op.create_index('idx_invoice_org_created', 'invoices', ['organization_id', 'created_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('invoices')
    op.drop_column('subscriptions', 'provider_customer_id')
    op.drop_column('subscriptions', 'billing_email')
    op.drop_column('subscriptions', 'billing_tax_id')
    op.drop_column('subscriptions', 'billing_cellphone')
    op.drop_column('subscriptions', 'billing_name')
