"""create_billing_schema

Revision ID: 4c2a9e1f7b3d
Revises:
Create Date: 2026-10-17 09:12:44.218305

Creates organizations and the billing tables.

Tables:
- organizations, organization_members, organization_invitations: thin tenant model
- subscriptions: one row per organization, lifecycle state and billing period
- usage_counters: monthly per-metric counters, one row per period
- checkout_sessions: AbacatePay checkouts and their outcome
- cancellation_feedback: append-only cancellation reasons
- webhook_events: received payment events, unique by provider event id
- feature_overrides, feature_rollouts: feature flag switches
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4c2a9e1f7b3d'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(with_updated: bool = True) -> list:
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
    ]
    if with_updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now())
        )
    return columns


def upgrade() -> None:
    """Create organization and billing tables."""

    op.create_table(
        'organizations',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('owner_user_id', sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_organizations'),
    )
    op.create_index('ix_organizations_id', 'organizations', ['id'])
    op.create_index('ix_organizations_owner_user_id', 'organizations', ['owner_user_id'])

    op.create_table(
        'organization_members',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('organization_id', sa.BigInteger(), nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='MEMBER'),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id', name='pk_organization_members'),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'], ondelete='CASCADE',
            name='fk_organization_members_organization_id_organizations',
        ),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_organization_members_org_user'),
    )
    op.create_index('ix_organization_members_id', 'organization_members', ['id'])
    op.create_index('ix_organization_members_organization_id', 'organization_members', ['organization_id'])
    op.create_index('ix_organization_members_user_id', 'organization_members', ['user_id'])

    op.create_table(
        'organization_invitations',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('organization_id', sa.BigInteger(), nullable=False),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='MEMBER'),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('invited_by_user_id', sa.BigInteger(), nullable=False),
        sa.Column('accepted_by_user_id', sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_organization_invitations'),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'], ondelete='CASCADE',
            name='fk_organization_invitations_organization_id_organizations',
        ),
    )
    op.create_index('ix_organization_invitations_id', 'organization_invitations', ['id'])
    op.create_index('ix_organization_invitations_organization_id', 'organization_invitations', ['organization_id'])
    op.create_index('idx_invitation_org_status', 'organization_invitations', ['organization_id', 'status'])

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('owner_user_id', sa.BigInteger(), nullable=False),
        sa.Column('organization_id', sa.BigInteger(), nullable=False),

        # Lifecycle
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('plan_code', sa.String(50), nullable=False),
        sa.Column('billing_cycle', sa.String(20), nullable=False, server_default='MONTHLY'),
        sa.Column('pending_plan_code', sa.String(50), nullable=True),

        # Trial
        sa.Column('trial_ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_used_at', sa.DateTime(timezone=True), nullable=True),

        # Billing period
        sa.Column('current_period_starts_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_period_ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),

        # Dunning / expiry
        sa.Column('grace_ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expiry_reason', sa.String(50), nullable=True),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=True),

        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_subscriptions'),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'], ondelete='CASCADE',
            name='fk_subscriptions_organization_id_organizations',
        ),
        sa.UniqueConstraint('owner_user_id', 'organization_id', name='uq_subscriptions_owner_org'),
    )
    op.create_index('ix_subscriptions_id', 'subscriptions', ['id'])
    op.create_index('ix_subscriptions_organization_id', 'subscriptions', ['organization_id'], unique=True)
    op.create_index('ix_subscriptions_owner_user_id', 'subscriptions', ['owner_user_id'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])
    op.create_index('idx_subscription_status_plan', 'subscriptions', ['status', 'plan_code'])
    op.create_index('idx_subscription_period_end', 'subscriptions', ['current_period_ends_at'])

    op.create_table(
        'usage_counters',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('organization_id', sa.BigInteger(), nullable=False),
        sa.Column('metric_key', sa.String(100), nullable=False, server_default='workspace_events'),
        sa.Column('period_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('consumed', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_usage_counters'),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'], ondelete='CASCADE',
            name='fk_usage_counters_organization_id_organizations',
        ),
        sa.UniqueConstraint(
            'organization_id', 'metric_key', 'period_start',
            name='uq_usage_counters_org_metric_period',
        ),
    )
    op.create_index('ix_usage_counters_id', 'usage_counters', ['id'])
    op.create_index('ix_usage_counters_organization_id', 'usage_counters', ['organization_id'])

    op.create_table(
        'checkout_sessions',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('checkout_id', sa.String(64), nullable=False),
        sa.Column('organization_id', sa.BigInteger(), nullable=False),
        sa.Column('subscription_id', sa.BigInteger(), nullable=False),
        sa.Column('owner_user_id', sa.BigInteger(), nullable=False),
        sa.Column('target_plan_code', sa.String(50), nullable=False),
        sa.Column('billing_cycle', sa.String(20), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='BRL'),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('provider_checkout_id', sa.String(255), nullable=True),
        sa.Column('checkout_url', sa.Text(), nullable=True),
        sa.Column('allow_same_plan', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_checkout_sessions'),
        sa.ForeignKeyConstraint(
            ['organization_id'], ['organizations.id'], ondelete='CASCADE',
            name='fk_checkout_sessions_organization_id_organizations',
        ),
        sa.ForeignKeyConstraint(
            ['subscription_id'], ['subscriptions.id'], ondelete='CASCADE',
            name='fk_checkout_sessions_subscription_id_subscriptions',
        ),
        sa.UniqueConstraint('provider_checkout_id', name='uq_checkout_sessions_provider_checkout_id'),
    )
    op.create_index('ix_checkout_sessions_id', 'checkout_sessions', ['id'])
    op.create_index('ix_checkout_sessions_checkout_id', 'checkout_sessions', ['checkout_id'], unique=True)
    op.create_index('ix_checkout_sessions_organization_id', 'checkout_sessions', ['organization_id'])
    op.create_index('ix_checkout_sessions_subscription_id', 'checkout_sessions', ['subscription_id'])
    op.create_index('ix_checkout_sessions_status', 'checkout_sessions', ['status'])
    op.create_index('idx_checkout_org_status', 'checkout_sessions', ['organization_id', 'status'])

    op.create_table(
        'cancellation_feedback',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('subscription_id', sa.BigInteger(), nullable=False),
        sa.Column('organization_id', sa.BigInteger(), nullable=False),
        sa.Column('reason_code', sa.String(50), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id', name='pk_cancellation_feedback'),
        sa.ForeignKeyConstraint(
            ['subscription_id'], ['subscriptions.id'], ondelete='CASCADE',
            name='fk_cancellation_feedback_subscription_id_subscriptions',
        ),
    )
    op.create_index('ix_cancellation_feedback_id', 'cancellation_feedback', ['id'])
    op.create_index('ix_cancellation_feedback_subscription_id', 'cancellation_feedback', ['subscription_id'])
    op.create_index('ix_cancellation_feedback_organization_id', 'cancellation_feedback', ['organization_id'])

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('event_id', sa.String(255), nullable=False),
        sa.Column('provider', sa.String(50), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint('id', name='pk_webhook_events'),
    )
    op.create_index('ix_webhook_events_id', 'webhook_events', ['id'])
    op.create_index('ix_webhook_events_event_id', 'webhook_events', ['event_id'], unique=True)
    op.create_index('ix_webhook_events_status', 'webhook_events', ['status'])

    op.create_table(
        'feature_overrides',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('owner_user_id', sa.BigInteger(), nullable=False),
        sa.Column('feature_key', sa.String(100), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_feature_overrides'),
        sa.UniqueConstraint('owner_user_id', 'feature_key', name='uq_feature_overrides_owner_feature'),
    )
    op.create_index('ix_feature_overrides_id', 'feature_overrides', ['id'])
    op.create_index('ix_feature_overrides_owner_user_id', 'feature_overrides', ['owner_user_id'])

    op.create_table(
        'feature_rollouts',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('feature_key', sa.String(100), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('rollout_percentage', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('seed', sa.String(100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_feature_rollouts'),
        sa.UniqueConstraint('feature_key', name='uq_feature_rollouts_feature_key'),
    )
    op.create_index('ix_feature_rollouts_id', 'feature_rollouts', ['id'])


def downgrade() -> None:
    """Drop organization and billing tables."""
    op.drop_table('feature_rollouts')
    op.drop_table('feature_overrides')
    op.drop_table('webhook_events')
    op.drop_table('cancellation_feedback')
    op.drop_table('checkout_sessions')
    op.drop_table('usage_counters')
    op.drop_table('subscriptions')
    op.drop_table('organization_invitations')
    op.drop_table('organization_members')
    op.drop_table('organizations')
