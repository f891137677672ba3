"""
Entitlements: what an organization may do right now.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from packages.billing.models.domain.enums import (
    BillingCycle,
    BlockReason,
    PlanCode,
    SubscriptionStatus,
)
from packages.billing.models.domain.lifecycle import DunningState
from packages.billing.models.domain.plans import PlanLimits


class Entitlements(BaseModel):
    """
    Resolved view of a subscription after lazy transitions.

    ``plan_code`` is what is stored, ``effective_plan_code`` is what applies.
    ``limits`` and ``feature_flags`` always follow the effective plan.
    """

    organization_id: int
    owner_user_id: int
    subscription_id: int
    status: SubscriptionStatus
    plan_code: PlanCode
    effective_plan_code: PlanCode
    billing_cycle: BillingCycle
    pending_plan_code: Optional[PlanCode] = None

    limits: PlanLimits
    feature_flags: list[str]

    is_blocked: bool = False
    block_reason: Optional[BlockReason] = None
    seats_used: int = 0

    trial_ends_at: Optional[datetime] = None
    trial_used: bool = False
    current_period_ends_at: Optional[datetime] = None
    cancel_at_period_end: bool = False
    dunning: DunningState = DunningState()
