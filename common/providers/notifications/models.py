from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel


class UsageThresholdReached(BaseModel):
    kind: Literal["usage_threshold_reached"] = "usage_threshold_reached"
    organization_id: int
    metric_key: str
    threshold_percent: int
    consumed: int
    limit: int


class PaymentApproved(BaseModel):
    kind: Literal["payment_approved"] = "payment_approved"
    organization_id: int
    owner_user_id: int
    checkout_id: str
    plan_code: str
    amount_cents: int
    currency: str
    paid_at: datetime
    source: str


class PaymentOverdueReminder(BaseModel):
    kind: Literal["payment_overdue_reminder"] = "payment_overdue_reminder"
    organization_id: int
    owner_user_id: int
    plan_code: str
    reminder_day: int
    grace_ends_at: Optional[datetime] = None
    days_until_downgrade: Optional[int] = None


class MemberRemoved(BaseModel):
    kind: Literal["member_removed"] = "member_removed"
    organization_id: int
    user_id: int
    removed_by_user_id: Optional[int] = None


NotificationEvent = Union[
    UsageThresholdReached, PaymentApproved, PaymentOverdueReminder, MemberRemoved
]
