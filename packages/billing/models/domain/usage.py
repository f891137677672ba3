"""
Domain models for usage metering and quotas.
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel

DEFAULT_USAGE_METRIC = "workspace_events"


class UsageCounter(BaseModel):
    """
    Per-organization counter for one metric in one calendar month.

    A new month means a new row, so counters reset without a scheduler.
    """

    id: int
    organization_id: int
    metric_key: str
    period_start: datetime
    consumed: int

    class Config:
        from_attributes = True


class QuotaCheck(BaseModel):
    """
    Result of a quota enforcement check.

    ``limit`` and ``remaining`` are None on unlimited plans.
    """

    allowed: bool
    organization_id: int
    metric_key: str
    current_usage: int
    requested: int
    limit: Optional[int] = None
    remaining: Optional[int] = None

    def get_user_message(self) -> Optional[str]:
        if not self.allowed:
            return f"Monthly {self.metric_key} limit reached ({self.limit:,}). Upgrade to continue."
        return None


class UsageSnapshot(BaseModel):
    """Usage of one metric in the current period, for display."""

    organization_id: int
    metric_key: str
    consumed: int
    limit: Optional[int] = None
    remaining: Optional[int] = None
    percentage_used: Optional[float] = None
    period_start: datetime
    period_end: datetime


class UsageConsumption(BaseModel):
    """Outcome of a successful ``consume`` call."""

    organization_id: int
    metric_key: str
    amount: int
    consumed_before: int
    consumed_after: int
    limit: Optional[int] = None
    thresholds_crossed: list[int] = []


def month_period(now: datetime) -> tuple[datetime, datetime]:
    """UTC calendar month containing ``now``, as [start, end)."""
    now = now.astimezone(timezone.utc)
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def crossed_thresholds(
    before: int, after: int, limit: Optional[int], thresholds: list[int]
) -> list[int]:
    """Percent thresholds passed when usage moved from ``before`` to ``after``."""
    if not limit:
        return []
    return [
        threshold
        for threshold in sorted(thresholds)
        if before * 100 < threshold * limit <= after * 100
    ]
