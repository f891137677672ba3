"""Static plan catalog and the API views over it."""

from typing import Dict, FrozenSet, Optional
from pydantic import BaseModel

from packages.billing.models.domain.enums import BillingCycle, PlanCode, PlanFeature

ANNUAL_BILLING_DISCOUNT = 0.20


class PlanLimits(BaseModel):
    """Quota limits for a plan. ``None`` means unlimited."""

    organizations_limit: Optional[int]
    users_limit: Optional[int]
    monthly_usage_limit: Optional[int]

    class Config:
        frozen = True


class PlanDefinition(BaseModel):
    code: PlanCode
    name: str
    description: str
    monthly_price_cents: int
    limits: PlanLimits
    features: FrozenSet[PlanFeature]

    class Config:
        frozen = True

    @property
    def annual_price_cents(self) -> int:
        return round(self.monthly_price_cents * 12 * (1 - ANNUAL_BILLING_DISCOUNT))

    def price_cents(self, cycle: BillingCycle) -> int:
        if cycle == BillingCycle.ANNUAL:
            return self.annual_price_cents
        return self.monthly_price_cents

    def has_feature(self, feature: PlanFeature) -> bool:
        return feature in self.features


_STARTER_FEATURES = frozenset(
    {PlanFeature.TEAM_INVITES, PlanFeature.BULK_PRODUCT_ACTIONS}
)
_PRO_FEATURES = _STARTER_FEATURES | {
    PlanFeature.ADVANCED_ANALYTICS,
    PlanFeature.API_ACCESS,
}

PLAN_CATALOG: Dict[PlanCode, PlanDefinition] = {
    PlanCode.FREE: PlanDefinition(
        code=PlanCode.FREE,
        name="Free",
        description="Try it out with a single seat",
        monthly_price_cents=0,
        limits=PlanLimits(
            organizations_limit=1, users_limit=1, monthly_usage_limit=100
        ),
        features=frozenset(),
    ),
    PlanCode.STARTER_50: PlanDefinition(
        code=PlanCode.STARTER_50,
        name="Starter",
        description="Small teams up to 50 seats",
        monthly_price_cents=5000,
        limits=PlanLimits(
            organizations_limit=3, users_limit=50, monthly_usage_limit=5_000
        ),
        features=_STARTER_FEATURES,
    ),
    PlanCode.PRO_100: PlanDefinition(
        code=PlanCode.PRO_100,
        name="Pro",
        description="Growing teams up to 100 seats",
        monthly_price_cents=10000,
        limits=PlanLimits(
            organizations_limit=10, users_limit=100, monthly_usage_limit=20_000
        ),
        features=_PRO_FEATURES,
    ),
    PlanCode.SCALE_400: PlanDefinition(
        code=PlanCode.SCALE_400,
        name="Scale",
        description="Unlimited seats and organizations",
        monthly_price_cents=40000,
        limits=PlanLimits(
            organizations_limit=None, users_limit=None, monthly_usage_limit=None
        ),
        features=_PRO_FEATURES | {PlanFeature.PRIORITY_SUPPORT},
    ),
}


def get_plan(code: PlanCode) -> PlanDefinition:
    return PLAN_CATALOG[code]


def exceeds_limit(current: int, additional: int, limit: Optional[int]) -> bool:
    """True when ``current + additional`` would go over ``limit`` (None = unlimited)."""
    if limit is None:
        return False
    return current + additional > limit


class PlanInfo(BaseModel):
    """Public plan information combining pricing and limits."""

    code: PlanCode
    name: str
    description: str
    monthly_price_cents: int
    annual_price_cents: int
    currency: str
    limits: PlanLimits
    features: list[str]


class PlansResponse(BaseModel):
    """Response model for plans endpoint."""

    plans: list[PlanInfo]
