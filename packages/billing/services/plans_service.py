"""Service for retrieving billing plan information."""

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span
from packages.billing.models.domain.plans import (
    PLAN_CATALOG,
    PlanDefinition,
    PlanInfo,
    PlansResponse,
)


class PlansService:
    """Service for retrieving plan information."""

    @trace_span
    async def get_all_plans(self) -> PlansResponse:
        """Get all available plans with pricing and limits, cheapest first."""
        return PlansResponse(
            plans=[self._build_plan_info(plan) for plan in PLAN_CATALOG.values()]
        )

    def _build_plan_info(self, plan: PlanDefinition) -> PlanInfo:
        return PlanInfo(
            code=plan.code,
            name=plan.name,
            description=plan.description,
            monthly_price_cents=plan.monthly_price_cents,
            annual_price_cents=plan.annual_price_cents,
            currency=settings.billing_currency,
            limits=plan.limits,
            features=sorted(feature.value for feature in plan.features),
        )
