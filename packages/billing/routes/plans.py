"""
Plans API routes.

Public endpoint for retrieving available subscription plans.
"""

from fastapi import APIRouter, Depends

from packages.billing.dependencies import get_plans_service
from packages.billing.services.plans_service import PlansService
from packages.billing.models.domain.plans import PlansResponse

router = APIRouter()


@router.get("", response_model=PlansResponse)
async def get_plans(plans_service: PlansService = Depends(get_plans_service)):
    """
    Get all available subscription plans.

    Returns monthly and annual pricing, limits, and features for each plan.
    This endpoint is public (no auth required) for pricing pages.
    """
    return await plans_service.get_all_plans()
