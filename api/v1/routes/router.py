from fastapi import APIRouter, Depends

from api.v1.routes import (
    health,
)
from packages.auth.dependencies import get_current_active_user
from packages.billing.routes import billing, webhooks, plans
from packages.organizations.routes import organizations

api_router = APIRouter()

# Health check (no auth required)
api_router.include_router(health.router, prefix="/health", tags=["health"])

# Webhooks (no user auth - secret and signature verified internally)
api_router.include_router(webhooks.router, tags=["webhooks"])

# Plans (no auth - public pricing info)
api_router.include_router(plans.router, prefix="/billing/plans", tags=["billing"])

# Organizations - auth per endpoint (creating one needs no organization yet)
api_router.include_router(organizations.router, tags=["organizations"])

# Billing routes (require auth; mutations also require a billing admin)
api_router.include_router(
    billing.router,
    prefix="/billing",
    tags=["billing"],
    dependencies=[Depends(get_current_active_user)],
)
