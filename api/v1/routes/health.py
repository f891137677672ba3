from fastapi import APIRouter, Depends, Request
from sqlalchemy import text

from common.db.scoped import get_session
from common.core.otel_axiom_exporter import get_logger
from common.providers.rate_limiter.limiter import limiter
from packages.billing.providers.payment import (
    PaymentProviderInterface,
    get_payment_provider,
)

logger = get_logger(__name__)

router = APIRouter()


@router.get("/")
async def health_check(request: Request):
    # No rate limiting or logging - k8s liveness checks hit this every 5-10s
    return {"status": "healthy", "service": "tenant-billing"}


@router.get("/db")
@limiter.limit("100/minute")
async def db_check(request: Request):
    try:
        async with get_session(readonly=True) as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "unhealthy", "database": "disconnected"}


@router.get("/payments")
@limiter.limit("10/minute")
async def payment_provider_check(
    request: Request,
    payment_provider: PaymentProviderInterface = Depends(get_payment_provider),
):
    healthy = await payment_provider.health_check()
    return {
        "status": "healthy" if healthy else "unhealthy",
        "payment_provider": "reachable" if healthy else "unreachable",
    }
