"""Global rate limiter instance for SlowAPI."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from common.core.config import settings

# Default limits apply to every route; the payment webhook carries its own
# tighter limit. Point RATE_LIMIT_STORAGE_URI at Redis when running more than
# one API process so counters are shared.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=settings.rate_limit_defaults,
    storage_uri=settings.rate_limit_storage_uri,
)
