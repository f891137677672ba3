"""
Fire-and-forget side effects.

Secondary writes and notices (cancellation feedback, usage alerts, payment
receipts, member-removed notices) must never fail or roll back the primary
operation that triggered them. Wrap them with ``@best_effort`` and call them
after the primary transaction has committed:

    @best_effort("cancellation_feedback")
    async def _record_feedback(self, ...):
        await self.feedback_repo.create(...)

A failure is logged with the operation name and swallowed; the wrapper then
returns ``None``.
"""

import functools
from typing import Awaitable, Callable, Optional, ParamSpec, TypeVar

from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def best_effort(
    operation: str,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[Optional[T]]]]:
    def decorator(
        func: Callable[P, Awaitable[T]],
    ) -> Callable[P, Awaitable[Optional[T]]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> Optional[T]:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    f"Best-effort operation '{operation}' failed: {e}",
                    exc_info=True,
                    extra={"operation": operation, "error": str(e)},
                )
                return None

        return wrapper

    return decorator
