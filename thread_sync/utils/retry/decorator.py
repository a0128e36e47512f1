from __future__ import annotations

import asyncio
from functools import wraps
import logging
from typing import TYPE_CHECKING, ParamSpec, TypeVar

from thread_sync.infra.metrics.tracking import (
    track_retry_attempt,
    track_retry_exhausted,
    track_retry_success,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .policy import StoreRetryPolicy

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def retry_store_calls(
    policy: StoreRetryPolicy,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Retry an async store call while the store is unavailable.

    Errors the policy does not retry propagate at once. When the attempts
    are exhausted the last StoreUnavailable propagates unchanged.

    Example:
        @retry_store_calls(StoreRetryPolicy.from_settings(get_sync_settings()))
        async def load(): ...
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        name = getattr(func, "__name__", repr(func))

        @wraps(func)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            attempt = 0
            while True:
                try:
                    result = await func(*args, **kwargs)
                    if attempt > 0:
                        track_retry_success(name, attempt + 1)
                    return result
                except Exception as e:
                    if not policy.should_retry(e):
                        raise

                    if attempt >= policy.max_attempts - 1:
                        track_retry_exhausted(name)
                        logger.error(
                            f"All retry attempts exhausted for {name}",
                            extra={"function": name, "attempts": attempt + 1, "last_exception": str(e)},
                        )
                        raise

                    delay = policy.delay_for(attempt)
                    attempt += 1
                    track_retry_attempt(name, attempt + 1)
                    logger.warning(
                        f"Retrying {name} after {delay:.2f}s (attempt {attempt}/{policy.max_attempts})",
                        extra={
                            "function": name,
                            "attempt": attempt,
                            "max_attempts": policy.max_attempts,
                            "delay": delay,
                            "exception": str(e),
                        },
                    )
                    await asyncio.sleep(delay)

        return async_wrapper

    return decorator
