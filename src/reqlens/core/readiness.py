"""Startup readiness gate for the backing store."""

import asyncio
import logging

from reqlens.core.errors import BackingStoreUnavailable
from reqlens.core.latency import Sleep
from reqlens.core.models import QueryCallable

logger = logging.getLogger(__name__)

DEFAULT_LIVENESS_QUERY = "SELECT datetime('now')"


async def await_ready(
    execute: QueryCallable,
    max_attempts: int = 10,
    delay_ms: int = 5000,
    liveness_query: str = DEFAULT_LIVENESS_QUERY,
    sleep: Sleep = asyncio.sleep,
) -> bool:
    """Poll the backing store until it answers or the budget runs out.

    Fixed number of attempts with a fixed delay between them. Exhausting the
    budget is logged as a warning and reported through the return value;
    it never raises, so startup carries on without the store.

    Args:
        execute: Query capability of the store.
        max_attempts: Number of liveness queries to try.
        delay_ms: Pause after each failed attempt.
        liveness_query: Trivial statement the store must answer.
        sleep: Async sleep taking seconds.

    Returns:
        True once a liveness query succeeds, False if every attempt failed.
    """
    remaining = max_attempts
    last_error: Exception | None = None
    while remaining > 0:
        try:
            await execute(liveness_query, None)
        except Exception as exc:
            last_error = exc
            remaining -= 1
            logger.info(
                "Waiting for backing store... (%d attempts left): %s", remaining, exc
            )
            await sleep(delay_ms / 1000)
        else:
            logger.info("Connected to backing store")
            return True

    unavailable = BackingStoreUnavailable(
        f"Backing store unreachable after {max_attempts} attempts"
    )
    logger.warning("%s; continuing startup (last error: %s)", unavailable, last_error)
    return False
