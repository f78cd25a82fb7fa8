"""Startup work run in the background once the server is listening."""

import asyncio
import logging
import random

from reqlens.core.errors import QueryError
from reqlens.core.latency import Sleep
from reqlens.core.models import QueryCallable
from reqlens.core.ports import LogEmitterPort
from reqlens.core.readiness import await_ready
from reqlens.demo_data import generate_users

logger = logging.getLogger(__name__)

INSERT_USER = "INSERT INTO users (name, email, age) VALUES (?, ?, ?) ON CONFLICT DO NOTHING"


async def seed_users(
    execute: QueryCallable,
    sinks: LogEmitterPort,
    count: int,
    rng: random.Random,
) -> int:
    """Insert ``count`` demo users, skipping emails that already exist.

    Each insert is logged to the ``app`` sink; a failed insert is logged as
    an error and the loop moves on.

    Returns:
        Number of insert statements that succeeded.
    """
    inserted = 0
    for user in generate_users(count, rng):
        try:
            await execute(INSERT_USER, [user["name"], user["email"], user["age"]])
        except QueryError as exc:
            await sinks.emit(
                "app", "ERROR", f"Failed to insert user: {user['name']}", {"error": str(exc)}
            )
            continue
        inserted += 1
        await sinks.emit(
            "app", "INFO", f"Inserted user: {user['name']} with email: {user['email']}"
        )
    logger.info("Inserted %d users", inserted)
    return inserted


async def bootstrap(
    execute: QueryCallable,
    sinks: LogEmitterPort,
    rng: random.Random,
    user_count: int = 50,
    readiness_attempts: int = 10,
    readiness_delay_ms: int = 5000,
    sleep: Sleep = asyncio.sleep,
) -> int:
    """Wait for the backing store, then seed the demo users.

    Seeding runs even when the readiness gate gives up; each failed insert
    is logged individually.
    """
    await await_ready(
        execute,
        max_attempts=readiness_attempts,
        delay_ms=readiness_delay_ms,
        sleep=sleep,
    )
    return await seed_users(execute, sinks, user_count, rng)
