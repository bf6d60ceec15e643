"""asyncpg pool lifecycle: lazy creation, health check, bounded shutdown."""

import asyncio
import logging
from typing import Optional

import asyncpg

from virtuals.config import get_config

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5.0
CLOSE_TIMEOUT = 5.0

_pool: Optional[asyncpg.Pool] = None


async def get_pool() -> asyncpg.Pool:
    """Return the shared pool, creating and health-checking it on first use.

    Raises:
        asyncio.TimeoutError: If the database does not answer within CONNECT_TIMEOUT
        RuntimeError: If the pool cannot be created or the health check fails
    """
    global _pool

    if _pool is not None:
        return _pool

    config = get_config()

    try:
        _pool = await asyncio.wait_for(
            asyncpg.create_pool(
                str(config.db_dsn),
                min_size=config.db_pool_min,
                max_size=config.db_pool_max,
            ),
            timeout=CONNECT_TIMEOUT,
        )
    except asyncio.TimeoutError:
        raise asyncio.TimeoutError(
            f"Database connection timed out after {CONNECT_TIMEOUT:.0f} seconds. "
            "Check that PostgreSQL is reachable at VIRTUALS db_dsn."
        )

    if _pool is None:
        raise RuntimeError("Failed to create database pool")

    try:
        async with _pool.acquire() as conn:
            result = await conn.fetchval("SELECT 1")
            if result != 1:
                raise RuntimeError(f"Health check failed: expected 1, got {result}")
    except Exception as e:
        await _pool.close()
        _pool = None
        raise RuntimeError(f"Database health check failed: {e}") from e

    logger.info(f"Database pool ready (min={config.db_pool_min}, max={config.db_pool_max})")
    return _pool


async def close_pool() -> None:
    """Close the shared pool; terminate it if connections do not drain in time."""
    global _pool
    if _pool is None:
        return

    try:
        await asyncio.wait_for(_pool.close(), timeout=CLOSE_TIMEOUT)
    except asyncio.TimeoutError:
        logger.warning(
            f"Pool close timed out after {CLOSE_TIMEOUT:.0f} seconds; terminating "
            "(a settlement batch may still hold a connection)"
        )
        _pool.terminate()
    finally:
        _pool = None
