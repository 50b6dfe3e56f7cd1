"""
Async PostgreSQL connection via asyncpg.
"""
import os
import asyncpg
from typing import Optional
import logging
from interest_finder.core.config import settings

logger = logging.getLogger(__name__)

# Global connection pool
_pool: Optional[asyncpg.Pool] = None

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS system_credentials (
    key TEXT PRIMARY KEY,
    token TEXT NOT NULL,
    last_refreshed_at DOUBLE PRECISION NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS security_alerts (
    id BIGSERIAL PRIMARY KEY,
    user_id TEXT NOT NULL,
    reason TEXT NOT NULL,
    details JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""


async def get_pool() -> asyncpg.Pool:
    """
    Returns the connection pool (singleton), creating it on first call.

    Returns:
        asyncpg.Pool: async connection pool

    Raises:
        ConfigurationError: if DATABASE_URL is not set
    """
    global _pool
    if _pool is None:
        settings.require("DATABASE_URL")
        try:
            pool_min = int(os.getenv("DATABASE_POOL_MIN_SIZE", "1"))
            pool_max = int(os.getenv("DATABASE_POOL_MAX_SIZE", "10"))
            _pool = await asyncpg.create_pool(
                settings.DATABASE_URL,
                min_size=pool_min,
                max_size=pool_max,
                command_timeout=30,
            )
            logger.info(f"✅ asyncpg pool created (min={pool_min}, max={pool_max})")
        except Exception as e:
            logger.error(f"❌ Failed to create asyncpg pool: {e}")
            raise
    return _pool


async def ensure_schema() -> None:
    """Creates the tables used by the service if they do not exist."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA_DDL)
    logger.info("✅ Database schema ready")


async def close_pool():
    """
    Closes the connection pool (call on shutdown).
    """
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("🔌 asyncpg pool closed")
