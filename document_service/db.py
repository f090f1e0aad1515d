"""Async database connection pools.

Two lazily created singletons: the primary pool for the ``documents`` table
and the search pool for ``document_search_index``. The search pool points at
``SEARCH_DATABASE_URL`` when set and otherwise shares the primary DSN.
"""

from __future__ import annotations

import logging
import os

import asyncpg

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None
_search_pool: asyncpg.Pool | None = None


class DatabaseConfig:
    """Builds connection strings based on detected environment."""

    @staticmethod
    def get_connection_string() -> str:
        # Priority 1: Explicit override
        if url := os.environ.get("DATABASE_URL"):
            return url

        # Priority 2: Cloud Run -> managed AlloyDB
        if os.environ.get("K_SERVICE") or os.environ.get("CLOUD_RUN_JOB"):
            host = os.environ.get("ALLOYDB_HOST")
            db = os.environ.get("ALLOYDB_DB", "documents")
            user = os.environ.get("ALLOYDB_USER", "documents")
            password = os.environ.get("ALLOYDB_PASSWORD", "")
            return f"postgresql://{user}:{password}@{host}/{db}"

        # Priority 3: Local dev
        sslmode = os.environ.get("DB_SSLMODE", "disable")
        return (
            f"postgresql://{os.environ.get('DB_USER', 'documents')}:"
            f"{os.environ.get('DB_PASSWORD', 'documents')}@"
            f"{os.environ.get('DB_HOST', 'localhost')}:"
            f"{os.environ.get('DB_PORT', '5432')}/"
            f"{os.environ.get('DB_NAME', 'documents')}?sslmode={sslmode}"
        )

    @staticmethod
    def get_search_connection_string() -> str:
        return os.environ.get("SEARCH_DATABASE_URL") or DatabaseConfig.get_connection_string()


async def _create_pool(dsn: str) -> asyncpg.Pool:
    return await asyncpg.create_pool(
        dsn=dsn,
        min_size=1,
        max_size=int(os.environ.get("DB_POOL_MAX", "5")),
        command_timeout=30,
    )


async def get_pool() -> asyncpg.Pool:
    """Return the singleton connection pool, creating it if necessary."""
    global _pool  # noqa: PLW0603
    if _pool is None:
        logger.info("Creating database pool (host hidden for security)")
        _pool = await _create_pool(DatabaseConfig.get_connection_string())
    return _pool


async def get_search_pool() -> asyncpg.Pool:
    """Return the search index pool, creating it if necessary."""
    global _search_pool  # noqa: PLW0603
    if _search_pool is None:
        if not os.environ.get("SEARCH_DATABASE_URL"):
            _search_pool = await get_pool()
        else:
            logger.info("Creating search index pool (host hidden for security)")
            _search_pool = await _create_pool(DatabaseConfig.get_search_connection_string())
    return _search_pool


async def close_pool() -> None:
    """Gracefully close both pools."""
    global _pool, _search_pool  # noqa: PLW0603
    if _search_pool is not None and _search_pool is not _pool:
        await _search_pool.close()
        logger.info("Search index pool closed")
    _search_pool = None
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


async def check_db_connection() -> bool:
    """Health check: returns True if the database is reachable."""
    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return True
    except Exception:
        logger.exception("Database health check failed")
        return False

