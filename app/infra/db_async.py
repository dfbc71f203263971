# app/infra/db_async.py
"""
Async PostgreSQL access using an asyncpg pool.

The pool is created once in the application lifespan and shared by all
repositories through ``db_conn()``.
"""
from __future__ import annotations
from typing import AsyncIterator
from contextlib import asynccontextmanager

import asyncpg
from app.config import settings
from app.infra.logging_config import get_logger

logger = get_logger(__name__)

_pool: asyncpg.Pool | None = None


async def init_pool() -> None:
    global _pool

    if _pool is not None:
        return

    logger.info("Initializing asyncpg connection pool")

    _pool = await asyncpg.create_pool(
        dsn=settings.database_dsn,
        min_size=settings.pg_pool_min,
        max_size=settings.pg_pool_max,
        timeout=settings.pg_connect_timeout,
        command_timeout=30,
        server_settings={
            'application_name': 'media_relay',
        }
    )

    logger.info(f"Connection pool created: min={settings.pg_pool_min}, max={settings.pg_pool_max}")


async def close_pool() -> None:
    global _pool

    if _pool is None:
        return

    await _pool.close()
    _pool = None
    logger.info("Connection pool closed")


def is_pool_ready() -> bool:
    return _pool is not None


@asynccontextmanager
async def db_conn(transactional: bool = False) -> AsyncIterator[asyncpg.Connection]:
    """
    Acquire a pooled connection.

    Usage:
        async with db_conn() as conn:
            row = await conn.fetchrow("SELECT ... WHERE id = $1", record_id)

    With ``transactional=True`` the block runs inside a transaction that
    commits on exit and rolls back on error.
    """
    if _pool is None:
        raise RuntimeError("Connection pool not initialized. Call init_pool() first.")

    async with _pool.acquire() as conn:
        if transactional:
            async with conn.transaction():
                yield conn
        else:
            yield conn
