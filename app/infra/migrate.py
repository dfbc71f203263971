#!/usr/bin/env python3
# app/infra/migrate.py
"""
Standalone migration runner.

    python -m app.infra.migrate

Run before starting the service (CI/CD step, init container, or by
hand). The service itself never applies migrations; /health/detailed
reports the schema version it finds.
"""
import asyncio
import sys

from app.infra.migrations_async import apply_migrations
from app.infra.db_async import init_pool, close_pool
from app.infra.logging_config import setup_logging, get_logger
from app.config import settings

logger = get_logger(__name__)


async def main() -> int:
    logger.info("Database migration runner")
    logger.info(f"Environment: {settings.app_env}")
    logger.info(f"Database: {settings.pghost}:{settings.pgport}/{settings.pgdatabase}")

    try:
        await init_pool()
        result = await apply_migrations()
    except Exception as exc:
        logger.critical(f"MIGRATION FAILED: {exc}", exc_info=True)
        return 1
    finally:
        await close_pool()

    if result['applied']:
        for migration in result['applied']:
            logger.info(f"  applied {migration}")
    else:
        logger.info("No new migrations to apply")

    return 0 if result['ok'] else 1


if __name__ == "__main__":
    setup_logging(level=settings.log_level, use_json=False)
    sys.exit(asyncio.run(main()))
