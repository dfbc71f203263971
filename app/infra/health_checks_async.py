# app/infra/health_checks_async.py
from __future__ import annotations
import time
from typing import Dict, Any, Sequence
from enum import Enum

from app.config import settings
from app.infra.db_async import db_conn, is_pool_ready
from app.infra.logging_config import get_logger
from app.infra.migrations_async import current_schema_version

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class AsyncHealthCheck:
    """Base class for async health checks"""

    def __init__(self, name: str, critical: bool = True):
        self.name = name
        self.critical = critical

    async def check(self) -> Dict[str, Any]:
        """
        Perform health check.
        Returns dict with 'status', 'details', and optionally 'error'
        """
        raise NotImplementedError


class AsyncDatabaseHealthCheck(AsyncHealthCheck):
    """Database reachable and every metadata table present"""

    def __init__(self, tables: Sequence[str] | None = None):
        super().__init__("database", critical=True)
        self.tables = list(tables) if tables is not None else [
            settings.tiktok_table,
            settings.tiktok_mp3_table,
            settings.youtube_table,
            settings.ai_images_table,
        ]

    async def check(self) -> Dict[str, Any]:
        if not is_pool_ready():
            return {
                "status": HealthStatus.UNHEALTHY,
                "details": "Database pool not initialized",
            }

        start = time.time()

        try:
            async with db_conn() as conn:
                result = await conn.fetchval("SELECT 1")
                if result != 1:
                    return {
                        "status": HealthStatus.UNHEALTHY,
                        "details": "Unexpected query result",
                        "error": f"Expected 1, got {result}"
                    }

                missing_tables = []
                for table in self.tables:
                    if await conn.fetchval("SELECT to_regclass($1)", table) is None:
                        missing_tables.append(table)

            if missing_tables:
                return {
                    "status": HealthStatus.UNHEALTHY,
                    "details": "Missing required tables",
                    "error": f"Missing: {', '.join(missing_tables)}"
                }

            duration = time.time() - start
            if duration > 1.0:
                return {
                    "status": HealthStatus.DEGRADED,
                    "details": f"Slow database response: {duration:.3f}s",
                    "response_time": duration
                }

            schema_version = await current_schema_version()
            if schema_version != settings.expected_schema_version:
                return {
                    "status": HealthStatus.DEGRADED,
                    "details": "Schema version mismatch",
                    "schema_version": schema_version,
                    "expected_version": settings.expected_schema_version,
                }

            return {
                "status": HealthStatus.HEALTHY,
                "details": "Database operational",
                "schema_version": schema_version,
                "response_time": duration
            }

        except Exception as exc:
            logger.error("Database health check failed", exc_info=True)
            return {
                "status": HealthStatus.UNHEALTHY,
                "details": "Database connection failed",
                "error": str(exc)[:200]
            }


class AsyncStorageHealthCheck(AsyncHealthCheck):
    """Every route bucket reachable with the configured credentials"""

    def __init__(self, storage, buckets: Sequence[str] | None = None):
        super().__init__("storage", critical=True)
        self.storage = storage
        self.buckets = list(buckets) if buckets is not None else [
            settings.tiktok_bucket,
            settings.tiktok_mp3_bucket,
            settings.youtube_bucket,
            settings.ai_images_bucket,
        ]

    async def check(self) -> Dict[str, Any]:
        if self.storage is None:
            return {
                "status": HealthStatus.UNHEALTHY,
                "details": "Storage not configured",
            }

        unreachable = [b for b in self.buckets if not await self.storage.check_bucket(b)]
        if len(unreachable) == len(self.buckets):
            return {
                "status": HealthStatus.UNHEALTHY,
                "details": "No bucket reachable",
                "error": f"Unreachable: {', '.join(unreachable)}"
            }
        if unreachable:
            return {
                "status": HealthStatus.DEGRADED,
                "details": "Some buckets unreachable",
                "error": f"Unreachable: {', '.join(unreachable)}"
            }
        return {"status": HealthStatus.HEALTHY, "details": "Storage operational"}


class AsyncHealthChecker:
    """Aggregate async health checks"""

    def __init__(self, checks: Sequence[AsyncHealthCheck]):
        self.checks = list(checks)

    async def run_checks(self, include_non_critical: bool = True) -> Dict[str, Any]:
        """
        Returns:
            {
                "status": "healthy" | "degraded" | "unhealthy",
                "checks": {...},
                "timestamp": float
            }
        """
        results = {}
        overall_status = HealthStatus.HEALTHY

        for check in self.checks:
            if not include_non_critical and not check.critical:
                continue

            result = await check.check()
            results[check.name] = result

            if result["status"] == HealthStatus.UNHEALTHY and check.critical:
                overall_status = HealthStatus.UNHEALTHY
            elif result["status"] != HealthStatus.HEALTHY and overall_status == HealthStatus.HEALTHY:
                overall_status = HealthStatus.DEGRADED

        return {
            "status": overall_status.value,
            "checks": results,
            "timestamp": time.time()
        }
