# app/transport/http_app.py
"""
HTTP application for the media fetch-and-relay API.

Layers:
1. Public: downloader, image generation and result lookup routes
2. Monitoring: /health/detailed and /metrics (internal network or METRICS_TOKEN)
3. No information leakage in production (sanitized errors, no docs)

Route functions stay thin: they delegate to handlers in
``app.transport.*_handlers`` which read services from ``app.state``.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request, Depends
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.infra.db_async import close_pool, init_pool
from app.infra.health_checks_async import (
    AsyncDatabaseHealthCheck,
    AsyncHealthChecker,
    AsyncStorageHealthCheck,
)
from app.infra.http_client import close_all_sessions
from app.infra.logging_config import setup_logging, get_logger
from app.infra.metrics import get_metrics_collector
from app.infra.s3_storage import get_s3_storage, is_s3_available
from app.transport.downloader_handlers import (
    tiktok_mp3_handler,
    tiktok_mp4_handler,
    youtube_handler,
)
from app.transport.image_handlers import imagen_handler
from app.transport.middleware import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    ErrorHandlingMiddleware,
    SecurityHeadersMiddleware,
)
from app.transport.result_handlers import (
    image_result_handler,
    tiktok_mp3_result_handler,
    tiktok_mp4_result_handler,
    youtube_result_handler,
)
from app.transport.security import require_metrics_auth, sanitize_error_message
from app.transport.services import build_relay_services

setup_logging(
    level=settings.log_level,
    use_json=settings.is_production
)

logger = get_logger(__name__)


# ============================================================================
# LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Application lifecycle: startup and shutdown"""

    logger.info(f"Starting application: env={settings.app_env}")

    if settings.is_production:
        missing = settings.validate_required_for_production()
        if missing:
            logger.critical(f"Missing required production settings: {missing}")
            raise RuntimeError(f"Missing production config: {missing}")

        if settings.log_level.upper() == "DEBUG":
            logger.critical("LOG_LEVEL=DEBUG is not allowed in production")
            raise RuntimeError("LOG_LEVEL=DEBUG in production")

    if not is_s3_available():
        logger.critical("S3 storage is not configured. Set S3_ENDPOINT_URL, S3_ACCESS_KEY, S3_SECRET_KEY.")
        raise RuntimeError("S3 storage not configured")

    # Schema is managed separately: python -m app.infra.migrate
    await init_pool()
    logger.info("Database pool initialized")

    storage = get_s3_storage()
    fastapi_app.state.services = build_relay_services(settings, storage)
    fastapi_app.state.health_checker = AsyncHealthChecker([
        AsyncDatabaseHealthCheck(),
        AsyncStorageHealthCheck(storage),
    ])

    logger.info(
        f"Relay providers: tikwm={settings.tikwm_api_url}, "
        f"cobalt_mirrors={len(settings.cobalt_instance_list)}"
    )
    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    await close_all_sessions()
    await close_pool()
    logger.info("Application shutdown complete")


# ============================================================================
# CREATE APP
# ============================================================================

app = FastAPI(
    title="Media Relay API",
    description="Fetch TikTok/YouTube media through provider fallback chains and generate watermarked AI images",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    openapi_url=None if settings.is_production else "/openapi.json",
)

# Public GET API consumed from browsers and bots
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["*"],
    expose_headers=["X-Result-URL", "X-Request-ID", "Content-Disposition"],
)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(RequestLoggingMiddleware, enabled=settings.enable_request_logging)
app.add_middleware(RequestIDMiddleware)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if exc.status_code >= 500:
        logger.error(f"Server error: {exc.detail}", extra={"status_code": exc.status_code})

    return JSONResponse(
        status_code=exc.status_code,
        content={"status": False, "error": exc.detail},
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc.__class__.__name__}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={"status": False, "error": sanitize_error_message(exc, settings.is_production)},
    )


# ============================================================================
# DOWNLOADER ENDPOINTS
# ============================================================================

@app.get("/api/downloader/tiktokmp4downloader")
async def tiktok_mp4_downloader(request: Request):
    """TikTok video or audio. Query: tiktokvid_url, type=mp3|mp4, auto_show"""
    return await tiktok_mp4_handler(request)


@app.get("/api/downloader/tiktokvid2mp3")
async def tiktok_to_mp3(request: Request):
    """TikTok audio only. Query: tiktokvid_url, instant-appearance"""
    return await tiktok_mp3_handler(request)


@app.get("/api/downloader/yt")
async def youtube_downloader(request: Request):
    """YouTube video or audio. Query: youtube_url, type=mp3|mp4, auto_show"""
    return await youtube_handler(request)


@app.get("/api/image-generator/imagen-3.5-pro")
async def imagen_generator(request: Request):
    """Watermarked AI image as PNG. Query: prompt"""
    return await imagen_handler(request)


# ============================================================================
# RESULT LOOKUP ENDPOINTS
# ============================================================================

@app.get("/api/result/mp4tiktok/{record_id}")
async def tiktok_mp4_result(request: Request, record_id: str):
    return await tiktok_mp4_result_handler(request, record_id)


@app.get("/api/result/tiktokvid2mp3/{record_id}")
async def tiktok_mp3_result(request: Request, record_id: str):
    return await tiktok_mp3_result_handler(request, record_id)


@app.get("/api/result/ytdownloader/{record_id}")
async def youtube_result(request: Request, record_id: str):
    return await youtube_result_handler(request, record_id)


@app.get("/api/result/imagen-3.5-pro/{record_id}")
@app.get("/image/imagen-3.5-pro/result/{record_id}")
async def imagen_result(request: Request, record_id: str):
    return await image_result_handler(request, record_id)


# ============================================================================
# HEALTH & MONITORING
# ============================================================================

@app.get("/health")
def health():
    """Basic liveness check - PUBLIC. Returns minimal information."""
    return {"status": "healthy"}


@app.get("/ready")
async def readiness(request: Request):
    """Readiness check - PUBLIC. Critical checks only, minimal output."""
    result = await request.app.state.health_checker.run_checks(include_non_critical=False)

    if result["status"] == "unhealthy":
        return JSONResponse(status_code=503, content={"status": "unhealthy"})

    return {"status": "healthy"}


@app.get("/health/detailed", dependencies=[Depends(require_metrics_auth)])
async def detailed_health(request: Request):
    """Database and storage checks - INTERNAL/METRICS only."""
    return await request.app.state.health_checker.run_checks(include_non_critical=True)


@app.get("/metrics", dependencies=[Depends(require_metrics_auth)])
def metrics():
    """Counters and histograms - INTERNAL/METRICS only. 404 when ENABLE_METRICS=false."""
    if not settings.enable_metrics:
        raise HTTPException(status_code=404, detail="Not found")
    return get_metrics_collector().get_metrics()


# ============================================================================
# CATCH-ALL (Return 404 for unknown routes)
# ============================================================================

@app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
async def catch_all(path: str):
    logger.warning(f"404 - Unknown route accessed: {path}")
    raise HTTPException(status_code=404, detail="Not found")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.transport.http_app:app",
        host="0.0.0.0",
        port=8099,
        reload=not settings.is_production,
        log_level=settings.log_level.lower(),
        access_log=not settings.is_production,
        server_header=False,
        date_header=False,
    )
