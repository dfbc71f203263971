# app/transport/result_handlers.py
"""Read-only result lookups by id."""
from __future__ import annotations

from fastapi import Request, Response

from app.core.relay.errors import NotFoundError
from app.infra.logging_config import get_logger, LogContext
from app.transport.responses import failure, success

logger = get_logger(__name__)


async def handle_result(request: Request, lookup, record_id: str) -> Response:
    """
    Describe one stored result.

    404 for an unknown id or a row without a stored file; any other
    failure is a generic 500 (details stay in the server log).
    """
    log = LogContext(
        logger,
        request_id=getattr(request.state, "request_id", None),
        route=request.url.path,
        record_id=record_id,
    )
    try:
        result = await lookup.describe(record_id)
    except NotFoundError as e:
        return failure(e.detail, 404)
    except Exception as exc:
        log.error("Result lookup failed: %s", exc, exc_info=True)
        return failure("Internal server error", 500)

    return success(result)


async def tiktok_mp4_result_handler(request: Request, record_id: str) -> Response:
    return await handle_result(request, request.app.state.services.tiktok_mp4_lookup, record_id)


async def tiktok_mp3_result_handler(request: Request, record_id: str) -> Response:
    return await handle_result(request, request.app.state.services.tiktok_mp3_lookup, record_id)


async def youtube_result_handler(request: Request, record_id: str) -> Response:
    return await handle_result(request, request.app.state.services.youtube_lookup, record_id)


async def image_result_handler(request: Request, record_id: str) -> Response:
    return await handle_result(request, request.app.state.services.image_lookup, record_id)
