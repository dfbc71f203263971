# app/transport/image_handlers.py
"""
AI image generation route.

Returns the watermarked PNG directly with ``X-Result-URL`` pointing at
the image's result page. Failures use the JSON error envelope, like the
downloader routes.
"""
from __future__ import annotations

from fastapi import Request, Response

from app.config import settings
from app.core.relay.errors import RelayError
from app.infra.logging_config import get_logger, LogContext
from app.transport.responses import failure
from app.transport.security import get_client_ip, get_user_agent, sanitize_error_message
from app.transport.services import IMAGEN_MODEL, IMAGEN_ROUTE, RelayServices

logger = get_logger(__name__)


async def imagen_handler(request: Request) -> Response:
    services: RelayServices = request.app.state.services
    request_id = getattr(request.state, "request_id", None)

    prompt = request.query_params.get("prompt")
    if not prompt or not prompt.strip():
        return failure("Parameter 'prompt' is required", 400)

    ip = get_client_ip(request)
    user_agent = get_user_agent(request)
    log = LogContext(logger, request_id=request_id, route=IMAGEN_ROUTE)

    services.metrics.increment("total_requests")

    try:
        image = await services.image.run(prompt, request_id=request_id)
    except Exception as exc:
        status_code = exc.status_code if isinstance(exc, RelayError) else 500
        if isinstance(exc, RelayError):
            log.warning("Image generation failed: %s", exc.detail)
        else:
            log.error("Image generation failed unexpectedly: %s", exc, exc_info=True)
        services.metrics.increment("total_errors")
        services.metrics.record_request(IMAGEN_ROUTE, status_code, ip, user_agent)
        return failure(sanitize_error_message(exc, settings.is_production), status_code)

    services.metrics.increment("total_success")
    services.metrics.record_request(IMAGEN_ROUTE, 200, ip, user_agent)

    return Response(
        content=image.data,
        status_code=200,
        media_type=image.content_type,
        headers={"X-Result-URL": f"/image/{IMAGEN_MODEL}/result/{image.record.id}"},
    )
