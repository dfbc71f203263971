# app/transport/downloader_handlers.py
"""
Downloader route handlers.

Each handler validates query parameters, runs the route's pipeline and
shapes the response: inline bytes when the caller asked for immediate
delivery, otherwise the JSON envelope with a ``result_url``.

Parameters are read from ``request.query_params`` directly so missing
values produce the relay's own 400 envelope instead of FastAPI's 422.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request, Response

from app.config import settings
from app.core.relay.domain import ClientInfo, DownloadResult, MediaKind
from app.core.relay.errors import InvalidSourceURL, RelayError
from app.core.relay.pipeline import DownloadPipeline
from app.core.relay.video_id import require_video_id
from app.infra.logging_config import get_logger, LogContext
from app.transport.responses import failure, inline_media, parse_flag, result_url, success
from app.transport.security import get_client_ip, get_user_agent, sanitize_error_message
from app.transport.services import (
    RelayServices,
    TIKTOK_MP3_ROUTE,
    TIKTOK_MP4_ROUTE,
    YOUTUBE_ROUTE,
)

logger = get_logger(__name__)

TYPE_PARAM_ERROR = "Parameter 'type' is required and must be 'mp3' or 'mp4'"


@dataclass(frozen=True)
class DownloaderRoute:
    """Request shape of one downloader route."""
    path: str
    url_param: str
    flag_param: str
    flag_default: bool
    fixed_kind: Optional[MediaKind] = None      # audio-only routes take no 'type'
    validate_source: Optional[Callable[[str], object]] = None

    def streams_inline(self, kind: MediaKind, flag: bool) -> bool:
        if not flag:
            return False
        # Audio-only routes stream audio; mixed routes stream video only
        return self.fixed_kind is not None or kind is MediaKind.MP4


TIKTOK_MP4 = DownloaderRoute(
    path=TIKTOK_MP4_ROUTE,
    url_param="tiktokvid_url",
    flag_param="auto_show",
    flag_default=True,
)

TIKTOK_MP3 = DownloaderRoute(
    path=TIKTOK_MP3_ROUTE,
    url_param="tiktokvid_url",
    flag_param="instant-appearance",
    flag_default=False,
    fixed_kind=MediaKind.MP3,
)

YOUTUBE = DownloaderRoute(
    path=YOUTUBE_ROUTE,
    url_param="youtube_url",
    flag_param="auto_show",
    flag_default=True,
    validate_source=require_video_id,
)


def _envelope(route_services: RelayServices, pipeline: DownloadPipeline, result: DownloadResult) -> dict:
    record = result.record
    envelope = {
        "id": record.id,
        "source_url": record.source_url,
        "title": record.title,
        "author": record.author,
        "thumbnail": record.thumbnail_url,
        "type": record.media_type.value,
        "result_url": result_url(
            route_services.public_base_url, pipeline.profile.result_slug, record.id,
        ),
    }
    if record.media_type is MediaKind.MP4:
        envelope["video_url"] = pipeline.storage.get_public_url(
            pipeline.profile.bucket, record.media_path,
        )
    return envelope


async def handle_download(
    request: Request,
    route: DownloaderRoute,
    pipeline_of: Callable[[RelayServices], DownloadPipeline],
) -> Response:
    services: RelayServices = request.app.state.services
    pipeline = pipeline_of(services)
    params = request.query_params
    request_id = getattr(request.state, "request_id", None)

    source_url = params.get(route.url_param)
    if not source_url:
        return failure(f"Parameter '{route.url_param}' is required", 400)

    if route.fixed_kind is not None:
        kind = route.fixed_kind
    else:
        kind = MediaKind.parse(params.get("type"))
        if kind is None:
            return failure(TYPE_PARAM_ERROR, 400)

    if route.validate_source is not None:
        try:
            route.validate_source(source_url)
        except InvalidSourceURL as e:
            return failure(e.detail, 400)

    deliver_inline = parse_flag(params.get(route.flag_param), route.flag_default)
    client = ClientInfo(ip=get_client_ip(request), user_agent=get_user_agent(request))
    log = LogContext(logger, request_id=request_id, route=route.path)

    services.metrics.increment("total_hits")

    try:
        result = await pipeline.run(source_url, kind, client, request_id=request_id)
    except Exception as exc:
        status_code = exc.status_code if isinstance(exc, RelayError) else 500
        if isinstance(exc, RelayError):
            log.warning("Download failed: %s", exc.detail)
        else:
            log.error("Download failed unexpectedly: %s", exc, exc_info=True)
        services.metrics.increment("total_errors")
        services.metrics.record_request(route.path, status_code, client.ip, client.user_agent)
        return failure(sanitize_error_message(exc, settings.is_production), status_code)

    services.metrics.increment("total_success")
    services.metrics.record_request(route.path, 200, client.ip, client.user_agent)

    if route.streams_inline(kind, deliver_inline):
        return inline_media(result.data, result.content_type, result.filename)

    return success(_envelope(services, pipeline, result))


async def tiktok_mp4_handler(request: Request) -> Response:
    return await handle_download(request, TIKTOK_MP4, lambda s: s.tiktok_mp4)


async def tiktok_mp3_handler(request: Request) -> Response:
    return await handle_download(request, TIKTOK_MP3, lambda s: s.tiktok_mp3)


async def youtube_handler(request: Request) -> Response:
    return await handle_download(request, YOUTUBE, lambda s: s.youtube)
