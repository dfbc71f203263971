# app/transport/services.py
"""
Wiring of the relay pipelines.

``build_relay_services`` is called once from the application lifespan and
its result stored on ``app.state.services``. Tests build a
``RelayServices`` directly from fakes.
"""
from __future__ import annotations

from dataclasses import dataclass

from app.config import Settings
from app.core.relay.image_pipeline import ImagePipeline
from app.core.relay.lookup import DownloadLookup, GeneratedImageLookup
from app.core.relay.pipeline import DownloadPipeline, RouteProfile
from app.core.relay.ports import MetricsSink, ObjectStorage
from app.infra.media_download import HttpMediaDownloader
from app.infra.metrics import CollectorMetricsSink
from app.infra.pg_download_repo_async import AsyncPostgresDownloadRepository
from app.infra.pg_image_repo_async import AsyncPostgresImageRepository
from app.infra.providers import (
    FluxImageGenerator,
    TikTokMetadataEnricher,
    TikwmProvider,
    YouTubeMetadataEnricher,
    cobalt_mirrors,
)
from app.infra.watermark import PillowWatermarker

TIKTOK_MP4_ROUTE = "/api/downloader/tiktokmp4downloader"
TIKTOK_MP3_ROUTE = "/api/downloader/tiktokvid2mp3"
YOUTUBE_ROUTE = "/api/downloader/yt"
IMAGEN_ROUTE = "/api/image-generator/imagen-3.5-pro"
IMAGEN_MODEL = "imagen-3.5-pro"


@dataclass
class RelayServices:
    tiktok_mp4: DownloadPipeline
    tiktok_mp3: DownloadPipeline
    youtube: DownloadPipeline
    image: ImagePipeline
    tiktok_mp4_lookup: DownloadLookup
    tiktok_mp3_lookup: DownloadLookup
    youtube_lookup: DownloadLookup
    image_lookup: GeneratedImageLookup
    metrics: MetricsSink
    public_base_url: str
    storage: ObjectStorage | None = None


def build_relay_services(settings: Settings, storage: ObjectStorage) -> RelayServices:
    downloader = HttpMediaDownloader()
    mirrors = settings.cobalt_instance_list

    tiktok_enricher = TikTokMetadataEnricher(settings.tiktok_oembed_url)
    youtube_enricher = YouTubeMetadataEnricher(settings.youtube_oembed_url)

    tiktok_repo = AsyncPostgresDownloadRepository(settings.tiktok_table)
    tiktok_mp3_repo = AsyncPostgresDownloadRepository(settings.tiktok_mp3_table)
    youtube_repo = AsyncPostgresDownloadRepository(settings.youtube_table)
    image_repo = AsyncPostgresImageRepository(settings.ai_images_table)

    tiktok_mp4 = DownloadPipeline(
        profile=RouteProfile(
            route=TIKTOK_MP4_ROUTE,
            platform="TikTok",
            bucket=settings.tiktok_bucket,
            result_slug="mp4tiktok",
            filename_prefix="tiktok",
            mirror_thumbnail=True,
        ),
        providers=[TikwmProvider(settings.tikwm_api_url, hd=True), *cobalt_mirrors(mirrors)],
        downloader=downloader,
        storage=storage,
        repository=tiktok_repo,
        enricher=tiktok_enricher,
        placeholder=tiktok_enricher.placeholder,
    )

    tiktok_mp3 = DownloadPipeline(
        profile=RouteProfile(
            route=TIKTOK_MP3_ROUTE,
            platform="TikTok",
            bucket=settings.tiktok_mp3_bucket,
            result_slug="tiktokvid2mp3",
            filename_prefix="tiktok",
        ),
        providers=[TikwmProvider(settings.tikwm_api_url, hd=False), *cobalt_mirrors(mirrors)],
        downloader=downloader,
        storage=storage,
        repository=tiktok_mp3_repo,
        enricher=tiktok_enricher,
        placeholder=tiktok_enricher.placeholder,
    )

    youtube = DownloadPipeline(
        profile=RouteProfile(
            route=YOUTUBE_ROUTE,
            platform="YouTube",
            bucket=settings.youtube_bucket,
            result_slug="ytdownloader",
            filename_prefix="youtube",
        ),
        providers=cobalt_mirrors(mirrors, video_audio_format="best"),
        downloader=downloader,
        storage=storage,
        repository=youtube_repo,
        enricher=youtube_enricher,
        placeholder=youtube_enricher.placeholder,
    )

    image = ImagePipeline(
        route=IMAGEN_ROUTE,
        generator=FluxImageGenerator(settings.flux_api_url),
        watermarker=PillowWatermarker(
            settings.watermark_url,
            scale=settings.watermark_scale,
            opacity=settings.watermark_opacity,
        ),
        storage=storage,
        repository=image_repo,
        bucket=settings.ai_images_bucket,
        path_prefix=IMAGEN_MODEL,
    )

    return RelayServices(
        tiktok_mp4=tiktok_mp4,
        tiktok_mp3=tiktok_mp3,
        youtube=youtube,
        image=image,
        tiktok_mp4_lookup=DownloadLookup(tiktok_repo, storage, settings.tiktok_bucket),
        tiktok_mp3_lookup=DownloadLookup(tiktok_mp3_repo, storage, settings.tiktok_mp3_bucket),
        youtube_lookup=DownloadLookup(youtube_repo, storage, settings.youtube_bucket),
        image_lookup=GeneratedImageLookup(image_repo, storage, settings.ai_images_bucket),
        metrics=CollectorMetricsSink(),
        public_base_url=settings.public_base_url,
        storage=storage,
    )
