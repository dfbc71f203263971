# app/infra/providers/oembed.py
"""
Metadata enrichment via public oEmbed endpoints.

Enrichers never raise: on any failure they return the platform's
placeholder triple so the download can proceed with degraded metadata.
"""
from __future__ import annotations

import asyncio
from typing import Optional

import aiohttp

from app.core.relay.domain import MediaMetadata
from app.core.relay.video_id import extract_video_id, youtube_thumbnail_url
from app.infra.http_client import get_provider_session
from app.infra.logging_config import get_logger

logger = get_logger(__name__)


class OEmbedEnricher:
    """Base oEmbed enricher; subclasses adapt URL shape and placeholders."""

    platform = "Video"

    def __init__(self, endpoint: str):
        self._endpoint = endpoint

    def target_url(self, source_url: str) -> Optional[str]:
        return source_url

    def placeholder(self, source_url: str) -> MediaMetadata:
        return MediaMetadata(title=f"{self.platform} Video", author="Unknown")

    def thumbnail_for(self, source_url: str, payload: dict) -> Optional[str]:
        return payload.get("thumbnail_url") or None

    async def __call__(self, source_url: str) -> MediaMetadata:
        fallback = self.placeholder(source_url)
        target = self.target_url(source_url)
        if not target:
            return fallback

        session = get_provider_session()
        try:
            async with session.get(
                self._endpoint,
                params={"url": target, "format": "json"},
            ) as resp:
                if resp.status != 200:
                    logger.warning("%s oEmbed returned HTTP %d", self.platform, resp.status)
                    return fallback
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("Failed to get %s video info: %s", self.platform, e)
            return fallback

        if not isinstance(payload, dict):
            return fallback

        return MediaMetadata(
            title=payload.get("title") or None,
            author=payload.get("author_name") or None,
            thumbnail_url=self.thumbnail_for(source_url, payload),
        ).merged_over(fallback)


class YouTubeMetadataEnricher(OEmbedEnricher):
    """Thumbnail is always derived from the video id, never from oEmbed."""

    platform = "YouTube"

    def target_url(self, source_url: str) -> Optional[str]:
        video_id = extract_video_id(source_url)
        if video_id is None:
            return None
        return f"https://www.youtube.com/watch?v={video_id}"

    def placeholder(self, source_url: str) -> MediaMetadata:
        video_id = extract_video_id(source_url)
        return MediaMetadata(
            title="YouTube Video",
            author="Unknown",
            thumbnail_url=youtube_thumbnail_url(video_id) if video_id else None,
        )

    def thumbnail_for(self, source_url: str, payload: dict) -> Optional[str]:
        return self.placeholder(source_url).thumbnail_url


class TikTokMetadataEnricher(OEmbedEnricher):
    platform = "TikTok"
