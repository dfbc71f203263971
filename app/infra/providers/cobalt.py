# app/infra/providers/cobalt.py
"""
Generic media-extraction relay (cobalt API).

    POST {instance}  {"url", "videoQuality", "audioFormat", "downloadMode", "filenameStyle"}
        → {"status": "tunnel" | "redirect" | "stream" | "error", "url": ...}

Public instances come and go, so several mirrors are configured and each
mirror is a separate provider in the chain.
"""
from __future__ import annotations

import asyncio
from urllib.parse import urlparse

import aiohttp

from app.core.relay.domain import MediaKind, ResolvedMedia
from app.core.relay.errors import ProviderError
from app.infra.http_client import get_provider_session


class CobaltProvider:
    """
    One cobalt mirror.

    ``video_audio_format`` is the audio track format requested alongside
    video ("mp3" for TikTok, "best" for YouTube); audio-only requests
    always ask for mp3.
    """

    def __init__(
        self,
        instance: str,
        video_audio_format: str = "mp3",
        video_quality: str = "1080",
    ):
        self._instance = instance
        self._video_audio_format = video_audio_format
        self._video_quality = video_quality
        self.name = f"cobalt:{urlparse(instance).netloc or instance}"

    def build_request(self, source_url: str, kind: MediaKind) -> dict:
        return {
            "url": source_url,
            "videoQuality": self._video_quality,
            "audioFormat": "mp3" if kind.is_audio else self._video_audio_format,
            "downloadMode": "audio" if kind.is_audio else "auto",
            "filenameStyle": "basic",
        }

    async def resolve(self, source_url: str, kind: MediaKind, user_agent: str) -> ResolvedMedia:
        session = get_provider_session()
        try:
            async with session.post(
                self._instance,
                json=self.build_request(source_url, kind),
                headers={"Accept": "application/json", "Content-Type": "application/json"},
            ) as resp:
                if resp.status != 200:
                    raise ProviderError(self.name, f"HTTP {resp.status}")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ProviderError(self.name, f"request failed: {e}") from e

        if not isinstance(data, dict):
            raise ProviderError(self.name, "malformed response")

        if data.get("status") == "error":
            error = data.get("error") or {}
            code = error.get("code") if isinstance(error, dict) else error
            raise ProviderError(self.name, f"relay error {code!r}")

        url = data.get("url")
        if not isinstance(url, str) or not url:
            raise ProviderError(self.name, f"no url in response (status={data.get('status')!r})")

        if kind.is_audio:
            return ResolvedMedia(music_url=url, provider=self.name)
        return ResolvedMedia(media_url=url, provider=self.name)


def cobalt_mirrors(instances: list[str], **kwargs) -> list[CobaltProvider]:
    """One provider per configured mirror, in priority order."""
    return [CobaltProvider(instance, **kwargs) for instance in instances]
