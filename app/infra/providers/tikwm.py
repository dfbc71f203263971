# app/infra/providers/tikwm.py
"""
TikTok extractor API (tikwm).

    GET {api}?url=<source>&hd=1  →  {"code": 0, "data": {...}}

One round trip returns both media URLs and descriptive metadata, which is
why it sits first in the TikTok chains.
"""
from __future__ import annotations

import asyncio

import aiohttp

from app.core.relay.domain import MediaKind, MediaMetadata, ResolvedMedia
from app.core.relay.errors import ProviderError
from app.infra.http_client import get_provider_session
from app.infra.logging_config import get_logger

logger = get_logger(__name__)


def _text(value) -> str | None:
    return value if isinstance(value, str) and value else None


def _object(value) -> dict:
    return value if isinstance(value, dict) else {}


def parse_tikwm_payload(payload: dict, provider: str = "tikwm") -> ResolvedMedia:
    """
    Map a tikwm response body to ResolvedMedia.

    Raises ProviderError when the envelope itself signals failure.
    A missing or non-string field is left as None, and nested objects of
    the wrong type are treated as empty; the chain decides whether a
    missing media URL matters for the requested kind.
    """
    if not isinstance(payload, dict) or payload.get("code") != 0:
        code = payload.get("code") if isinstance(payload, dict) else None
        raise ProviderError(provider, f"unexpected response code {code!r}")

    data = payload.get("data")
    if not isinstance(data, dict):
        raise ProviderError(provider, "response has no data object")

    music_info = _object(data.get("music_info"))
    author = _object(data.get("author"))

    return ResolvedMedia(
        media_url=_text(data.get("hdplay")) or _text(data.get("play")),
        music_url=_text(data.get("music")) or _text(music_info.get("play")),
        metadata=MediaMetadata(
            title=_text(data.get("title")),
            author=_text(author.get("nickname")),
            thumbnail_url=_text(data.get("cover")) or _text(data.get("origin_cover")),
        ),
        provider=provider,
    )


class TikwmProvider:
    """Primary TikTok provider. ``hd`` asks for the HD play URL."""

    name = "tikwm"

    def __init__(self, api_url: str, hd: bool = True):
        self._api_url = api_url
        self._hd = hd

    async def resolve(self, source_url: str, kind: MediaKind, user_agent: str) -> ResolvedMedia:
        params = {"url": source_url}
        if self._hd:
            params["hd"] = "1"

        session = get_provider_session()
        try:
            async with session.get(
                self._api_url,
                params=params,
                headers={"User-Agent": user_agent, "Accept": "application/json"},
            ) as resp:
                if resp.status != 200:
                    raise ProviderError(self.name, f"HTTP {resp.status}")
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ProviderError(self.name, f"request failed: {e}") from e

        resolved = parse_tikwm_payload(payload, self.name)
        logger.debug(
            "tikwm answered: video=%s music=%s",
            bool(resolved.media_url), bool(resolved.music_url),
        )
        return resolved
