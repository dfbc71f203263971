# app/infra/providers/flux.py
"""
AI image generation provider (flux endpoint).

The endpoint either streams the image directly or answers with JSON that
points at it under one of ``data`` / ``result`` / ``url`` / ``image``.
"""
from __future__ import annotations

import asyncio
import random

import aiohttp

from app.core.relay.errors import ImageGenerationError
from app.infra.http_client import get_provider_session
from app.infra.logging_config import get_logger

logger = get_logger(__name__)

BOT_USER_AGENTS = [
    "Googlebot/2.1 (+http://www.google.com/bot.html)",
    "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)",
    "Mozilla/5.0 (compatible; Bingbot/2.0; +http://www.bing.com/bingbot.htm)",
    "Mozilla/5.0 (compatible; YandexBot/3.0; +http://yandex.com/bots)",
]

_JSON_IMAGE_KEYS = ("data", "result", "url", "image")


def pick_image_url(payload: dict) -> str | None:
    for key in _JSON_IMAGE_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None


class FluxImageGenerator:
    def __init__(self, api_url: str):
        self._api_url = api_url

    @staticmethod
    def _bot_user_agent() -> str:
        return random.choice(BOT_USER_AGENTS)

    async def generate(self, prompt: str) -> bytes:
        session = get_provider_session()
        try:
            async with session.get(
                self._api_url,
                params={"prompt": prompt},
                headers={"User-Agent": self._bot_user_agent(), "Accept": "*/*"},
            ) as resp:
                if resp.status != 200:
                    raise ImageGenerationError("Failed to generate image from Flux API")

                content_type = resp.headers.get("Content-Type", "")

                if "application/json" in content_type:
                    payload = await resp.json(content_type=None)
                    image_url = pick_image_url(payload) if isinstance(payload, dict) else None
                    if not image_url:
                        raise ImageGenerationError("Invalid response from Flux API")
                    return await self._download_image(session, image_url)

                if "image" not in content_type:
                    raise ImageGenerationError("Flux API did not return an image")

                data = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ImageGenerationError(f"Image provider request failed: {e}") from e

        logger.info("Image generated: %d bytes", len(data))
        return data

    async def _download_image(self, session: aiohttp.ClientSession, image_url: str) -> bytes:
        async with session.get(
            image_url,
            headers={"User-Agent": self._bot_user_agent(), "Accept": "image/*"},
        ) as resp:
            if resp.status != 200:
                raise ImageGenerationError("Failed to download generated image")
            data = await resp.read()

        logger.info("Generated image downloaded: %d bytes", len(data))
        return data
