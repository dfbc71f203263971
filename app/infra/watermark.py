# app/infra/watermark.py
"""
Watermark generated images.

The watermark is fetched from a fixed URL, scaled to a fraction of its
own width, made semi-transparent and composited into the bottom-right
corner. Output is always PNG.
"""
from __future__ import annotations

import asyncio
import io

import aiohttp
from PIL import Image, UnidentifiedImageError

from app.core.relay.errors import WatermarkError
from app.infra.http_client import get_default_session
from app.infra.logging_config import get_logger

logger = get_logger(__name__)

# Decompression bomb protection for provider-generated images
Image.MAX_IMAGE_PIXELS = 50_000_000


def composite_watermark(
    image_bytes: bytes,
    watermark_bytes: bytes,
    scale: float = 0.30,
    opacity: int = 107,
) -> bytes:
    """
    Composite ``watermark_bytes`` onto ``image_bytes``; return PNG bytes.

    Blocking (Pillow), run it in a worker thread from async code.
    """
    opacity = max(0, min(255, opacity))

    try:
        base = Image.open(io.BytesIO(image_bytes)).convert("RGBA")
        mark = Image.open(io.BytesIO(watermark_bytes)).convert("RGBA")
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise WatermarkError(f"Failed to decode image: {e}") from e

    width = max(1, int(mark.width * scale))
    height = max(1, int(mark.height * width / mark.width))
    mark = mark.resize((width, height), Image.Resampling.LANCZOS)

    # Never let the watermark overflow the base image
    if mark.width > base.width or mark.height > base.height:
        mark.thumbnail((base.width, base.height), Image.Resampling.LANCZOS)

    alpha = mark.getchannel("A").point(lambda a: a * opacity // 255)
    mark.putalpha(alpha)

    position = (base.width - mark.width, base.height - mark.height)
    base.alpha_composite(mark, dest=position)

    out = io.BytesIO()
    base.save(out, format="PNG")
    return out.getvalue()


class PillowWatermarker:
    def __init__(self, watermark_url: str, scale: float = 0.30, opacity: int = 107):
        self.watermark_url = watermark_url
        self.scale = scale
        self.opacity = opacity

    async def _fetch_watermark(self) -> bytes:
        session = get_default_session()
        try:
            async with session.get(self.watermark_url) as resp:
                if resp.status != 200:
                    raise WatermarkError(f"Failed to fetch watermark: HTTP {resp.status}")
                return await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise WatermarkError(f"Failed to fetch watermark: {e}") from e

    async def apply(self, image: bytes) -> bytes:
        watermark = await self._fetch_watermark()
        result = await asyncio.to_thread(
            composite_watermark, image, watermark, self.scale, self.opacity,
        )
        logger.debug("Watermark applied: %d -> %d bytes", len(image), len(result))
        return result
