# app/infra/media_download.py
"""
Download resolved media into memory.

One attempt per leg: the provider chain has already picked the URL, and
a failed download fails the request. Redirects are followed by aiohttp
(CDN links from the providers routinely bounce once or twice).
"""
from __future__ import annotations

import asyncio
from urllib.parse import urlparse

import aiohttp

from app.config import settings
from app.core.relay.errors import MediaDownloadError
from app.infra.http_client import get_fetcher_session
from app.infra.logging_config import get_logger, mask_url
from app.infra.metrics import inc_counter, observe_histogram

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024


class HttpMediaDownloader:
    """
    Fetch a media URL with the caller's User-Agent.

    Raises MediaDownloadError naming the leg ("video", "music",
    "thumbnail") on a bad scheme, non-200 status, size overrun or a
    short read against Content-Length. The size cap is enforced while the
    body streams in, so a response without Content-Length is cut off at
    the limit instead of being buffered whole.
    """

    def __init__(self, max_size_bytes: int | None = None):
        self.max_size_bytes = max_size_bytes or settings.media_max_size_mb * 1024 * 1024

    async def download(self, url: str, user_agent: str, leg: str) -> bytes:
        if not url:
            raise MediaDownloadError(leg, "no URL")

        parsed = urlparse(url)
        if parsed.scheme not in ("https", "http"):
            raise MediaDownloadError(leg, f"invalid URL scheme: {parsed.scheme!r}")

        logger.info("Downloading %s from %s", leg, parsed.netloc)
        session = get_fetcher_session()

        try:
            async with session.get(url, headers={"User-Agent": user_agent}) as response:
                if response.status != 200:
                    raise MediaDownloadError(leg, f"HTTP {response.status}")

                content_length_header = response.headers.get("Content-Length")
                expected_size = int(content_length_header) if content_length_header else None

                if expected_size and expected_size > self.max_size_bytes:
                    raise MediaDownloadError(
                        leg,
                        f"size {expected_size / 1024 / 1024:.1f}MB exceeds limit",
                    )

                chunks = []
                received = 0
                async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                    received += len(chunk)
                    if received > self.max_size_bytes:
                        raise MediaDownloadError(leg, "size exceeds limit")
                    chunks.append(chunk)
                data = b"".join(chunks)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            inc_counter("media_download_failed", leg=leg)
            logger.warning("Download of %s failed: %s (%s)", leg, e, mask_url(url))
            raise MediaDownloadError(leg, str(e) or type(e).__name__) from e

        # Truncated bodies would be stored as corrupt media
        if expected_size and len(data) < expected_size:
            raise MediaDownloadError(
                leg,
                f"incomplete download: received {len(data)} of {expected_size} bytes",
            )

        observe_histogram("media_download_bytes", len(data), leg=leg)
        logger.info("Download of %s complete: %.0fKB", leg, len(data) / 1024)
        return data
