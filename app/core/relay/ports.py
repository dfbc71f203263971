# app/core/relay/ports.py
from __future__ import annotations
from typing import Awaitable, Callable, Optional, Protocol

from app.core.relay.domain import (
    DownloadRecord,
    GeneratedImageRecord,
    MediaKind,
    MediaMetadata,
    ResolvedMedia,
)


# Metadata enrichment never raises; it degrades to placeholders instead.
MetadataEnricher = Callable[[str], Awaitable[MediaMetadata]]

IdFactory = Callable[[], str]


class MediaProvider(Protocol):
    """
    One upstream service (or one mirror of it) in a fallback chain.

    ``resolve`` returns a ResolvedMedia or raises ProviderError; the chain
    treats any ProviderError as "try the next one".
    """
    name: str

    async def resolve(self, source_url: str, kind: MediaKind, user_agent: str) -> ResolvedMedia: ...


class MetricsSink(Protocol):
    def increment(self, name: str) -> None: ...
    def record_request(self, route: str, status: int, ip: str, user_agent: str) -> None: ...


class ObjectStorage(Protocol):
    async def put_object(self, bucket: str, key: str, data: bytes, content_type: str) -> None: ...
    def get_public_url(self, bucket: str, key: str) -> str: ...


class MediaDownloader(Protocol):
    async def download(self, url: str, user_agent: str, leg: str) -> bytes: ...


class DownloadRepository(Protocol):
    async def insert(self, record: DownloadRecord) -> None: ...
    async def get(self, record_id: str) -> Optional[DownloadRecord]: ...


class GeneratedImageRepository(Protocol):
    async def insert(self, record: GeneratedImageRecord) -> None: ...
    async def get(self, record_id: str) -> Optional[GeneratedImageRecord]: ...


class ImageGenerator(Protocol):
    async def generate(self, prompt: str) -> bytes: ...


class Watermarker(Protocol):
    async def apply(self, image: bytes) -> bytes: ...
