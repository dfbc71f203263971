# app/core/relay/pipeline.py
"""
Download pipeline shared by every downloader route.

Per request: resolve (fallback chain, with metadata enrichment running
concurrently) → download into memory → upload under a fresh id →
optionally mirror the thumbnail → insert the metadata row.

Failure policy:
- chain exhausted, download failure, primary upload failure → raise
- thumbnail mirror failure → log and continue
- metadata insert failure → log and continue (the object is already
  stored and cannot be taken back; the orphan is accepted)
"""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from app.core.relay.domain import (
    ClientInfo,
    DownloadRecord,
    DownloadResult,
    MediaKind,
    MediaMetadata,
)
from app.core.relay.errors import StorageError
from app.core.relay.fallback import resolve_with_fallback
from app.core.relay.ports import (
    DownloadRepository,
    IdFactory,
    MediaDownloader,
    MediaProvider,
    MetadataEnricher,
    ObjectStorage,
)
from app.infra.logging_config import get_logger, LogContext
from app.infra.metrics import Timer, inc_counter

logger = get_logger(__name__)


def new_download_id() -> str:
    return str(uuid.uuid4())


@dataclass
class RouteProfile:
    """Everything that differs between downloader routes."""
    route: str                 # e.g. "/api/downloader/yt"
    platform: str              # "TikTok" / "YouTube", used for placeholders
    bucket: str
    result_slug: str           # path segment of result_url
    filename_prefix: str       # inline filename: {prefix}_{id}.{ext}
    mirror_thumbnail: bool = False

    def placeholder_metadata(self) -> MediaMetadata:
        return MediaMetadata(title=f"{self.platform} Video", author="Unknown")


class DownloadPipeline:
    """
    Application service for one downloader route.

    Collaborators are injected so tests can assert storage keys and rows
    without a live bucket or database.
    """

    def __init__(
        self,
        *,
        profile: RouteProfile,
        providers: Sequence[MediaProvider],
        downloader: MediaDownloader,
        storage: ObjectStorage,
        repository: DownloadRepository,
        enricher: Optional[MetadataEnricher] = None,
        placeholder: Optional[Callable[[str], MediaMetadata]] = None,
        id_factory: IdFactory = new_download_id,
    ) -> None:
        self.profile = profile
        self.providers = list(providers)
        self.downloader = downloader
        self.storage = storage
        self.repository = repository
        self.enricher = enricher
        self.placeholder = placeholder
        self.id_factory = id_factory

    async def run(
        self,
        source_url: str,
        kind: MediaKind,
        client: ClientInfo,
        request_id: str | None = None,
    ) -> DownloadResult:
        log = LogContext(logger, request_id=request_id, route=self.profile.route)

        with Timer("provider_resolution_seconds", route=self.profile.route):
            enrichment = (
                asyncio.create_task(self.enricher(source_url)) if self.enricher is not None else None
            )
            try:
                resolved = await resolve_with_fallback(
                    self.providers, source_url, kind, client.user_agent,
                )
            except BaseException:
                if enrichment is not None:
                    enrichment.cancel()
                raise
            enriched = await enrichment if enrichment is not None else None

        metadata = self._merge_metadata(source_url, resolved.metadata, enriched)
        media_url = resolved.url_for(kind)

        data = await self.downloader.download(media_url, client.user_agent, kind.leg)

        record_id = self.id_factory()
        log = log.bind(record_id=record_id, provider=resolved.provider)
        media_path = f"{record_id}.{kind.extension}"

        await self._upload_primary(media_path, data, kind, log)

        thumbnail_path = None
        if self.profile.mirror_thumbnail and metadata.thumbnail_url:
            thumbnail_path = await self._mirror_thumbnail(
                record_id, metadata.thumbnail_url, client.user_agent, log,
            )

        record = DownloadRecord.for_kind(
            record_id=record_id,
            source_url=source_url,
            kind=kind,
            media_path=media_path,
            metadata=metadata,
            thumbnail_path=thumbnail_path,
        )
        await self._save_record(record, log)

        log.info(
            "Download stored: provider=%s kind=%s size=%d bucket=%s",
            resolved.provider, kind.value, len(data), self.profile.bucket,
        )
        return DownloadResult(
            record=record,
            data=data,
            content_type=kind.content_type,
            filename=f"{self.profile.filename_prefix}_{record_id}.{kind.extension}",
        )

    def _merge_metadata(
        self,
        source_url: str,
        provided: Optional[MediaMetadata],
        enriched: Optional[MediaMetadata],
    ) -> MediaMetadata:
        """Provider metadata wins, then enrichment, then placeholders."""
        placeholder = (
            self.placeholder(source_url) if self.placeholder else self.profile.placeholder_metadata()
        )
        merged = (provided or MediaMetadata()).merged_over(enriched)
        return merged.merged_over(placeholder)

    async def _upload_primary(self, key: str, data: bytes, kind: MediaKind, log: LogContext) -> None:
        try:
            await self.storage.put_object(self.profile.bucket, key, data, kind.content_type)
        except Exception as e:
            log.error("Primary upload failed: key=%s error=%s", key, e, exc_info=True)
            raise StorageError(f"Failed to upload {kind.leg} to storage: {e}") from e

    async def _mirror_thumbnail(
        self,
        record_id: str,
        thumbnail_url: str,
        user_agent: str,
        log: LogContext,
    ) -> Optional[str]:
        thumb_key = f"{record_id}_thumb.jpg"
        try:
            thumb = await self.downloader.download(thumbnail_url, user_agent, "thumbnail")
            await self.storage.put_object(self.profile.bucket, thumb_key, thumb, "image/jpeg")
        except Exception as e:
            log.warning("Failed to upload thumbnail: %s", e)
            inc_counter("thumbnail_mirror_failed", route=self.profile.route)
            return None
        return thumb_key

    async def _save_record(self, record: DownloadRecord, log: LogContext) -> None:
        try:
            await self.repository.insert(record)
        except Exception as e:
            log.error("Failed to save metadata row (object kept): %s", e, exc_info=True)
            inc_counter("metadata_insert_failed", route=self.profile.route)
