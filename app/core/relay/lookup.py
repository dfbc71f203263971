# app/core/relay/lookup.py
"""
Result lookup: id → metadata row → public URL derived at read time.

Public URLs are never persisted, only storage paths, so a change in the
storage URL scheme does not invalidate stored results.
"""
from __future__ import annotations

from app.core.relay.errors import NotFoundError
from app.core.relay.ports import (
    DownloadRepository,
    GeneratedImageRepository,
    ObjectStorage,
)


class DownloadLookup:
    def __init__(self, repository: DownloadRepository, storage: ObjectStorage, bucket: str):
        self.repository = repository
        self.storage = storage
        self.bucket = bucket

    async def describe(self, record_id: str) -> dict:
        record = await self.repository.get(record_id)
        if record is None:
            raise NotFoundError("Download not found")

        path = record.media_path
        if not path:
            raise NotFoundError("File not found")

        media_url = self.storage.get_public_url(self.bucket, path)
        thumbnail = (
            self.storage.get_public_url(self.bucket, record.thumbnail_path)
            if record.thumbnail_path
            else record.thumbnail_url
        )

        return {
            "id": record.id,
            "source_url": record.source_url,
            "title": record.title,
            "author": record.author,
            "thumbnail_url": thumbnail,
            "type": record.media_type.value,
            "media_url": media_url,
        }


class GeneratedImageLookup:
    def __init__(self, repository: GeneratedImageRepository, storage: ObjectStorage, bucket: str):
        self.repository = repository
        self.storage = storage
        self.bucket = bucket

    async def describe(self, record_id: str) -> dict:
        record = await self.repository.get(record_id)
        if record is None:
            raise NotFoundError("Image not found")
        if not record.image_path:
            raise NotFoundError("File not found")

        return {
            "id": record.id,
            "prompt": record.prompt,
            "image_url": self.storage.get_public_url(self.bucket, record.image_path),
        }
