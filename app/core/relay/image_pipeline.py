# app/core/relay/image_pipeline.py
"""
Prompt → generated image → watermark → store → metadata row.

Storage key: ``{path_prefix}/{id}.png`` where id is 8 hex chars.
Upload failure is fatal; a failed metadata insert is logged and the
watermarked image is still returned.
"""
from __future__ import annotations

import secrets

from app.core.relay.domain import GeneratedImage, GeneratedImageRecord
from app.core.relay.errors import StorageError
from app.core.relay.ports import (
    GeneratedImageRepository,
    IdFactory,
    ImageGenerator,
    ObjectStorage,
    Watermarker,
)
from app.infra.logging_config import get_logger, LogContext
from app.infra.metrics import inc_counter

logger = get_logger(__name__)


def new_image_id() -> str:
    return secrets.token_hex(4)


class ImagePipeline:
    def __init__(
        self,
        *,
        route: str,
        generator: ImageGenerator,
        watermarker: Watermarker,
        storage: ObjectStorage,
        repository: GeneratedImageRepository,
        bucket: str,
        path_prefix: str,
        id_factory: IdFactory = new_image_id,
    ) -> None:
        self.route = route
        self.generator = generator
        self.watermarker = watermarker
        self.storage = storage
        self.repository = repository
        self.bucket = bucket
        self.path_prefix = path_prefix.strip("/")
        self.id_factory = id_factory

    async def run(self, prompt: str, request_id: str | None = None) -> GeneratedImage:
        log = LogContext(logger, request_id=request_id, route=self.route)

        raw = await self.generator.generate(prompt)
        watermarked = await self.watermarker.apply(raw)

        image_id = self.id_factory()
        log = log.bind(record_id=image_id)
        image_path = f"{self.path_prefix}/{image_id}.png"

        try:
            await self.storage.put_object(self.bucket, image_path, watermarked, "image/png")
        except Exception as e:
            log.error("Image upload failed: key=%s error=%s", image_path, e, exc_info=True)
            raise StorageError(f"Failed to upload image to storage: {e}") from e

        record = GeneratedImageRecord(id=image_id, prompt=prompt, image_path=image_path)
        try:
            await self.repository.insert(record)
        except Exception as e:
            log.error("Failed to save image row (object kept): %s", e, exc_info=True)
            inc_counter("metadata_insert_failed", route=self.route)

        log.info("Generated image stored: size=%d path=%s", len(watermarked), image_path)
        return GeneratedImage(record=record, data=watermarked)
