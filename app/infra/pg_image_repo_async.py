# app/infra/pg_image_repo_async.py
"""Async repository for generated image rows (ai_images)."""
from __future__ import annotations

import re
from typing import Optional

from app.core.relay.domain import GeneratedImageRecord
from app.infra.db_async import db_conn
from app.infra.logging_config import get_logger
from app.infra.metrics import inc_counter
from app.infra.pg_download_repo_async import checked_table_name

logger = get_logger(__name__)

_IMAGE_ID_RE = re.compile(r"^[0-9a-f]{8}$")


class AsyncPostgresImageRepository:
    def __init__(self, table: str = "ai_images"):
        self.table = checked_table_name(table)

    async def insert(self, record: GeneratedImageRecord) -> None:
        try:
            async with db_conn() as conn:
                await conn.execute(
                    f"INSERT INTO {self.table}(id, prompt, image_path) VALUES ($1, $2, $3)",
                    record.id,
                    record.prompt,
                    record.image_path,
                )
        except Exception:
            inc_counter("db_insert_failed", table=self.table)
            raise

        logger.info("Image row saved: id=%s", record.id)

    async def get(self, record_id: str) -> Optional[GeneratedImageRecord]:
        if not isinstance(record_id, str) or not _IMAGE_ID_RE.match(record_id):
            return None

        async with db_conn() as conn:
            row = await conn.fetchrow(
                f"SELECT id, prompt, image_path FROM {self.table} WHERE id = $1",
                record_id,
            )

        if not row:
            return None
        return GeneratedImageRecord(id=row["id"], prompt=row["prompt"], image_path=row["image_path"])
