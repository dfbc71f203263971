# app/infra/pg_download_repo_async.py
"""
Async repository for download metadata rows.

Every downloader route writes the same row shape into its own table
(tiktok_downloads, tiktok_mp3s, yt_downloads), so the table name is a
constructor argument.
"""
from __future__ import annotations

import re
import uuid
from typing import Optional

from app.core.relay.domain import DownloadRecord, MediaKind
from app.infra.db_async import db_conn
from app.infra.logging_config import get_logger
from app.infra.metrics import inc_counter

logger = get_logger(__name__)

_TABLE_NAME_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


def checked_table_name(table: str) -> str:
    """Table names are interpolated into SQL, so only plain identifiers pass."""
    if not _TABLE_NAME_RE.match(table):
        raise ValueError(f"Invalid table name: {table!r}")
    return table


def _parse_uuid(record_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(record_id)
    except (ValueError, TypeError, AttributeError):
        return None


class AsyncPostgresDownloadRepository:
    def __init__(self, table: str):
        self.table = checked_table_name(table)

    async def insert(self, record: DownloadRecord) -> None:
        try:
            async with db_conn() as conn:
                await conn.execute(
                    f"""
                    INSERT INTO {self.table}(
                        id, source_url, title, author, thumbnail_url, thumbnail_path,
                        mp4_path, mp3_path, media_type
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                    """,
                    uuid.UUID(record.id),
                    record.source_url,
                    record.title,
                    record.author,
                    record.thumbnail_url,
                    record.thumbnail_path,
                    record.media_path_video,
                    record.media_path_audio,
                    record.media_type.value,
                )
        except Exception:
            inc_counter("db_insert_failed", table=self.table)
            raise

        logger.info(
            "Download row saved: table=%s id=%s type=%s",
            self.table, record.id[:8], record.media_type.value,
        )

    async def get(self, record_id: str) -> Optional[DownloadRecord]:
        """Fetch one row by id. Malformed ids are simply not found."""
        row_id = _parse_uuid(record_id)
        if row_id is None:
            return None

        async with db_conn() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT id, source_url, title, author, thumbnail_url, thumbnail_path,
                       mp4_path, mp3_path, media_type
                FROM {self.table}
                WHERE id = $1
                """,
                row_id,
            )

        if not row:
            return None

        return DownloadRecord(
            id=str(row["id"]),
            source_url=row["source_url"],
            title=row["title"],
            author=row["author"],
            media_type=MediaKind(row["media_type"]),
            thumbnail_url=row["thumbnail_url"],
            media_path_video=row["mp4_path"],
            media_path_audio=row["mp3_path"],
            thumbnail_path=row["thumbnail_path"],
        )
