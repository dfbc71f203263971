# app/core/relay/domain.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class MediaKind(str, Enum):
    """Requested output kind. The value doubles as the file extension."""
    MP3 = "mp3"
    MP4 = "mp4"

    @property
    def content_type(self) -> str:
        return "audio/mpeg" if self is MediaKind.MP3 else "video/mp4"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def leg(self) -> str:
        """Name of the download leg used in error messages"""
        return "music" if self is MediaKind.MP3 else "video"

    @property
    def is_audio(self) -> bool:
        return self is MediaKind.MP3

    @classmethod
    def parse(cls, value: str | None) -> Optional["MediaKind"]:
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class MediaMetadata:
    """Descriptive metadata for a source video. Any field may be unknown."""
    title: Optional[str] = None
    author: Optional[str] = None
    thumbnail_url: Optional[str] = None

    def merged_over(self, fallback: "MediaMetadata | None") -> "MediaMetadata":
        """Fill this metadata's gaps from ``fallback``; own values win."""
        if fallback is None:
            return MediaMetadata(self.title, self.author, self.thumbnail_url)
        return MediaMetadata(
            title=self.title or fallback.title,
            author=self.author or fallback.author,
            thumbnail_url=self.thumbnail_url or fallback.thumbnail_url,
        )


@dataclass
class ResolvedMedia:
    """First usable answer from the provider chain."""
    media_url: Optional[str] = None
    music_url: Optional[str] = None
    metadata: Optional[MediaMetadata] = None
    provider: str = ""

    def url_for(self, kind: MediaKind) -> Optional[str]:
        return self.music_url if kind.is_audio else self.media_url


@dataclass
class DownloadRecord:
    """
    Metadata row for one successful download.

    Exactly one of ``media_path_video`` / ``media_path_audio`` is set,
    matching ``media_type``. Rows are written once and never updated.
    """
    id: str
    source_url: str
    title: str
    author: str
    media_type: MediaKind
    thumbnail_url: Optional[str] = None
    media_path_video: Optional[str] = None
    media_path_audio: Optional[str] = None
    thumbnail_path: Optional[str] = None

    @classmethod
    def for_kind(
        cls,
        *,
        record_id: str,
        source_url: str,
        kind: MediaKind,
        media_path: str,
        metadata: MediaMetadata,
        thumbnail_path: Optional[str] = None,
    ) -> "DownloadRecord":
        return cls(
            id=record_id,
            source_url=source_url,
            title=metadata.title or "",
            author=metadata.author or "",
            media_type=kind,
            thumbnail_url=metadata.thumbnail_url,
            media_path_video=None if kind.is_audio else media_path,
            media_path_audio=media_path if kind.is_audio else None,
            thumbnail_path=thumbnail_path,
        )

    @property
    def media_path(self) -> Optional[str]:
        return self.media_path_audio or self.media_path_video


@dataclass
class GeneratedImageRecord:
    """Metadata row for one generated image (8-hex-char id)."""
    id: str
    prompt: str
    image_path: str


@dataclass
class DownloadResult:
    """What the pipeline hands back to the response shaper."""
    record: DownloadRecord
    data: bytes
    content_type: str
    filename: str


@dataclass
class GeneratedImage:
    record: GeneratedImageRecord
    data: bytes
    content_type: str = "image/png"


@dataclass
class ClientInfo:
    """Caller details used for upstream requests and request accounting."""
    ip: str = "127.0.0.1"
    user_agent: str = ""
