# app/core/relay/video_id.py
"""
YouTube video identifier extraction.

Patterns are tried in order and the first capturing match wins:
watch / short-link / embed / legacy ``/v/`` / shorts URLs, then a bare
11-character identifier.
"""
from __future__ import annotations

import re

from app.core.relay.errors import InvalidSourceURL

VIDEO_ID_PATTERNS = [
    re.compile(
        r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/v/|youtube\.com/shorts/)"
        r"([a-zA-Z0-9_-]{11})"
    ),
    re.compile(r"^([a-zA-Z0-9_-]{11})$"),
]


def extract_video_id(url: str) -> str | None:
    """Return the 11-char video id, or None when no pattern matches."""
    if not url:
        return None
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def require_video_id(url: str) -> str:
    video_id = extract_video_id(url)
    if video_id is None:
        raise InvalidSourceURL("Invalid YouTube URL")
    return video_id


def youtube_thumbnail_url(video_id: str) -> str:
    return f"https://img.youtube.com/vi/{video_id}/maxresdefault.jpg"
