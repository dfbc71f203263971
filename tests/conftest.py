# tests/conftest.py
"""Pytest configuration and fixtures"""
import sys
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.core.relay.domain import MediaMetadata, ResolvedMedia  # noqa: E402
from tests.fakes import (  # noqa: E402
    FakeDownloadRepository,
    FakeImageRepository,
    FakeMetrics,
    FakeStorage,
)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def repo():
    return FakeDownloadRepository()


@pytest.fixture
def image_repo():
    return FakeImageRepository()


@pytest.fixture
def metrics():
    return FakeMetrics()


@pytest.fixture
def video_bytes():
    return b"\x00\x00\x00\x18ftypmp42" + b"v" * 64


@pytest.fixture
def audio_bytes():
    return b"ID3" + b"a" * 64


@pytest.fixture
def tikwm_resolved():
    return ResolvedMedia(
        media_url="https://cdn.tikwm.test/video.mp4",
        music_url="https://cdn.tikwm.test/music.mp3",
        metadata=MediaMetadata(
            title="Dance clip",
            author="creator",
            thumbnail_url="https://cdn.tikwm.test/cover.jpg",
        ),
        provider="tikwm",
    )
