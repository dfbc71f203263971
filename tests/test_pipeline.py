# tests/test_pipeline.py
"""
Tests for DownloadPipeline.

Covers:
- storage keys derived from the injected id factory
- exactly one media path set per record
- thumbnail mirroring (and its soft failure)
- metadata merge priority: provider > enrichment > placeholders
- hard failures: chain exhausted (pending enrichment cancelled), download failure, primary upload failure
- metadata insert failure is logged, not raised
"""
from __future__ import annotations

import asyncio

import pytest

from app.core.relay.domain import ClientInfo, MediaKind, MediaMetadata, ResolvedMedia
from app.core.relay.errors import MediaDownloadError, ProviderChainExhausted, ProviderError, StorageError
from app.core.relay.pipeline import DownloadPipeline, RouteProfile

from tests.fakes import (
    FailingProvider,
    FakeDownloader,
    FakeDownloadRepository,
    FakeStorage,
    StaticProvider,
    placeholder_enricher,
    sequential_ids,
)

FIRST_ID = "00000000-0000-4000-8000-000000000001"


def _profile(**overrides) -> RouteProfile:
    values = dict(
        route="/api/downloader/tiktokmp4downloader",
        platform="TikTok",
        bucket="tiktok-downloads",
        result_slug="mp4tiktok",
        filename_prefix="tiktok",
        mirror_thumbnail=True,
    )
    values.update(overrides)
    return RouteProfile(**values)


def _pipeline(providers, downloader, storage, repo, **kwargs) -> DownloadPipeline:
    kwargs.setdefault("id_factory", sequential_ids())
    return DownloadPipeline(
        profile=kwargs.pop("profile", _profile()),
        providers=providers,
        downloader=downloader,
        storage=storage,
        repository=repo,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_mp4_stores_video_under_generated_id(tikwm_resolved, storage, repo, video_bytes):
    downloader = FakeDownloader({
        tikwm_resolved.media_url: video_bytes,
        tikwm_resolved.metadata.thumbnail_url: b"jpeg",
    })
    pipeline = _pipeline([StaticProvider("tikwm", tikwm_resolved)], downloader, storage, repo)

    result = await pipeline.run("https://tiktok.com/@u/video/1", MediaKind.MP4, ClientInfo(user_agent="UA/1"))

    assert ("tiktok-downloads", f"{FIRST_ID}.mp4") in storage.objects
    assert storage.objects[("tiktok-downloads", f"{FIRST_ID}.mp4")] == (video_bytes, "video/mp4")
    assert result.filename == f"tiktok_{FIRST_ID}.mp4"
    assert result.content_type == "video/mp4"
    assert result.data == video_bytes

    row = repo.rows[FIRST_ID]
    assert row.media_path_video == f"{FIRST_ID}.mp4"
    assert row.media_path_audio is None
    assert row.media_type is MediaKind.MP4
    assert row.title == "Dance clip"
    assert row.author == "creator"


@pytest.mark.asyncio
async def test_mp3_sets_only_audio_path(tikwm_resolved, storage, repo, audio_bytes):
    downloader = FakeDownloader({tikwm_resolved.music_url: audio_bytes})
    pipeline = _pipeline(
        [StaticProvider("tikwm", tikwm_resolved)], downloader, storage, repo,
        profile=_profile(mirror_thumbnail=False, bucket="tiktok-mp3s"),
    )

    await pipeline.run("https://tiktok.com/x", MediaKind.MP3, ClientInfo())

    row = repo.rows[FIRST_ID]
    assert row.media_path_audio == f"{FIRST_ID}.mp3"
    assert row.media_path_video is None
    assert ("tiktok-mp3s", f"{FIRST_ID}.mp3") in storage.objects
    assert downloader.calls[0][2] == "music"


@pytest.mark.asyncio
async def test_thumbnail_mirrored_next_to_media(tikwm_resolved, storage, repo, video_bytes):
    downloader = FakeDownloader({
        tikwm_resolved.media_url: video_bytes,
        tikwm_resolved.metadata.thumbnail_url: b"jpeg",
    })
    pipeline = _pipeline([StaticProvider("tikwm", tikwm_resolved)], downloader, storage, repo)

    await pipeline.run("src", MediaKind.MP4, ClientInfo())

    assert storage.objects[("tiktok-downloads", f"{FIRST_ID}_thumb.jpg")] == (b"jpeg", "image/jpeg")
    assert repo.rows[FIRST_ID].thumbnail_path == f"{FIRST_ID}_thumb.jpg"


@pytest.mark.asyncio
async def test_thumbnail_failure_does_not_abort(tikwm_resolved, repo, video_bytes):
    storage = FakeStorage(fail_keys={"_thumb.jpg"})
    downloader = FakeDownloader({tikwm_resolved.media_url: video_bytes})  # thumbnail 404s
    pipeline = _pipeline([StaticProvider("tikwm", tikwm_resolved)], downloader, storage, repo)

    result = await pipeline.run("src", MediaKind.MP4, ClientInfo())

    assert result.record.thumbnail_path is None
    assert ("tiktok-downloads", f"{FIRST_ID}.mp4") in storage.objects
    assert FIRST_ID in repo.rows


@pytest.mark.asyncio
async def test_chain_exhausted_writes_nothing(storage, repo):
    downloader = FakeDownloader()
    pipeline = _pipeline([FailingProvider("tikwm"), FailingProvider("cobalt:a")], downloader, storage, repo)

    with pytest.raises(ProviderChainExhausted):
        await pipeline.run("src", MediaKind.MP4, ClientInfo())

    assert storage.objects == {}
    assert repo.rows == {}
    assert downloader.calls == []


@pytest.mark.asyncio
async def test_download_failure_names_leg(storage, repo):
    provider = StaticProvider("cobalt:a", ResolvedMedia(music_url="https://relay/gone.mp3"))
    pipeline = _pipeline([provider], FakeDownloader(), storage, repo)

    with pytest.raises(MediaDownloadError) as exc:
        await pipeline.run("src", MediaKind.MP3, ClientInfo())

    assert "music" in exc.value.detail
    assert storage.objects == {}


@pytest.mark.asyncio
async def test_primary_upload_failure_is_storage_error(tikwm_resolved, repo, video_bytes):
    storage = FakeStorage()
    storage.fail_all = True
    downloader = FakeDownloader({tikwm_resolved.media_url: video_bytes})
    pipeline = _pipeline([StaticProvider("tikwm", tikwm_resolved)], downloader, storage, repo)

    with pytest.raises(StorageError):
        await pipeline.run("src", MediaKind.MP4, ClientInfo())

    assert repo.rows == {}


@pytest.mark.asyncio
async def test_insert_failure_still_returns_result(tikwm_resolved, storage, video_bytes):
    repo = FakeDownloadRepository(fail_insert=True)
    downloader = FakeDownloader({tikwm_resolved.media_url: video_bytes})
    pipeline = _pipeline(
        [StaticProvider("tikwm", tikwm_resolved)], downloader, storage, repo,
        profile=_profile(mirror_thumbnail=False),
    )

    result = await pipeline.run("src", MediaKind.MP4, ClientInfo())

    assert result.record.id == FIRST_ID
    assert ("tiktok-downloads", f"{FIRST_ID}.mp4") in storage.objects


@pytest.mark.asyncio
async def test_relay_fallback_with_failed_enrichment_uses_placeholders(storage, repo, audio_bytes):
    relay = StaticProvider("cobalt:a", ResolvedMedia(music_url="https://relay/audio.mp3"))
    downloader = FakeDownloader({"https://relay/audio.mp3": audio_bytes})
    pipeline = _pipeline(
        [FailingProvider("tikwm"), relay], downloader, storage, repo,
        profile=_profile(mirror_thumbnail=False),
        enricher=placeholder_enricher,
    )

    result = await pipeline.run("src", MediaKind.MP3, ClientInfo())

    assert ("tiktok-downloads", f"{FIRST_ID}.mp3") in storage.objects
    assert result.record.title == "TikTok Video"
    assert result.record.author == "Unknown"
    assert result.record.thumbnail_url is None


@pytest.mark.asyncio
async def test_enrichment_cancelled_when_chain_exhausted(storage, repo):
    started = asyncio.Event()
    state = {"cancelled": False}

    async def slow_enricher(source_url):
        started.set()
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise

    class _WaitsForEnricher:
        name = "tikwm"

        async def resolve(self, source_url, kind, user_agent):
            await started.wait()
            raise ProviderError(self.name, "HTTP 503")

    pipeline = _pipeline(
        [_WaitsForEnricher()], FakeDownloader({}), storage, repo,
        enricher=slow_enricher,
    )

    with pytest.raises(ProviderChainExhausted):
        await pipeline.run("src", MediaKind.MP4, ClientInfo())
    await asyncio.sleep(0)

    assert state["cancelled"] is True
    assert storage.objects == {}


@pytest.mark.asyncio
async def test_provider_metadata_beats_enrichment(tikwm_resolved, storage, repo, video_bytes):
    async def enricher(source_url):
        return MediaMetadata(title="oEmbed title", author="oEmbed author", thumbnail_url="https://oembed/thumb.jpg")

    partial = ResolvedMedia(
        media_url=tikwm_resolved.media_url,
        metadata=MediaMetadata(title="Provider title"),
    )
    downloader = FakeDownloader({tikwm_resolved.media_url: video_bytes})
    pipeline = _pipeline(
        [StaticProvider("tikwm", partial)], downloader, storage, repo,
        profile=_profile(mirror_thumbnail=False),
        enricher=enricher,
    )

    result = await pipeline.run("src", MediaKind.MP4, ClientInfo())

    assert result.record.title == "Provider title"
    assert result.record.author == "oEmbed author"
    assert result.record.thumbnail_url == "https://oembed/thumb.jpg"


@pytest.mark.asyncio
async def test_caller_user_agent_reaches_downloader(tikwm_resolved, storage, repo, video_bytes):
    downloader = FakeDownloader({tikwm_resolved.media_url: video_bytes})
    pipeline = _pipeline(
        [StaticProvider("tikwm", tikwm_resolved)], downloader, storage, repo,
        profile=_profile(mirror_thumbnail=False),
    )

    await pipeline.run("src", MediaKind.MP4, ClientInfo(user_agent="Caller/2.0"))

    assert downloader.calls[0][1] == "Caller/2.0"
