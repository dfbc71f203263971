# tests/test_routes.py
"""
HTTP-level tests for the relay routes.

The lifespan is not run (TestClient is used without a context manager),
so ``app.state.services`` is populated from in-memory fakes.
"""
from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.core.relay.domain import MediaMetadata, ResolvedMedia
from app.core.relay.image_pipeline import ImagePipeline
from app.core.relay.lookup import DownloadLookup, GeneratedImageLookup
from app.core.relay.pipeline import DownloadPipeline, RouteProfile
from app.infra.health_checks_async import AsyncHealthChecker, AsyncStorageHealthCheck
from app.transport.http_app import app
from app.transport.services import (
    IMAGEN_ROUTE,
    RelayServices,
    TIKTOK_MP3_ROUTE,
    TIKTOK_MP4_ROUTE,
    YOUTUBE_ROUTE,
)

from tests.fakes import (
    FailingProvider,
    FakeDownloader,
    FakeDownloadRepository,
    FakeImageRepository,
    FakeMetrics,
    FakeStorage,
    StaticProvider,
    sequential_ids,
)

BASE_URL = "https://apis.visora.my.id"
FIRST_ID = "00000000-0000-4000-8000-000000000001"
YT_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"

VIDEO = b"\x00\x00\x00\x18ftypmp42" + b"v" * 32
AUDIO = b"ID3" + b"a" * 32


class _Generator:
    async def generate(self, prompt):
        return b"raw"


class _Watermarker:
    async def apply(self, image):
        return b"\x89PNG-watermarked"


class Harness:
    """Fake-backed RelayServices plus handles for assertions."""

    def __init__(self, tiktok_providers=None, youtube_providers=None):
        self.storage = FakeStorage()
        self.metrics = FakeMetrics()
        self.tiktok_repo = FakeDownloadRepository()
        self.tiktok_mp3_repo = FakeDownloadRepository()
        self.youtube_repo = FakeDownloadRepository()
        self.image_repo = FakeImageRepository()

        tikwm = StaticProvider("tikwm", ResolvedMedia(
            media_url="https://cdn.tikwm.test/video.mp4",
            music_url="https://cdn.tikwm.test/music.mp3",
            metadata=MediaMetadata(title="Dance clip", author="creator",
                                   thumbnail_url="https://cdn.tikwm.test/cover.jpg"),
        ))
        self.downloader = FakeDownloader({
            "https://cdn.tikwm.test/video.mp4": VIDEO,
            "https://cdn.tikwm.test/music.mp3": AUDIO,
            "https://cdn.tikwm.test/cover.jpg": b"jpeg",
            "https://relay.test/yt.mp4": VIDEO,
            "https://relay.test/yt.mp3": AUDIO,
        })
        tiktok_providers = tiktok_providers if tiktok_providers is not None else [tikwm]
        youtube_providers = youtube_providers if youtube_providers is not None else [
            StaticProvider("cobalt:relay.test", ResolvedMedia(
                media_url="https://relay.test/yt.mp4", music_url="https://relay.test/yt.mp3",
            )),
        ]

        def pipeline(route, bucket, slug, prefix, providers, repo, mirror=False, platform="TikTok"):
            return DownloadPipeline(
                profile=RouteProfile(
                    route=route, platform=platform, bucket=bucket,
                    result_slug=slug, filename_prefix=prefix, mirror_thumbnail=mirror,
                ),
                providers=providers,
                downloader=self.downloader,
                storage=self.storage,
                repository=repo,
                id_factory=sequential_ids(),
            )

        self.services = RelayServices(
            tiktok_mp4=pipeline(TIKTOK_MP4_ROUTE, "tiktok-downloads", "mp4tiktok", "tiktok",
                                tiktok_providers, self.tiktok_repo, mirror=True),
            tiktok_mp3=pipeline(TIKTOK_MP3_ROUTE, "tiktok-mp3s", "tiktokvid2mp3", "tiktok",
                                tiktok_providers, self.tiktok_mp3_repo),
            youtube=pipeline(YOUTUBE_ROUTE, "yt-downloads", "ytdownloader", "youtube",
                             youtube_providers, self.youtube_repo, platform="YouTube"),
            image=ImagePipeline(
                route=IMAGEN_ROUTE,
                generator=_Generator(),
                watermarker=_Watermarker(),
                storage=self.storage,
                repository=self.image_repo,
                bucket="ai-images",
                path_prefix="imagen-3.5-pro",
                id_factory=lambda: "0badcafe",
            ),
            tiktok_mp4_lookup=DownloadLookup(self.tiktok_repo, self.storage, "tiktok-downloads"),
            tiktok_mp3_lookup=DownloadLookup(self.tiktok_mp3_repo, self.storage, "tiktok-mp3s"),
            youtube_lookup=DownloadLookup(self.youtube_repo, self.storage, "yt-downloads"),
            image_lookup=GeneratedImageLookup(self.image_repo, self.storage, "ai-images"),
            metrics=self.metrics,
            public_base_url=BASE_URL,
            storage=self.storage,
        )


@pytest.fixture
def harness():
    h = Harness()
    app.state.services = h.services
    app.state.health_checker = AsyncHealthChecker([AsyncStorageHealthCheck(h.storage, buckets=["tiktok-downloads"])])
    yield h
    del app.state.services
    del app.state.health_checker


@pytest.fixture
def client(harness):
    return TestClient(app, raise_server_exceptions=False)


def _install(h: Harness):
    app.state.services = h.services


# ============================================================================
# TikTok mp4 route
# ============================================================================

class TestTikTokMp4Route:
    def test_missing_url_is_400(self, client, harness):
        resp = client.get("/api/downloader/tiktokmp4downloader", params={"type": "mp4"})
        assert resp.status_code == 400
        assert resp.json() == {"status": False, "error": "Parameter 'tiktokvid_url' is required"}
        assert harness.metrics.counters == {}

    @pytest.mark.parametrize("type_value", [None, "webm", ""])
    def test_bad_type_is_400(self, client, type_value):
        params = {"tiktokvid_url": "https://tiktok.com/@u/video/1"}
        if type_value is not None:
            params["type"] = type_value
        resp = client.get("/api/downloader/tiktokmp4downloader", params=params)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Parameter 'type' is required and must be 'mp3' or 'mp4'"

    def test_video_streamed_inline_by_default(self, client, harness):
        resp = client.get(
            "/api/downloader/tiktokmp4downloader",
            params={"tiktokvid_url": "https://tiktok.com/@u/video/1", "type": "mp4"},
        )
        assert resp.status_code == 200
        assert resp.content == VIDEO
        assert resp.headers["content-type"] == "video/mp4"
        assert resp.headers["content-disposition"] == f'inline; filename="tiktok_{FIRST_ID}.mp4"'
        assert ("tiktok-downloads", f"{FIRST_ID}.mp4") in harness.storage.objects
        assert harness.tiktok_repo.rows[FIRST_ID].thumbnail_path == f"{FIRST_ID}_thumb.jpg"

    def test_json_envelope_when_auto_show_false(self, client, harness):
        resp = client.get(
            "/api/downloader/tiktokmp4downloader",
            params={"tiktokvid_url": "https://tiktok.com/@u/video/1", "type": "mp4", "auto_show": "false"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] is True
        result = body["result"]
        assert result["id"] == FIRST_ID
        assert result["type"] == "mp4"
        assert result["title"] == "Dance clip"
        assert result["author"] == "creator"
        assert result["result_url"] == f"{BASE_URL}/api/result/mp4tiktok/{FIRST_ID}"
        assert result["video_url"] == f"https://cdn.test/public/tiktok-downloads/{FIRST_ID}.mp4"
        # pretty-printed
        assert '\n  "status": true' in resp.text

    def test_mp3_never_streamed_on_mixed_route(self, client, harness):
        resp = client.get(
            "/api/downloader/tiktokmp4downloader",
            params={"tiktokvid_url": "https://tiktok.com/@u/video/1", "type": "mp3"},
        )
        assert resp.status_code == 200
        result = resp.json()["result"]
        assert result["type"] == "mp3"
        assert "video_url" not in result
        assert ("tiktok-downloads", f"{FIRST_ID}.mp3") in harness.storage.objects

    def test_chain_exhausted_is_500_and_stores_nothing(self):
        h = Harness(tiktok_providers=[FailingProvider("tikwm"), FailingProvider("cobalt:a")])
        _install(h)
        try:
            resp = TestClient(app).get(
                "/api/downloader/tiktokmp4downloader",
                params={"tiktokvid_url": "https://tiktok.com/@u/video/1", "type": "mp4"},
            )
        finally:
            del app.state.services
        assert resp.status_code == 500
        assert resp.json() == {"status": False, "error": "No media URL found from any provider"}
        assert h.storage.objects == {}
        assert h.metrics.counters == {"total_hits": 1, "total_errors": 1}
        assert h.metrics.requests[0][:2] == (TIKTOK_MP4_ROUTE, 500)

    def test_success_counters_and_caller_ua(self, client, harness):
        client.get(
            "/api/downloader/tiktokmp4downloader",
            params={"tiktokvid_url": "https://tiktok.com/@u/video/1", "type": "mp4"},
            headers={"User-Agent": "Caller/9.9", "X-Forwarded-For": "203.0.113.7"},
        )
        assert harness.metrics.counters == {"total_hits": 1, "total_success": 1}
        assert harness.metrics.requests == [(TIKTOK_MP4_ROUTE, 200, "203.0.113.7", "Caller/9.9")]
        assert harness.downloader.calls[0][1] == "Caller/9.9"


# ============================================================================
# TikTok mp3 route
# ============================================================================

class TestTikTokMp3Route:
    def test_envelope_by_default(self, client, harness):
        resp = client.get("/api/downloader/tiktokvid2mp3", params={"tiktokvid_url": "https://tiktok.com/x"})
        assert resp.status_code == 200
        result = resp.json()["result"]
        assert result["type"] == "mp3"
        assert result["result_url"] == f"{BASE_URL}/api/result/tiktokvid2mp3/{FIRST_ID}"
        assert harness.tiktok_mp3_repo.rows[FIRST_ID].media_path_audio == f"{FIRST_ID}.mp3"

    def test_instant_appearance_streams_audio(self, client):
        resp = client.get(
            "/api/downloader/tiktokvid2mp3",
            params={"tiktokvid_url": "https://tiktok.com/x", "instant-appearance": "true"},
        )
        assert resp.status_code == 200
        assert resp.content == AUDIO
        assert resp.headers["content-type"] == "audio/mpeg"
        assert resp.headers["content-disposition"] == f'inline; filename="tiktok_{FIRST_ID}.mp3"'

    def test_missing_url_is_400(self, client):
        resp = client.get("/api/downloader/tiktokvid2mp3")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Parameter 'tiktokvid_url' is required"


# ============================================================================
# YouTube route
# ============================================================================

class TestYouTubeRoute:
    def test_invalid_url_is_400(self, client, harness):
        resp = client.get("/api/downloader/yt", params={"youtube_url": "https://vimeo.com/1", "type": "mp4"})
        assert resp.status_code == 400
        assert resp.json() == {"status": False, "error": "Invalid YouTube URL"}
        assert harness.downloader.calls == []

    def test_missing_url_is_400(self, client):
        resp = client.get("/api/downloader/yt", params={"type": "mp4"})
        assert resp.json()["error"] == "Parameter 'youtube_url' is required"

    def test_audio_envelope(self, client, harness):
        resp = client.get("/api/downloader/yt", params={"youtube_url": YT_URL, "type": "mp3"})
        assert resp.status_code == 200
        result = resp.json()["result"]
        assert result["result_url"] == f"{BASE_URL}/api/result/ytdownloader/{FIRST_ID}"
        assert result["title"] == "YouTube Video"
        assert result["author"] == "Unknown"
        assert ("yt-downloads", f"{FIRST_ID}.mp3") in harness.storage.objects

    def test_video_inline(self, client):
        resp = client.get("/api/downloader/yt", params={"youtube_url": YT_URL, "type": "mp4"})
        assert resp.status_code == 200
        assert resp.headers["content-disposition"] == f'inline; filename="youtube_{FIRST_ID}.mp4"'


# ============================================================================
# Result lookups
# ============================================================================

class TestResultRoutes:
    def test_unknown_id_is_404(self, client):
        resp = client.get(f"/api/result/mp4tiktok/{FIRST_ID}")
        assert resp.status_code == 404
        assert resp.json() == {"status": False, "error": "Download not found"}

    def test_stored_download_is_described(self, client, harness):
        client.get("/api/downloader/tiktokvid2mp3", params={"tiktokvid_url": "https://tiktok.com/x"})

        resp = client.get(f"/api/result/tiktokvid2mp3/{FIRST_ID}")

        assert resp.status_code == 200
        result = resp.json()["result"]
        assert result["media_url"] == f"https://cdn.test/public/tiktok-mp3s/{FIRST_ID}.mp3"
        assert result["type"] == "mp3"

    @pytest.mark.parametrize("path,params", [
        ("/api/downloader/tiktokmp4downloader",
         {"tiktokvid_url": "https://tiktok.com/@u/video/1", "type": "mp4", "auto_show": "false"}),
        ("/api/downloader/tiktokvid2mp3", {"tiktokvid_url": "https://tiktok.com/x"}),
        ("/api/downloader/yt", {"youtube_url": YT_URL, "type": "mp3"}),
    ])
    def test_returned_result_url_is_served(self, client, path, params):
        link = client.get(path, params=params).json()["result"]["result_url"]
        assert link.startswith(BASE_URL)

        resp = client.get(link[len(BASE_URL):])

        assert resp.status_code == 200
        assert resp.json()["result"]["id"] == FIRST_ID

    def test_lookup_failure_is_generic_500(self, client, harness):
        async def broken_get(record_id):
            raise RuntimeError("connection reset by db-host:5432")

        harness.youtube_repo.get = broken_get
        resp = client.get(f"/api/result/ytdownloader/{FIRST_ID}")
        assert resp.status_code == 500
        assert resp.json() == {"status": False, "error": "Internal server error"}


# ============================================================================
# Image generation
# ============================================================================

class TestImageRoute:
    def test_missing_prompt_is_400(self, client):
        resp = client.get("/api/image-generator/imagen-3.5-pro", params={"prompt": "   "})
        assert resp.status_code == 400
        assert resp.json() == {"status": False, "error": "Parameter 'prompt' is required"}

    def test_png_with_result_header(self, client, harness):
        resp = client.get("/api/image-generator/imagen-3.5-pro", params={"prompt": "a red fox"})
        assert resp.status_code == 200
        assert resp.content == b"\x89PNG-watermarked"
        assert resp.headers["content-type"] == "image/png"
        assert resp.headers["x-result-url"] == "/image/imagen-3.5-pro/result/0badcafe"
        assert harness.metrics.counters == {"total_requests": 1, "total_success": 1}

    def test_result_header_is_served(self, client):
        header = client.get("/api/image-generator/imagen-3.5-pro", params={"prompt": "a red fox"}).headers["x-result-url"]
        resp = client.get(header)
        assert resp.status_code == 200
        assert resp.json()["result"]["id"] == "0badcafe"

    def test_image_result_lookup(self, client):
        client.get("/api/image-generator/imagen-3.5-pro", params={"prompt": "a red fox"})
        resp = client.get("/api/result/imagen-3.5-pro/0badcafe")
        assert resp.json()["result"] == {
            "id": "0badcafe",
            "prompt": "a red fox",
            "image_url": "https://cdn.test/public/ai-images/imagen-3.5-pro/0badcafe.png",
        }


# ============================================================================
# Health & monitoring
# ============================================================================

class TestHealthRoutes:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}
        assert "X-Request-ID" in resp.headers

    def test_ready(self, client):
        assert client.get("/ready").json() == {"status": "healthy"}

    def test_metrics_forbidden_from_external_ip(self, client):
        resp = client.get("/metrics", headers={"X-Forwarded-For": "8.8.8.8"})
        assert resp.status_code == 403
        assert resp.json() == {"status": False, "error": "Forbidden"}

    def test_metrics_served_to_internal_caller(self, client):
        resp = client.get("/metrics", headers={"X-Forwarded-For": "10.0.0.7"})
        assert resp.status_code == 200
        assert "counters" in resp.json()

    def test_metrics_disabled_is_404(self, client):
        with patch("app.transport.http_app.settings") as mock_settings:
            mock_settings.enable_metrics = False
            resp = client.get("/metrics", headers={"X-Forwarded-For": "10.0.0.7"})
        assert resp.status_code == 404
        assert resp.json() == {"status": False, "error": "Not found"}

    def test_unknown_route_is_404(self, client):
        resp = client.get("/api/downloader/vimeo")
        assert resp.status_code == 404
        assert resp.json() == {"status": False, "error": "Not found"}
