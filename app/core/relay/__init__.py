"""
Fetch-and-relay core -- provider-agnostic pipeline logic.

Canonical imports:
    from app.core.relay import DownloadPipeline, ImagePipeline
    from app.core.relay.domain import MediaKind, DownloadRecord
    from app.core.relay.ports import MediaProvider, ObjectStorage
"""
from app.core.relay.domain import (  # noqa: F401
    MediaKind,
    MediaMetadata,
    ResolvedMedia,
    DownloadRecord,
    GeneratedImageRecord,
    ClientInfo,
)
from app.core.relay.fallback import resolve_with_fallback  # noqa: F401
from app.core.relay.pipeline import DownloadPipeline, RouteProfile  # noqa: F401
from app.core.relay.image_pipeline import ImagePipeline  # noqa: F401
from app.core.relay.lookup import DownloadLookup, GeneratedImageLookup  # noqa: F401
