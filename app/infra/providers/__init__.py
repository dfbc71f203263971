"""
Upstream media providers.

Each provider resolves a source URL to a direct media URL and raises
ProviderError on any failure, so the fallback chain in
``app.core.relay.fallback`` can move on to the next one.
Metadata enrichers and the image generator live here too because they
share the same HTTP session profile and failure handling.
"""
from app.infra.providers.tikwm import TikwmProvider
from app.infra.providers.cobalt import CobaltProvider, cobalt_mirrors
from app.infra.providers.oembed import (
    OEmbedEnricher,
    TikTokMetadataEnricher,
    YouTubeMetadataEnricher,
)
from app.infra.providers.flux import FluxImageGenerator

__all__ = [
    "TikwmProvider",
    "CobaltProvider",
    "cobalt_mirrors",
    "OEmbedEnricher",
    "TikTokMetadataEnricher",
    "YouTubeMetadataEnricher",
    "FluxImageGenerator",
]
