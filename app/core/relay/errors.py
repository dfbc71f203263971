# app/core/relay/errors.py
"""
Typed errors for the fetch-and-relay pipeline.

Each error maps to a specific HTTP status code.  Route handlers catch
``RelayError`` subtypes and turn them into the ``{status: false, error}``
envelope without embedding pipeline logic in the transport layer.

``ProviderError`` is the one soft failure: the fallback chain swallows it
and moves on to the next provider.
"""
from __future__ import annotations


class RelayError(Exception):
    """Base class for all pipeline errors."""

    status_code: int = 500

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)


class MissingParameterError(RelayError):
    """Required query parameter absent or invalid (400)."""

    status_code = 400


class InvalidSourceURL(RelayError):
    """Source URL does not match any supported shape (400)."""

    status_code = 400


class NotFoundError(RelayError):
    """Result record or its stored file is missing (404)."""

    status_code = 404


class ProviderError(RelayError):
    """A single provider could not produce a usable media URL."""

    status_code = 502

    def __init__(self, provider: str, detail: str):
        self.provider = provider
        super().__init__(f"{provider}: {detail}")


class ProviderChainExhausted(RelayError):
    """Every provider in the chain failed."""

    status_code = 500

    def __init__(self, detail: str = "No media URL found from any provider"):
        super().__init__(detail)


class MediaDownloadError(RelayError):
    """Resolved media URL could not be downloaded."""

    status_code = 500

    def __init__(self, leg: str, detail: str):
        self.leg = leg
        super().__init__(f"Failed to fetch {leg} file: {detail}")


class StorageError(RelayError):
    """Primary payload upload failed."""

    status_code = 500


class ImageGenerationError(RelayError):
    """Image provider returned no usable image."""

    status_code = 500


class WatermarkError(RelayError):
    """Watermark source could not be fetched or composited."""

    status_code = 500
