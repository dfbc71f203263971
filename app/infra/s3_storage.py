# app/infra/s3_storage.py
"""
S3-compatible object storage for relayed media and generated images.

Supports:
- Supabase Storage (S3 endpoint)
- Cloudflare R2
- AWS S3
- MinIO (for testing)

Configuration:

PRODUCTION (Supabase):
    S3_ENDPOINT_URL=https://<project>.supabase.co/storage/v1/s3
    S3_PUBLIC_URL=https://<project>.supabase.co/storage/v1/object/public
    S3_ACCESS_KEY=...
    S3_SECRET_KEY=...
    -> Objects resolve to {S3_PUBLIC_URL}/{bucket}/{key}

TESTING (internal MinIO):
    S3_ENDPOINT_URL=http://minio:9000
    S3_PUBLIC_URL= (empty)
    -> Objects resolve to {S3_ENDPOINT_URL}/{bucket}/{key}

Buckets are passed per call: each route writes to its own bucket.
boto3 is blocking, so every call runs in a worker thread.
"""
from __future__ import annotations

import asyncio

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings
from app.infra.logging_config import get_logger
from app.infra.metrics import inc_counter

logger = get_logger(__name__)


class S3Storage:
    """S3-compatible storage, one client shared across buckets."""

    def __init__(
        self,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        public_url: str | None = None,
        client=None,
    ):
        self._endpoint_url = endpoint_url or settings.s3_endpoint_url
        self._public_url = public_url if public_url is not None else settings.s3_public_url

        if client is not None:
            self._client = client
        else:
            if not (self._endpoint_url and (access_key or settings.s3_access_key)):
                raise RuntimeError("S3 storage not configured")
            self._client = boto3.client(
                "s3",
                endpoint_url=self._endpoint_url,
                aws_access_key_id=access_key or settings.s3_access_key,
                aws_secret_access_key=secret_key or settings.s3_secret_key,
                region_name=settings.s3_region,
                config=Config(
                    signature_version="s3v4",
                    # A failed upload fails the request; no silent retries
                    retries={"max_attempts": 1, "mode": "standard"},
                    s3={"addressing_style": "path" if settings.s3_force_path_style else "virtual"},
                ),
            )

        logger.info(f"S3 storage initialized: endpoint={self._endpoint_url}")

    def get_public_url(self, bucket: str, key: str) -> str:
        """
        Public URL for an object.

        Without S3_PUBLIC_URL this is the raw endpoint URL, which only
        works for publicly readable buckets on plain S3/MinIO.
        """
        if self._public_url:
            return f"{self._public_url.rstrip('/')}/{bucket}/{key}"
        return f"{(self._endpoint_url or '').rstrip('/')}/{bucket}/{key}"

    async def put_object(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        """
        Upload an object, overwriting any existing one.

        Raises the underlying botocore error; callers decide whether
        the failure is fatal.
        """
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000",
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload failed: bucket={bucket}, key={key}, error={e}")
            inc_counter("s3_uploads_failed", bucket=bucket)
            raise

        logger.info(f"Object uploaded: bucket={bucket}, key={key}, size={len(data)}")
        inc_counter("s3_uploads_success", bucket=bucket)

    async def check_bucket(self, bucket: str) -> bool:
        """Health probe: True if the bucket is reachable with our credentials."""
        try:
            await asyncio.to_thread(self._client.head_bucket, Bucket=bucket)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"S3 bucket check failed: bucket={bucket}, error={e}")
            return False


# Global instance (lazy initialization)
_s3_storage: S3Storage | None = None


def get_s3_storage() -> S3Storage:
    """Get the global S3 storage instance."""
    global _s3_storage
    if _s3_storage is None:
        _s3_storage = S3Storage()
    return _s3_storage


def is_s3_available() -> bool:
    return settings.s3_enabled
