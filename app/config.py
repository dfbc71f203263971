# app/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    public_base_url: str = "https://apis.visora.my.id"  # Prefix for result_url links handed to callers
    default_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Database
    expected_schema_version: str = "001_init.sql"
    database_url: str | None = None
    pghost: str = "localhost"
    pgport: int = 5432
    pguser: str = "postgres"
    pgpassword: str = ""
    pgdatabase: str = "postgres"
    pg_pool_min: int = 1
    pg_pool_max: int = 10
    pg_connect_timeout: int = 5

    # Security
    allowed_origins: list[str] = ["*"]
    # SECURITY: Only set to true if behind a trusted reverse proxy
    trust_proxy_headers: bool = True

    # S3/Bucket Storage
    s3_endpoint_url: str | None = None  # e.g., https://<project>.supabase.co/storage/v1/s3 or R2 endpoint
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_region: str = "auto"
    s3_public_url: str | None = None  # Public URL prefix; objects resolve to {prefix}/{bucket}/{key}
    s3_force_path_style: bool = True

    # Buckets and tables per route
    tiktok_bucket: str = "tiktok-downloads"
    tiktok_table: str = "tiktok_downloads"
    tiktok_mp3_bucket: str = "tiktok-mp3s"
    tiktok_mp3_table: str = "tiktok_mp3s"
    youtube_bucket: str = "yt-downloads"
    youtube_table: str = "yt_downloads"
    ai_images_bucket: str = "ai-images"
    ai_images_table: str = "ai_images"

    # Upstream providers
    tikwm_api_url: str = "https://www.tikwm.com/api/"
    cobalt_instances: str = "https://dwnld.nichind.dev,https://cobalt.nohello.net"
    youtube_oembed_url: str = "https://www.youtube.com/oembed"
    tiktok_oembed_url: str = "https://www.tiktok.com/oembed"
    flux_api_url: str = "https://api.siputzx.my.id/api/ai/flux"
    media_max_size_mb: int = 300  # Hard cap on a single in-memory download

    # Watermark for generated images
    watermark_url: str = "https://watermark-ai-imagenerator.assetsvsiddev.workers.dev/"
    watermark_scale: float = 0.30    # Fraction of the watermark's own width
    watermark_opacity: int = 107     # 0..255 alpha applied to the watermark

    # Monitoring & Metrics
    enable_metrics: bool = True
    metrics_token: str | None = None  # Optional token for /metrics, /health/detailed
    internal_networks: str = "10.0.0.0/8,172.16.0.0/12,192.168.0.0/16,127.0.0.0/8,::1/128"

    # Feature Flags
    enable_request_logging: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def is_staging(self) -> bool:
        return self.app_env == "staging"

    @property
    def s3_enabled(self) -> bool:
        """Check if S3 storage is configured"""
        return bool(
            self.s3_endpoint_url
            and self.s3_access_key
            and self.s3_secret_key
        )

    @property
    def cobalt_instance_list(self) -> list[str]:
        """Relay mirrors in priority order"""
        return [i.strip() for i in self.cobalt_instances.split(",") if i.strip()]

    @property
    def database_dsn(self) -> str:
        if self.database_url:
            return self.database_url

        return (
            f"postgresql://{self.pguser}:{self.pgpassword}"
            f"@{self.pghost}:{self.pgport}/{self.pgdatabase}"
        )

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        required_fields = [
            ("database_url", self.database_url),
            ("s3_endpoint_url", self.s3_endpoint_url),
            ("s3_access_key", self.s3_access_key),
            ("s3_secret_key", self.s3_secret_key),
        ]

        return [name for name, value in required_fields if not value]


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if s.is_production and s.allowed_origins == ["*"]:
        warnings.append("prod: allowed_origins=['*'] (CORS is wide open).")

    if s.enable_metrics and not s.metrics_token:
        warnings.append(
            "enable_metrics=True but metrics_token is not set: metrics/health protection relies on internal_networks."
        )

    if not s.s3_enabled:
        warnings.append("S3 storage is not configured (downloads cannot be persisted).")
    elif not s.s3_public_url:
        warnings.append("s3_enabled=True but s3_public_url is not set (result lookups fall back to the endpoint URL).")

    if not s.cobalt_instance_list:
        warnings.append("cobalt_instances is empty: YouTube downloads have no provider.")

    if not 0 <= s.watermark_opacity <= 255:
        warnings.append(f"watermark_opacity={s.watermark_opacity} is outside 0..255 and will be clamped.")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        print(f"[WARN][config] {msg}")

settings = Settings()
validate_or_warn(settings)
