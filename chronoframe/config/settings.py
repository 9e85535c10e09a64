"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

Storage settings describe the provider to start with. The storage manager
validates them again when it builds the provider and falls back to local
storage if they don't work.
"""

import os
from functools import lru_cache
from typing import Any, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like cors_origins), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "ChronoFrame Storage API"
    api_version: str = "v1"

    # Storage Provider
    storage_provider: str = Field(
        default="local",
        description="Active storage provider: local, s3 or memory (in-process, for development)."
    )
    storage_local_base_path: str = Field(
        default="data/storage",
        description="Root directory for local storage. Relative paths resolve against the working directory."
    )
    storage_local_base_url: str = Field(
        default="/storage",
        description="URL prefix under which local files are served."
    )
    storage_prefix: str = Field(
        default="photos/",
        description="Key prefix for new uploads and listings."
    )

    # S3-compatible Storage Configuration
    s3_bucket_name: str = Field(
        default="",
        description="Bucket name for S3/R2/MinIO storage"
    )
    s3_region: str = Field(
        default="auto",
        description="Bucket region. R2 uses 'auto'."
    )
    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="Custom endpoint for S3-compatible services (R2, MinIO). Leave empty for AWS."
    )
    s3_access_key_id: str = Field(
        default="",
        description="S3 access key ID"
    )
    s3_secret_access_key: str = Field(
        default="",
        description="S3 secret access key"
    )
    s3_cdn_url: Optional[str] = Field(
        default=None,
        description="Public CDN base URL. Used for public URLs instead of the bucket endpoint."
    )
    s3_force_path_style: bool = Field(
        default=False,
        description="Use path-style addressing. Needed for MinIO."
    )

    # Encryption at Rest
    storage_encryption_enabled: bool = Field(
        default=False,
        description="Encrypt new uploads. Can be toggled at runtime."
    )
    storage_encryption_key: Optional[str] = Field(
        default=None,
        description="Passphrase the AES-256 key is derived from. Required to read encrypted objects."
    )

    # Video Processing
    ffmpeg_path: str = Field(
        default="ffmpeg",
        description="Path to ffmpeg binary (default assumes it's in PATH)"
    )
    ffprobe_path: str = Field(
        default="ffprobe",
        description="Path to ffprobe binary"
    )
    video_metadata_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout per ffprobe attempt."
    )
    video_thumbnail_timeout_seconds: float = Field(
        default=20.0,
        description="Timeout per ffmpeg frame-grab attempt."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def local_base_path(self) -> str:
        """Absolute local storage root."""
        return os.path.abspath(self.storage_local_base_path)

    def storage_config_mapping(self) -> dict[str, Any]:
        """
        The `{provider: ...}` mapping for the configured provider.

        Not validated here; the storage manager validates when it builds
        the provider so it can fall back instead of crashing.
        """
        provider = self.storage_provider.strip().lower()
        if provider == "s3":
            return {
                "provider": "s3",
                "bucket": self.s3_bucket_name,
                "region": self.s3_region,
                "endpoint": self.s3_endpoint_url,
                "access_key_id": self.s3_access_key_id,
                "secret_access_key": self.s3_secret_access_key,
                "prefix": self.storage_prefix,
                "cdn_url": self.s3_cdn_url,
                "force_path_style": self.s3_force_path_style,
            }
        if provider == "memory":
            return {"provider": "memory", "prefix": self.storage_prefix}
        return {
            "provider": provider,
            "base_path": self.local_base_path,
            "base_url": self.storage_local_base_url,
            "prefix": self.storage_prefix,
        }

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set for the chosen provider.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on which provider and features are enabled.
        """
        missing = []

        if self.storage_provider.strip().lower() == "s3":
            if not self.s3_bucket_name:
                missing.append("S3_BUCKET_NAME")
            if not self.s3_access_key_id:
                missing.append("S3_ACCESS_KEY_ID")
            if not self.s3_secret_access_key:
                missing.append("S3_SECRET_ACCESS_KEY")

        if self.storage_encryption_enabled and not self.storage_encryption_key:
            missing.append("STORAGE_ENCRYPTION_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    Runtime-mutable values (encryption toggle/key) live in the
    application context, not here.
    For tests, you can call get_settings.cache_clear() to reset.
    """
    return Settings()
