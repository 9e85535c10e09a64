"""
Storage domain models.

These describe stored objects and backend configuration without knowing
anything about boto3, the filesystem or HTTP. Configuration objects
validate themselves on construction so that a bad configuration fails
when a provider is built, not on the first upload hours later.
"""

import os
import posixpath
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Mapping, Optional, Union

from .exceptions import ConfigError


IMAGE_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic", ".heif",
    ".avif", ".tiff", ".tif", ".bmp",
})

GENERIC_BINARY_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class StorageObject:
    """
    A stored item, described without its payload.

    Frozen because it is a snapshot of backend metadata at one point in
    time; a newer snapshot is a new object.
    """
    key: str
    size: int
    content_type: Optional[str] = None
    last_modified: Optional[datetime] = None

    @property
    def is_image(self) -> bool:
        if self.content_type and self.content_type.startswith("image/"):
            return True
        return posixpath.splitext(self.key)[1].lower() in IMAGE_EXTENSIONS


@dataclass(frozen=True)
class EncryptionSettings:
    """Encryption state at the moment it was read."""
    enabled: bool
    key: Optional[bytes] = None  # 32-byte AES key, None if not configured


def validate_key(key: str) -> str:
    """
    Reject keys that could escape the storage root or confuse backends.

    Returns the key unchanged when valid.
    """
    if not key or not key.strip():
        raise ConfigError("Storage key must not be empty")
    if "\x00" in key:
        raise ConfigError(f"Storage key contains a NUL byte: {key!r}")
    if key.startswith("/") or key.startswith("\\"):
        raise ConfigError(f"Storage key must be relative: {key}")
    parts = key.replace("\\", "/").split("/")
    if any(part == ".." for part in parts):
        raise ConfigError(f"Storage key must not contain '..' segments: {key}")
    if key.endswith("/"):
        raise ConfigError(f"Storage key must name an object, not a directory: {key}")
    return key


def _normalize_prefix(prefix: str) -> str:
    prefix = (prefix or "").strip().replace("\\", "/").lstrip("/")
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    return prefix


# ---------------------------------------------------------------------------
# Provider Configurations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LocalStorageConfig:
    """Filesystem-backed storage rooted at an absolute directory."""
    base_path: str
    base_url: str = "/storage"
    prefix: str = "photos/"
    provider: Literal["local"] = "local"

    def __post_init__(self) -> None:
        if not self.base_path:
            raise ConfigError("Local storage requires base_path")
        if not os.path.isabs(self.base_path):
            raise ConfigError(f"Local storage base_path must be absolute: {self.base_path}")
        object.__setattr__(self, "prefix", _normalize_prefix(self.prefix))


@dataclass(frozen=True)
class S3StorageConfig:
    """
    S3-compatible object storage (AWS S3, Cloudflare R2, MinIO).

    Credentials are required: relying on ambient AWS credentials would make
    a misconfigured deployment look healthy until the first write.
    """
    bucket: str
    access_key_id: str
    secret_access_key: str
    region: str = "auto"  # R2 uses 'auto' for region
    endpoint: Optional[str] = None
    prefix: str = ""
    cdn_url: Optional[str] = None
    force_path_style: bool = False
    max_keys: int = 1000
    provider: Literal["s3"] = "s3"

    def __post_init__(self) -> None:
        missing = [
            name for name in ("bucket", "access_key_id", "secret_access_key")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigError(
                f"S3 storage configuration is missing required fields: {', '.join(missing)}"
            )
        if self.max_keys < 1:
            raise ConfigError("max_keys must be positive")
        object.__setattr__(self, "prefix", _normalize_prefix(self.prefix))


@dataclass(frozen=True)
class MemoryStorageConfig:
    """In-memory storage for local development and tests."""
    base_url: str = "memory://storage"
    prefix: str = ""
    provider: Literal["memory"] = "memory"

    def __post_init__(self) -> None:
        object.__setattr__(self, "prefix", _normalize_prefix(self.prefix))


StorageConfig = Union[LocalStorageConfig, S3StorageConfig, MemoryStorageConfig]


# camelCase keys as they appear in stored provider settings
_KEY_ALIASES = {
    "basePath": "base_path",
    "baseUrl": "base_url",
    "accessKeyId": "access_key_id",
    "secretAccessKey": "secret_access_key",
    "cdnUrl": "cdn_url",
    "forcePathStyle": "force_path_style",
    "maxKeys": "max_keys",
    "endpointUrl": "endpoint",
    "endpoint_url": "endpoint",
    "bucketName": "bucket",
    "bucket_name": "bucket",
}

_CONFIG_TYPES = {
    "local": LocalStorageConfig,
    "s3": S3StorageConfig,
    "memory": MemoryStorageConfig,
}


def storage_config_from_mapping(data: Mapping[str, Any]) -> StorageConfig:
    """
    Build a typed configuration from a `{provider: ..., ...}` mapping.

    Unknown keys are ignored so settings can carry extra UI metadata.
    """
    if not data:
        raise ConfigError("Storage configuration is empty")

    provider = str(data.get("provider") or "").strip().lower()
    config_type = _CONFIG_TYPES.get(provider)
    if config_type is None:
        raise ConfigError(f"Unknown storage provider: {provider or '<missing>'}")

    fields = set(config_type.__dataclass_fields__) - {"provider"}
    kwargs = {}
    for raw_key, value in data.items():
        key = _KEY_ALIASES.get(raw_key, raw_key)
        if key in fields and value is not None:
            kwargs[key] = value

    try:
        return config_type(**kwargs)
    except TypeError as e:
        raise ConfigError(f"Invalid {provider} storage configuration: {e}") from e
