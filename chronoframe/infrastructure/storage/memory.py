"""
In-memory storage provider for local development.

Enables running the whole application, and testing the decorator and
manager, without a writable directory or object storage credentials.
Not suitable for production: everything is lost on restart.
"""

import logging
import mimetypes
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

from ...core.exceptions import ConfigError
from ...core.storage import MemoryStorageConfig, StorageObject, validate_key
from .base import StorageProvider

logger = logging.getLogger(__name__)


class MemoryStorageProvider(StorageProvider):
    """Dictionary-backed provider: {key: (payload, content_type, modified)}."""

    name = "memory"

    def __init__(self, config: Optional[MemoryStorageConfig] = None) -> None:
        config = config or MemoryStorageConfig()
        if not isinstance(config, MemoryStorageConfig):
            raise ConfigError("MemoryStorageProvider requires a MemoryStorageConfig")
        self.config = config
        self._objects: dict[str, tuple[bytes, Optional[str], datetime]] = {}
        logger.info("Initialized in-memory storage provider")

    async def create(
        self,
        key: str,
        payload: bytes,
        content_type: Optional[str] = None,
    ) -> StorageObject:
        validate_key(key)
        content_type = content_type or mimetypes.guess_type(key)[0]
        self._objects[key] = (bytes(payload), content_type, datetime.now(timezone.utc))
        return self._describe(key)

    async def get(self, key: str) -> Optional[bytes]:
        validate_key(key)
        entry = self._objects.get(key)
        return entry[0] if entry else None

    async def delete(self, key: str) -> None:
        validate_key(key)
        self._objects.pop(key, None)

    async def get_file_meta(self, key: str) -> Optional[StorageObject]:
        validate_key(key)
        if key not in self._objects:
            return None
        return self._describe(key)

    async def list_all(self) -> list[StorageObject]:
        prefix = self.config.prefix
        return [
            self._describe(key)
            for key in sorted(self._objects)
            if key.startswith(prefix)
        ]

    def get_public_url(self, key: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{quote(key.lstrip('/'))}"

    def _describe(self, key: str) -> StorageObject:
        payload, content_type, modified = self._objects[key]
        return StorageObject(
            key=key,
            size=len(payload),
            content_type=content_type,
            last_modified=modified,
        )
