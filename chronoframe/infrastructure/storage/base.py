"""
Storage provider contract.

Two interfaces instead of one:
- StorageProvider: what every backend must do.
- SignedUrlProvider: the optional presigned-URL capability, which only
  object stores can honour meaningfully.

Callers that need a signed URL check `isinstance(provider, SignedUrlProvider)`
and fall back to the public URL otherwise.
"""

import posixpath
from abc import ABC, abstractmethod
from typing import Any, Optional

from ...core.storage import StorageConfig, StorageObject


class StorageProvider(ABC):
    """Uniform contract over local and remote object storage."""

    name: str = "unknown"
    config: StorageConfig

    @abstractmethod
    async def create(
        self,
        key: str,
        payload: bytes,
        content_type: Optional[str] = None,
    ) -> StorageObject:
        """Write `payload` at `key`, replacing any existing object."""
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Return raw bytes, or None when the object does not exist."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the object. Deleting a missing key is not an error."""
        ...

    @abstractmethod
    async def get_file_meta(self, key: str) -> Optional[StorageObject]:
        """Metadata without reading the payload, or None when absent."""
        ...

    @abstractmethod
    async def list_all(self) -> list[StorageObject]:
        """Every object under the provider's prefix."""
        ...

    async def list_images(self) -> list[StorageObject]:
        """Objects recognized as images by extension or content type."""
        return [obj for obj in await self.list_all() if obj.is_image]

    @abstractmethod
    def get_public_url(self, key: str) -> str:
        """Deterministic URL for `key`. Never touches the network."""
        ...

    def key_for(self, filename: str) -> str:
        """Default key for a new upload: the configured prefix + filename."""
        return posixpath.join(self.config.prefix, filename.lstrip("/"))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


class SignedUrlProvider(StorageProvider):
    """Providers that can issue time-limited download URLs."""

    @abstractmethod
    async def get_signed_url(
        self,
        key: str,
        expires_in: int = 3600,
        options: Optional[dict[str, Any]] = None,
    ) -> str:
        """
        Generate a temporary URL for `key`.

        `options` may carry `content_type` and `content_disposition`
        response overrides.
        """
        ...
