"""
Transparent at-rest encryption for any storage provider.

EncryptedStorageProvider wraps an inner provider and keeps its contract:
callers write plaintext and read plaintext, while the backing store only
ever holds encrypted payloads (once encryption is enabled).

Behaviour worth knowing:
- Settings are read on every call, so enabling encryption or rotating the
  key takes effect without rebuilding the provider.
- Reads accept both encrypted and plaintext objects. Stores that predate
  encryption keep working.
- Writes never double-encrypt. A retried upload that already carries an
  encrypted payload is stored as-is.
- An encrypted object with no key configured is a hard failure. Serving
  ciphertext (or pretending the file is missing) would hide the problem.
"""

import logging
import mimetypes
from typing import Any, Optional

from ...config.encryption import EncryptionSettingsSource
from ...core.crypto import decrypt_buffer, encrypt_buffer, is_encrypted_payload
from ...core.exceptions import ConfigError, ObjectNotFoundError, RetryExhaustedError
from ...core.retry import RetryPolicy, fixed_backoff, with_retry
from ...core.storage import GENERIC_BINARY_TYPE, StorageObject
from .base import SignedUrlProvider, StorageProvider

logger = logging.getLogger(__name__)


class EncryptedStorageProvider(StorageProvider):
    """Decorator adding encryption on write and decryption on read."""

    def __init__(
        self,
        inner: StorageProvider,
        settings: EncryptionSettingsSource,
        *,
        poll_attempts: int = 5,
        poll_delay: float = 0.5,
    ) -> None:
        self.inner = inner
        self.settings = settings
        self.name = inner.name
        self.config = inner.config
        # Newly created objects may not be visible yet on eventually
        # consistent stores. Migrations poll with these bounds before
        # giving up.
        self._visibility_policy = RetryPolicy(
            max_attempts=poll_attempts,
            backoff=fixed_backoff(poll_delay),
            retry_condition=lambda e: isinstance(e, ObjectNotFoundError),
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} inner={self.inner!r}>"

    # -- writes ---------------------------------------------------------------

    async def create(
        self,
        key: str,
        payload: bytes,
        content_type: Optional[str] = None,
        skip_encryption: bool = False,
    ) -> StorageObject:
        settings = await self.settings.get()
        if not settings.enabled or skip_encryption:
            return await self.inner.create(key, payload, content_type)

        if settings.key is None:
            raise ConfigError("Storage encryption is enabled but encryption key is not set")

        if is_encrypted_payload(payload):
            logger.debug("Payload already encrypted, storing as-is", extra={"key": key})
            stored = payload
        else:
            stored = encrypt_buffer(payload, settings.key)

        # the original content type is not recoverable from the backend
        return await self.inner.create(key, stored, GENERIC_BINARY_TYPE)

    async def encrypt_file(self, key: str) -> None:
        """
        Encrypt an object that is already stored in plaintext.

        Polls for the object first because the migration is often triggered
        right after an upload. Not safe to run concurrently for the same key.
        """
        settings = await self.settings.get()
        if settings.key is None:
            raise ConfigError("Encryption key is not set")

        payload = await self._wait_for_object(key)
        if is_encrypted_payload(payload):
            logger.info("File already encrypted, skipping", extra={"key": key})
            return

        logger.info("Encrypting file", extra={"key": key, "size_bytes": len(payload)})
        await self.inner.create(key, encrypt_buffer(payload, settings.key), GENERIC_BINARY_TYPE)
        logger.info("File encrypted", extra={"key": key})

    async def decrypt_file(self, key: str) -> None:
        """Inverse migration: store the object in plaintext again."""
        payload = await self._wait_for_object(key)
        if not is_encrypted_payload(payload):
            logger.info("File not encrypted, skipping", extra={"key": key})
            return

        settings = await self.settings.get()
        if settings.key is None:
            raise ConfigError("Encrypted object found but encryption key is not set")

        plaintext = decrypt_buffer(payload, settings.key)
        await self.inner.create(key, plaintext, mimetypes.guess_type(key)[0])
        logger.info("File decrypted", extra={"key": key})

    async def _wait_for_object(self, key: str) -> bytes:
        attempt = 0

        async def fetch() -> bytes:
            nonlocal attempt
            attempt += 1
            meta = await self.inner.get_file_meta(key)
            logger.debug(
                "Checking object visibility",
                extra={"key": key, "exists": meta is not None, "attempt": attempt}
            )
            payload = await self.inner.get(key)
            if payload is None:
                raise ObjectNotFoundError(key)
            return payload

        try:
            return await with_retry(
                fetch,
                self._visibility_policy,
                logger,
                operation_name=f"fetch {key}",
            )
        except RetryExhaustedError as e:
            logger.error("File not found after all retries", extra={"key": key})
            raise ObjectNotFoundError(key) from e

    # -- reads ----------------------------------------------------------------

    async def get(self, key: str) -> Optional[bytes]:
        payload = await self.inner.get(key)
        if payload is None:
            return None
        if not is_encrypted_payload(payload):
            return payload

        settings = await self.settings.get()
        if settings.key is None:
            raise ConfigError("Encrypted object found but encryption key is not set")
        return decrypt_buffer(payload, settings.key)

    async def is_encrypted(self, key: str) -> Optional[bool]:
        """Whether the stored object is encrypted. None if it doesn't exist."""
        payload = await self.inner.get(key)
        if payload is None:
            return None
        return is_encrypted_payload(payload)

    # -- pure delegation ------------------------------------------------------

    async def delete(self, key: str) -> None:
        await self.inner.delete(key)

    async def get_file_meta(self, key: str) -> Optional[StorageObject]:
        return await self.inner.get_file_meta(key)

    async def list_all(self) -> list[StorageObject]:
        return await self.inner.list_all()

    async def list_images(self) -> list[StorageObject]:
        return await self.inner.list_images()

    def get_public_url(self, key: str) -> str:
        return self.inner.get_public_url(key)

    def key_for(self, filename: str) -> str:
        return self.inner.key_for(filename)


class EncryptedSignedUrlStorageProvider(EncryptedStorageProvider, SignedUrlProvider):
    """Encrypting decorator for providers that can also sign URLs."""

    inner: SignedUrlProvider

    async def get_signed_url(
        self,
        key: str,
        expires_in: int = 3600,
        options: Optional[dict[str, Any]] = None,
    ) -> str:
        return await self.inner.get_signed_url(key, expires_in, options)


def wrap_with_encryption(
    provider: StorageProvider,
    settings: EncryptionSettingsSource,
    **kwargs: Any,
) -> EncryptedStorageProvider:
    """
    Wrap `provider`, preserving its optional capabilities.

    The returned decorator implements SignedUrlProvider only when the
    wrapped provider does.
    """
    if isinstance(provider, SignedUrlProvider):
        return EncryptedSignedUrlStorageProvider(provider, settings, **kwargs)
    return EncryptedStorageProvider(provider, settings, **kwargs)
