"""
Runtime encryption settings.

Unlike the rest of Settings, encryption can be toggled and its key rotated
while the process runs. Providers therefore never cache these values: they
ask an EncryptionSettingsSource on every encryption-sensitive call.
"""

import logging
from typing import Optional, Protocol

from ..core.crypto import derive_aes256_key
from ..core.storage import EncryptionSettings

logger = logging.getLogger(__name__)


class EncryptionSettingsSource(Protocol):
    """
    Anything that can report the current encryption settings.

    Async because a real source may read from a settings table.
    """

    async def get(self) -> EncryptionSettings:
        ...


class RuntimeEncryptionSettings:
    """
    Mutable, process-wide encryption settings.

    Stores the operator's passphrase and derives the AES key on each read,
    so a rotation takes effect on the very next storage call.
    """

    def __init__(self, enabled: bool = False, passphrase: Optional[str] = None) -> None:
        self._enabled = enabled
        self._passphrase = passphrase or None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def has_key(self) -> bool:
        return self._passphrase is not None

    async def get(self) -> EncryptionSettings:
        # snapshot both fields together; a toggle between them would mix states
        enabled, passphrase = self._enabled, self._passphrase
        key = derive_aes256_key(passphrase) if passphrase else None
        return EncryptionSettings(enabled=enabled, key=key)

    def enable(self) -> None:
        self._enabled = True
        if not self._passphrase:
            logger.warning("Storage encryption enabled but no encryption key is set")
        logger.info("Storage encryption enabled")

    def disable(self) -> None:
        self._enabled = False
        logger.info("Storage encryption disabled")

    def set_passphrase(self, passphrase: Optional[str]) -> None:
        self._passphrase = passphrase or None
        logger.info(
            "Storage encryption key updated",
            extra={"key_set": self._passphrase is not None}
        )
