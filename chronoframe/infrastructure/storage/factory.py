"""
Provider factory.

Centralizes the mapping from configuration to provider class so that the
storage manager, the startup path and tests all build providers the
same way.
"""

import logging
import os
from typing import Any, Mapping, Optional, Union

from ...config.encryption import EncryptionSettingsSource
from ...core.exceptions import ConfigError
from ...core.storage import (
    LocalStorageConfig,
    MemoryStorageConfig,
    S3StorageConfig,
    StorageConfig,
    storage_config_from_mapping,
)
from .base import StorageProvider
from .encrypted import wrap_with_encryption

logger = logging.getLogger(__name__)


def default_local_config(root: Optional[str] = None) -> LocalStorageConfig:
    """The known-good configuration used when nothing else works."""
    base_path = os.path.abspath(root or os.path.join(os.getcwd(), "data", "storage"))
    return LocalStorageConfig(base_path=base_path, base_url="/storage", prefix="photos/")


def create_storage_provider(
    config: Union[StorageConfig, Mapping[str, Any]],
    encryption: Optional[EncryptionSettingsSource] = None,
) -> StorageProvider:
    """
    Build a provider from a typed config or a `{provider: ...}` mapping.

    Validation happens here, eagerly: any problem raises ConfigError
    before the provider is handed out. When `encryption` is given, the
    provider is wrapped in the encrypting decorator.
    """
    if isinstance(config, Mapping):
        config = storage_config_from_mapping(config)

    provider: StorageProvider
    if isinstance(config, LocalStorageConfig):
        from .local import LocalStorageProvider
        provider = LocalStorageProvider(config)
    elif isinstance(config, S3StorageConfig):
        from .s3 import S3StorageProvider
        provider = S3StorageProvider(config)
    elif isinstance(config, MemoryStorageConfig):
        from .memory import MemoryStorageProvider
        provider = MemoryStorageProvider(config)
    else:
        raise ConfigError(f"Unsupported storage configuration: {type(config).__name__}")

    if encryption is not None:
        provider = wrap_with_encryption(provider, encryption)

    return provider
