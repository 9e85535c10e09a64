"""
Pluggable object storage.

Local filesystem and S3-compatible backends behind one contract, an
encrypting decorator, and a manager that owns the active provider.
"""

from .base import SignedUrlProvider, StorageProvider
from .encrypted import (
    EncryptedSignedUrlStorageProvider,
    EncryptedStorageProvider,
    wrap_with_encryption,
)
from .factory import create_storage_provider, default_local_config
from .manager import (
    PROVIDER_CHANGED,
    PROVIDER_ERROR,
    ProviderChangeEvent,
    ProviderErrorEvent,
    StorageManager,
)

__all__ = [
    "StorageProvider",
    "SignedUrlProvider",
    "EncryptedStorageProvider",
    "EncryptedSignedUrlStorageProvider",
    "wrap_with_encryption",
    "create_storage_provider",
    "default_local_config",
    "StorageManager",
    "ProviderChangeEvent",
    "ProviderErrorEvent",
    "PROVIDER_CHANGED",
    "PROVIDER_ERROR",
]
