"""
Shared test fixtures.

Fixtures build real objects (in-memory or temp-directory providers)
rather than mocks wherever practical.
"""

import io

import pytest
from PIL import Image

from chronoframe.config.encryption import RuntimeEncryptionSettings
from chronoframe.core.storage import LocalStorageConfig, MemoryStorageConfig
from chronoframe.infrastructure.storage.local import LocalStorageProvider
from chronoframe.infrastructure.storage.memory import MemoryStorageProvider


def make_jpeg(width: int = 64, height: int = 48, color: str = "red") -> bytes:
    """Small solid-color JPEG for image and thumbnail tests."""
    output = io.BytesIO()
    Image.new("RGB", (width, height), color).save(output, format="JPEG")
    return output.getvalue()


@pytest.fixture
def memory_provider() -> MemoryStorageProvider:
    return MemoryStorageProvider(MemoryStorageConfig())


@pytest.fixture
def local_config(tmp_path) -> LocalStorageConfig:
    return LocalStorageConfig(
        base_path=str(tmp_path / "storage"),
        base_url="/storage",
        prefix="photos/",
    )


@pytest.fixture
def local_provider(local_config) -> LocalStorageProvider:
    return LocalStorageProvider(local_config)


@pytest.fixture
def encryption_on() -> RuntimeEncryptionSettings:
    return RuntimeEncryptionSettings(enabled=True, passphrase="correct horse battery staple")


@pytest.fixture
def encryption_off() -> RuntimeEncryptionSettings:
    return RuntimeEncryptionSettings(enabled=False, passphrase="correct horse battery staple")
