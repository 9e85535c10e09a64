"""
Unit tests for storage configuration and key validation.

Configuration must fail at construction time, not at first use.
"""

from datetime import datetime, timezone

import pytest

from chronoframe.core.exceptions import ConfigError
from chronoframe.core.storage import (
    LocalStorageConfig,
    MemoryStorageConfig,
    S3StorageConfig,
    StorageObject,
    storage_config_from_mapping,
    validate_key,
)


class TestStorageObject:

    def test_is_frozen(self):
        obj = StorageObject(key="photos/a.jpg", size=10)
        with pytest.raises(AttributeError):
            obj.size = 20

    @pytest.mark.parametrize("key,content_type,expected", [
        ("photos/a.jpg", None, True),
        ("photos/a.HEIC", None, True),
        ("photos/blob", "image/png", True),
        ("videos/a.mp4", "video/mp4", False),
        ("photos/a.jpg.enc", "application/octet-stream", False),
    ])
    def test_is_image(self, key, content_type, expected):
        obj = StorageObject(
            key=key,
            size=1,
            content_type=content_type,
            last_modified=datetime.now(timezone.utc),
        )
        assert obj.is_image is expected


class TestValidateKey:

    @pytest.mark.parametrize("key", ["photos/a.jpg", "a.jpg", "deep/nested/dir/file.mov"])
    def test_accepts_relative_keys(self, key):
        assert validate_key(key) == key

    @pytest.mark.parametrize("key", [
        "",
        "   ",
        "/etc/passwd",
        "photos/../../etc/passwd",
        "..",
        "photos/",
        "bad\x00key",
    ])
    def test_rejects_malformed_keys(self, key):
        with pytest.raises(ConfigError):
            validate_key(key)


class TestLocalStorageConfig:

    def test_requires_absolute_base_path(self):
        with pytest.raises(ConfigError, match="absolute"):
            LocalStorageConfig(base_path="data/storage")

    def test_normalizes_prefix(self, tmp_path):
        config = LocalStorageConfig(base_path=str(tmp_path), prefix="/photos")
        assert config.prefix == "photos/"

    def test_empty_prefix_stays_empty(self, tmp_path):
        assert LocalStorageConfig(base_path=str(tmp_path), prefix="").prefix == ""


class TestS3StorageConfig:

    def test_missing_credentials_fail_construction(self):
        with pytest.raises(ConfigError, match="access_key_id"):
            S3StorageConfig(bucket="b", access_key_id="", secret_access_key="secret")

    def test_missing_bucket_fails_construction(self):
        with pytest.raises(ConfigError, match="bucket"):
            S3StorageConfig(bucket="", access_key_id="id", secret_access_key="secret")

    def test_valid_config(self):
        config = S3StorageConfig(bucket="b", access_key_id="id", secret_access_key="secret", prefix="p")
        assert config.provider == "s3"
        assert config.prefix == "p/"


class TestStorageConfigFromMapping:

    def test_local_with_camel_case_keys(self, tmp_path):
        config = storage_config_from_mapping({
            "provider": "local",
            "basePath": str(tmp_path),
            "baseUrl": "/files",
            "prefix": "photos/",
        })
        assert isinstance(config, LocalStorageConfig)
        assert config.base_url == "/files"

    def test_s3_with_snake_case_keys(self):
        config = storage_config_from_mapping({
            "provider": "S3",
            "bucket_name": "gallery",
            "access_key_id": "id",
            "secret_access_key": "secret",
            "endpoint_url": "http://minio:9000",
            "forcePathStyle": True,
        })
        assert isinstance(config, S3StorageConfig)
        assert config.bucket == "gallery"
        assert config.endpoint == "http://minio:9000"
        assert config.force_path_style is True

    def test_s3_without_credentials_is_config_error(self):
        with pytest.raises(ConfigError):
            storage_config_from_mapping({"provider": "s3", "bucket": "gallery"})

    def test_memory(self):
        assert isinstance(storage_config_from_mapping({"provider": "memory"}), MemoryStorageConfig)

    def test_ignores_unknown_keys(self):
        config = storage_config_from_mapping({"provider": "memory", "label": "dev"})
        assert isinstance(config, MemoryStorageConfig)

    @pytest.mark.parametrize("data", [{}, {"provider": ""}, {"provider": "ftp"}])
    def test_unknown_provider(self, data):
        with pytest.raises(ConfigError):
            storage_config_from_mapping(data)
