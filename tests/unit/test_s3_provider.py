"""
Tests for the S3 provider against moto's in-process AWS mock.
"""

import boto3
import pytest
from moto import mock_aws

from chronoframe.core.exceptions import ConfigError
from chronoframe.core.storage import S3StorageConfig
from chronoframe.infrastructure.storage.base import SignedUrlProvider
from chronoframe.infrastructure.storage.factory import create_storage_provider
from chronoframe.infrastructure.storage.s3 import S3StorageProvider

TEST_BUCKET_NAME = "chronoframe-test"


@pytest.fixture
def s3_config() -> S3StorageConfig:
    return S3StorageConfig(
        bucket=TEST_BUCKET_NAME,
        access_key_id="testing",
        secret_access_key="testing",
        region="us-east-1",
        prefix="photos/",
    )


@pytest.fixture
def s3_provider(s3_config):
    with mock_aws():
        boto3.client(
            "s3",
            region_name="us-east-1",
            aws_access_key_id="testing",
            aws_secret_access_key="testing",
        ).create_bucket(Bucket=TEST_BUCKET_NAME)
        yield S3StorageProvider(s3_config)


class TestS3ProviderConstruction:

    def test_missing_credentials_fail_at_construction(self):
        with pytest.raises(ConfigError):
            create_storage_provider({"provider": "s3", "bucket": TEST_BUCKET_NAME, "access_key_id": ""})

    def test_implements_signed_url_capability(self, s3_provider):
        assert isinstance(s3_provider, SignedUrlProvider)


class TestS3ProviderOperations:

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, s3_provider):
        assert await s3_provider.get("photos/missing.jpg") is None

    @pytest.mark.asyncio
    async def test_create_then_get(self, s3_provider):
        stored = await s3_provider.create("photos/a.jpg", b"jpeg-bytes", "image/jpeg")

        assert stored.size == len(b"jpeg-bytes")
        assert await s3_provider.get("photos/a.jpg") == b"jpeg-bytes"

    @pytest.mark.asyncio
    async def test_file_meta(self, s3_provider):
        assert await s3_provider.get_file_meta("photos/a.jpg") is None

        await s3_provider.create("photos/a.jpg", b"12345", "image/jpeg")
        meta = await s3_provider.get_file_meta("photos/a.jpg")

        assert meta.size == 5
        assert meta.content_type == "image/jpeg"
        assert meta.last_modified is not None

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, s3_provider):
        await s3_provider.create("photos/a.jpg", b"data")

        await s3_provider.delete("photos/a.jpg")
        await s3_provider.delete("photos/a.jpg")

        assert await s3_provider.get("photos/a.jpg") is None

    @pytest.mark.asyncio
    async def test_listing_is_scoped_to_prefix(self, s3_provider):
        await s3_provider.create("photos/a.jpg", b"1")
        await s3_provider.create("photos/b.mov", b"2")
        await s3_provider.create("thumbnails/a.jpg", b"3")

        all_keys = sorted(obj.key for obj in await s3_provider.list_all())
        image_keys = [obj.key for obj in await s3_provider.list_images()]

        assert all_keys == ["photos/a.jpg", "photos/b.mov"]
        assert image_keys == ["photos/a.jpg"]

    @pytest.mark.asyncio
    async def test_signed_url(self, s3_provider):
        url = await s3_provider.get_signed_url(
            "photos/a.jpg",
            expires_in=60,
            options={"content_type": "image/jpeg"},
        )

        assert TEST_BUCKET_NAME in url
        assert "photos/a.jpg" in url
        assert "Expires=60" in url or "X-Amz-Expires=60" in url


class TestS3PublicUrl:

    def _provider(self, **overrides) -> S3StorageProvider:
        config = dict(
            bucket="gallery",
            access_key_id="id",
            secret_access_key="secret",
            region="eu-west-1",
        )
        config.update(overrides)
        return S3StorageProvider(S3StorageConfig(**config))

    def test_aws_url(self):
        assert self._provider().get_public_url("photos/a.jpg") == (
            "https://gallery.s3.eu-west-1.amazonaws.com/photos/a.jpg"
        )

    def test_custom_endpoint_url(self):
        provider = self._provider(endpoint="http://minio:9000/")
        assert provider.get_public_url("photos/a.jpg") == "http://minio:9000/gallery/photos/a.jpg"

    def test_cdn_url_wins(self):
        provider = self._provider(endpoint="http://minio:9000", cdn_url="https://cdn.example.com")
        assert provider.get_public_url("photos/a.jpg") == "https://cdn.example.com/photos/a.jpg"
