"""
S3-compatible object storage provider.

Works with AWS S3, Cloudflare R2 and MinIO through boto3, since all three
speak the same API. The client is built in the constructor so that a bad
configuration surfaces when the provider is created, which is what lets
the storage manager fall back to local storage predictably.

boto3 is synchronous. Every call runs in a worker thread so a slow bucket
doesn't stall the event loop.
"""

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ...core.exceptions import ConfigError, StorageIOError
from ...core.storage import S3StorageConfig, StorageObject, validate_key
from .base import SignedUrlProvider

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class S3StorageProvider(SignedUrlProvider):
    """Object storage provider backed by an S3 bucket."""

    name = "s3"

    def __init__(self, config: S3StorageConfig) -> None:
        if not isinstance(config, S3StorageConfig):
            raise ConfigError("S3StorageProvider requires an S3StorageConfig")

        self.config = config

        boto_config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path" if config.force_path_style else "auto"},
        )

        client_kwargs: dict[str, Any] = {
            "aws_access_key_id": config.access_key_id,
            "aws_secret_access_key": config.secret_access_key,
            "region_name": config.region,
            "config": boto_config,
        }
        if config.endpoint:
            client_kwargs["endpoint_url"] = config.endpoint

        try:
            self._s3_client = boto3.client("s3", **client_kwargs)
        except (BotoCoreError, ValueError) as e:
            raise ConfigError(f"Invalid S3 configuration: {e}") from e

        logger.info(
            "Initialized S3 storage provider",
            extra={
                "bucket": config.bucket,
                "endpoint": config.endpoint,
                "region": config.region,
            }
        )

    # -- helpers --------------------------------------------------------------

    @staticmethod
    def _is_not_found(error: Exception) -> bool:
        response = getattr(error, "response", None) or {}
        code = str((response.get("Error") or {}).get("Code") or "")
        status = (response.get("ResponseMetadata") or {}).get("HTTPStatusCode")
        return status == 404 or code in _NOT_FOUND_CODES

    async def _call(self, method: str, **kwargs: Any) -> Any:
        return await asyncio.to_thread(getattr(self._s3_client, method), **kwargs)

    # -- contract -------------------------------------------------------------

    async def create(
        self,
        key: str,
        payload: bytes,
        content_type: Optional[str] = None,
    ) -> StorageObject:
        validate_key(key)
        params: dict[str, Any] = {
            "Bucket": self.config.bucket,
            "Key": key,
            "Body": payload,
        }
        if content_type:
            params["ContentType"] = content_type

        try:
            await self._call("put_object", **params)
        except (BotoCoreError, ClientError) as e:
            logger.error(
                "Failed to upload object",
                extra={"key": key, "bucket": self.config.bucket, "error": str(e)}
            )
            raise StorageIOError(f"Upload failed for {key}: {e}") from e

        logger.debug(
            "Uploaded object",
            extra={"key": key, "size_bytes": len(payload)}
        )
        return StorageObject(key=key, size=len(payload), content_type=content_type)

    async def get(self, key: str) -> Optional[bytes]:
        validate_key(key)
        try:
            response = await self._call("get_object", Bucket=self.config.bucket, Key=key)
            return await asyncio.to_thread(response["Body"].read)
        except ClientError as e:
            if self._is_not_found(e):
                return None
            raise StorageIOError(f"Download failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageIOError(f"Download failed for {key}: {e}") from e

    async def delete(self, key: str) -> None:
        validate_key(key)
        try:
            # S3 delete_object succeeds for missing keys
            await self._call("delete_object", Bucket=self.config.bucket, Key=key)
        except ClientError as e:
            if self._is_not_found(e):
                return
            raise StorageIOError(f"Delete failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageIOError(f"Delete failed for {key}: {e}") from e

    async def get_file_meta(self, key: str) -> Optional[StorageObject]:
        validate_key(key)
        try:
            head = await self._call("head_object", Bucket=self.config.bucket, Key=key)
        except ClientError as e:
            if self._is_not_found(e):
                return None
            raise StorageIOError(f"Metadata lookup failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageIOError(f"Metadata lookup failed for {key}: {e}") from e

        return StorageObject(
            key=key,
            size=head.get("ContentLength", 0),
            content_type=head.get("ContentType"),
            last_modified=head.get("LastModified"),
        )

    async def list_all(self) -> list[StorageObject]:
        def collect() -> list[StorageObject]:
            paginator = self._s3_client.get_paginator("list_objects_v2")
            pages = paginator.paginate(
                Bucket=self.config.bucket,
                Prefix=self.config.prefix,
                PaginationConfig={"PageSize": self.config.max_keys},
            )
            objects = []
            for page in pages:
                for item in page.get("Contents", []):
                    if item["Key"].endswith("/"):
                        continue
                    objects.append(StorageObject(
                        key=item["Key"],
                        size=item.get("Size", 0),
                        last_modified=item.get("LastModified"),
                    ))
            return objects

        try:
            return await asyncio.to_thread(collect)
        except (BotoCoreError, ClientError) as e:
            logger.error(
                "Failed to list objects",
                extra={"bucket": self.config.bucket, "error": str(e)}
            )
            raise StorageIOError(f"Listing failed: {e}") from e

    def get_public_url(self, key: str) -> str:
        """
        Build the public URL for `key`.

        Preference: CDN URL, then the custom endpoint (path-style), then
        the standard AWS virtual-hosted URL.
        """
        quoted = quote(key.lstrip("/"))
        if self.config.cdn_url:
            return f"{self.config.cdn_url.rstrip('/')}/{quoted}"
        if self.config.endpoint:
            return f"{self.config.endpoint.rstrip('/')}/{self.config.bucket}/{quoted}"
        region = self.config.region if self.config.region != "auto" else "us-east-1"
        return f"https://{self.config.bucket}.s3.{region}.amazonaws.com/{quoted}"

    async def get_signed_url(
        self,
        key: str,
        expires_in: int = 3600,
        options: Optional[dict[str, Any]] = None,
    ) -> str:
        validate_key(key)
        options = options or {}
        params = {"Bucket": self.config.bucket, "Key": key}
        if options.get("content_type"):
            params["ResponseContentType"] = options["content_type"]
        if options.get("content_disposition"):
            params["ResponseContentDisposition"] = options["content_disposition"]

        try:
            return await self._call(
                "generate_presigned_url",
                ClientMethod="get_object",
                Params=params,
                ExpiresIn=int(expires_in),
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(
                "Failed to generate presigned URL",
                extra={"key": key, "error": str(e)}
            )
            raise StorageIOError(f"Presigned URL generation failed for {key}: {e}") from e
