"""Local filesystem storage provider."""

import asyncio
import logging
import mimetypes
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from ...core.exceptions import ConfigError, StorageIOError
from ...core.storage import LocalStorageConfig, StorageObject, validate_key
from .base import StorageProvider

logger = logging.getLogger(__name__)


class LocalStorageProvider(StorageProvider):
    """
    Stores objects as files under `config.base_path`.

    Keys map directly to relative paths. Filesystem calls are blocking, so
    each operation runs in a worker thread to keep the event loop free.
    """

    name = "local"

    def __init__(self, config: LocalStorageConfig) -> None:
        if not isinstance(config, LocalStorageConfig):
            raise ConfigError("LocalStorageProvider requires a LocalStorageConfig")

        self.config = config
        self._root = Path(config.base_path).resolve()

        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(
                f"Local storage directory is not usable: {config.base_path} ({e})"
            ) from e

        logger.info(
            "Initialized local storage provider",
            extra={"base_path": str(self._root), "prefix": config.prefix}
        )

    def _path_for(self, key: str) -> Path:
        validate_key(key)
        path = (self._root / key).resolve()
        if path != self._root and self._root not in path.parents:
            raise ConfigError(f"Storage key escapes the storage root: {key}")
        return path

    def _to_object(self, key: str, stat: os.stat_result, content_type: Optional[str] = None) -> StorageObject:
        return StorageObject(
            key=key,
            size=stat.st_size,
            content_type=content_type or mimetypes.guess_type(key)[0],
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    async def create(
        self,
        key: str,
        payload: bytes,
        content_type: Optional[str] = None,
    ) -> StorageObject:
        path = self._path_for(key)

        def write() -> os.stat_result:
            path.parent.mkdir(parents=True, exist_ok=True)
            # write to a sibling then rename so readers never see half a file
            tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
            try:
                tmp_path.write_bytes(payload)
                os.replace(tmp_path, path)
            finally:
                if tmp_path.exists():
                    tmp_path.unlink()
            return path.stat()

        try:
            stat = await asyncio.to_thread(write)
        except OSError as e:
            logger.error(
                "Failed to write object",
                extra={"key": key, "error": str(e)}
            )
            raise StorageIOError(f"Write failed for {key}: {e}") from e

        logger.debug(
            "Stored object",
            extra={"key": key, "size_bytes": len(payload)}
        )
        return self._to_object(key, stat, content_type)

    async def get(self, key: str) -> Optional[bytes]:
        path = self._path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except (FileNotFoundError, IsADirectoryError):
            return None
        except OSError as e:
            raise StorageIOError(f"Read failed for {key}: {e}") from e

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except IsADirectoryError:
            return
        except OSError as e:
            raise StorageIOError(f"Delete failed for {key}: {e}") from e

    async def get_file_meta(self, key: str) -> Optional[StorageObject]:
        path = self._path_for(key)
        try:
            stat = await asyncio.to_thread(path.stat)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageIOError(f"Stat failed for {key}: {e}") from e

        if not path.is_file():
            return None
        return self._to_object(key, stat)

    async def list_all(self) -> list[StorageObject]:
        prefix = self.config.prefix

        def walk() -> list[StorageObject]:
            start = self._root / prefix if prefix else self._root
            if not start.is_dir():
                return []
            objects = []
            for path in sorted(start.rglob("*")):
                if not path.is_file() or _is_partial_write(path):
                    continue
                key = path.relative_to(self._root).as_posix()
                objects.append(self._to_object(key, path.stat()))
            return objects

        try:
            return await asyncio.to_thread(walk)
        except OSError as e:
            raise StorageIOError(f"Listing failed: {e}") from e

    def get_public_url(self, key: str) -> str:
        base_url = self.config.base_url.rstrip("/")
        return f"{base_url}/{quote(key.lstrip('/'))}"


def _is_partial_write(path: Path) -> bool:
    return path.name.startswith(".") and path.name.endswith(".tmp")
