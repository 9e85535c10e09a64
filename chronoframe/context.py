"""
Application context.

One AppContext is built at startup and handed to request handlers through
a FastAPI dependency. It replaces module-level singletons: tests build
their own context, and nothing reaches for global state.
"""

import logging
import os
from dataclasses import dataclass

from .config.encryption import RuntimeEncryptionSettings
from .config.settings import Settings
from .core.storage import LocalStorageConfig
from .infrastructure.storage.factory import default_local_config
from .infrastructure.storage.manager import (
    PROVIDER_CHANGED,
    PROVIDER_ERROR,
    ProviderChangeEvent,
    ProviderErrorEvent,
    StorageManager,
)
from .infrastructure.video.processor import VideoProcessor

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Process-lifetime services shared by all requests."""
    settings: Settings
    encryption: RuntimeEncryptionSettings
    storage_manager: StorageManager
    video_processor: VideoProcessor


def _log_provider_error(event: ProviderErrorEvent) -> None:
    logger.error(
        f"Storage provider {event.provider} failed: {event.error}",
        extra={"provider": event.provider}
    )


def _make_local_storage_initializer(manager_ref: list[StorageManager]):
    """
    Listener re-creating the local storage root after a swap to local.

    Receives the manager through a one-element list because listeners are
    registered before the manager exists (so they see startup errors).
    """
    def on_provider_changed(event: ProviderChangeEvent) -> None:
        logger.info(
            f"Storage provider changed from {event.old_provider} to {event.provider}",
        )
        if event.provider != "local" or not manager_ref:
            return
        config = manager_ref[0].config
        if isinstance(config, LocalStorageConfig):
            os.makedirs(config.base_path, exist_ok=True)
            logger.info(f"Local storage ready at {config.base_path}")

    return on_provider_changed


def build_app_context(settings: Settings) -> AppContext:
    """Wire up the storage manager and video processor from settings."""
    encryption = RuntimeEncryptionSettings(
        enabled=settings.storage_encryption_enabled,
        passphrase=settings.storage_encryption_key,
    )

    manager_ref: list[StorageManager] = []
    storage_manager = StorageManager(
        settings.storage_config_mapping(),
        encryption,
        fallback_config=default_local_config(settings.local_base_path),
        listeners={
            PROVIDER_ERROR: [_log_provider_error],
            PROVIDER_CHANGED: [_make_local_storage_initializer(manager_ref)],
        },
    )
    manager_ref.append(storage_manager)

    video_processor = VideoProcessor(
        storage_manager,
        ffmpeg_path=settings.ffmpeg_path,
        ffprobe_path=settings.ffprobe_path,
        metadata_timeout=settings.video_metadata_timeout_seconds,
        thumbnail_timeout=settings.video_thumbnail_timeout_seconds,
    )

    return AppContext(
        settings=settings,
        encryption=encryption,
        storage_manager=storage_manager,
        video_processor=video_processor,
    )
