"""
Process-wide holder of the active storage provider.

The manager owns exactly one provider at a time. Request handlers read it
through get_provider(); an administrator can hot-swap it with
switch_provider(). Readers never see a half-built provider because the new
one is fully constructed before the reference is replaced.

A misconfigured provider never leaves the process without storage:
- at startup the manager falls back to a known-good local configuration,
- on a hot-swap it keeps the provider that was already working.
Either way a "provider-error" event is emitted so operators find out.

The fallback root must be writable. If it is not, construction raises
ConfigError naming both failures, since there is nothing left to serve from.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Literal, Mapping, Optional, Union

from ...config.encryption import EncryptionSettingsSource
from ...core.exceptions import ChronoFrameError, ConfigError
from ...core.storage import LocalStorageConfig, StorageConfig
from .base import StorageProvider
from .factory import create_storage_provider, default_local_config

logger = logging.getLogger(__name__)


PROVIDER_CHANGED = "provider-changed"
PROVIDER_ERROR = "provider-error"

EventName = Literal["provider-changed", "provider-error"]


@dataclass(frozen=True)
class ProviderChangeEvent:
    """Emitted after a successful swap. Carries provider names, not instances."""
    old_provider: Optional[str]
    provider: str


@dataclass(frozen=True)
class ProviderErrorEvent:
    """Emitted when a provider could not be built."""
    provider: str
    error: BaseException


Listener = Callable[[Any], None]
ConfigInput = Union[StorageConfig, Mapping[str, Any]]

# errors that mean "this configuration can't produce a provider"
_CONSTRUCTION_ERRORS = (ChronoFrameError, OSError, ValueError)


def _provider_name(config: ConfigInput) -> str:
    if isinstance(config, Mapping):
        return str(config.get("provider") or "unknown")
    return getattr(config, "provider", "unknown")


class StorageManager:
    """
    Owns the active provider and notifies listeners about changes.

    Construct one per process at startup and pass it around through the
    application context.
    """

    def __init__(
        self,
        config: ConfigInput,
        encryption: Optional[EncryptionSettingsSource] = None,
        *,
        fallback_config: Optional[LocalStorageConfig] = None,
        listeners: Optional[Mapping[str, list[Listener]]] = None,
    ) -> None:
        self._encryption = encryption
        self._fallback_config = fallback_config or default_local_config()
        self._listeners: dict[str, list[Listener]] = {PROVIDER_CHANGED: [], PROVIDER_ERROR: []}
        self._swap_lock = threading.Lock()
        self.last_error: Optional[BaseException] = None

        for event, callbacks in (listeners or {}).items():
            for callback in callbacks:
                self.on(event, callback)

        try:
            self._provider = self._build(config)
            self._config = self._provider.config
        except _CONSTRUCTION_ERRORS as e:
            name = _provider_name(config)
            logger.error(
                f"Failed to initialize storage provider '{name}': {e}",
                extra={"provider": name, "error": str(e)}
            )
            logger.warning(
                "Falling back to local storage due to configuration error",
                extra={"base_path": self._fallback_config.base_path}
            )
            self.last_error = e
            self._emit(PROVIDER_ERROR, ProviderErrorEvent(provider=name, error=e))

            try:
                self._provider = self._build(self._fallback_config)
            except _CONSTRUCTION_ERRORS as fallback_error:
                logger.critical(
                    f"Fallback local storage is unusable too: {fallback_error}",
                    extra={
                        "provider": name,
                        "error": str(e),
                        "fallback_error": str(fallback_error),
                        "base_path": self._fallback_config.base_path,
                    }
                )
                raise ConfigError(
                    f"Storage provider '{name}' failed ({e}) and the fallback local "
                    f"storage at {self._fallback_config.base_path} failed ({fallback_error})"
                ) from fallback_error
            self._config = self._fallback_config

        logger.info(
            "Storage manager ready",
            extra={"provider": self._provider.name}
        )

    def _build(self, config: ConfigInput) -> StorageProvider:
        return create_storage_provider(config, self._encryption)

    # -- access ---------------------------------------------------------------

    def get_provider(self) -> StorageProvider:
        """The active provider. Safe to call from any task."""
        return self._provider

    @property
    def provider_name(self) -> str:
        return self._provider.name

    @property
    def config(self) -> StorageConfig:
        return self._config

    # -- hot swap -------------------------------------------------------------

    def switch_provider(self, config: ConfigInput) -> bool:
        """
        Replace the active provider.

        Returns True on success. On failure the current provider stays
        active, a provider-error event is emitted and False is returned.
        """
        with self._swap_lock:
            name = _provider_name(config)
            try:
                new_provider = self._build(config)
            except _CONSTRUCTION_ERRORS as e:
                logger.error(
                    f"Failed to switch storage provider to '{name}': {e}",
                    extra={"provider": name, "active_provider": self._provider.name}
                )
                self.last_error = e
                self._emit(PROVIDER_ERROR, ProviderErrorEvent(provider=name, error=e))
                return False

            old_name = self._provider.name
            self._provider = new_provider
            self._config = new_provider.config
            self.last_error = None

        logger.info(
            f"Storage provider changed from {old_name} to {new_provider.name}",
            extra={"old_provider": old_name, "provider": new_provider.name}
        )
        self._emit(PROVIDER_CHANGED, ProviderChangeEvent(old_provider=old_name, provider=new_provider.name))
        return True

    # -- events ---------------------------------------------------------------

    def on(self, event: EventName, listener: Listener) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown storage event: {event}")
        self._listeners[event].append(listener)

    def off(self, event: EventName, listener: Listener) -> None:
        callbacks = self._listeners.get(event, [])
        if listener in callbacks:
            callbacks.remove(listener)

    def _emit(self, event: str, payload: Any) -> None:
        # listeners run synchronously in registration order
        for listener in list(self._listeners[event]):
            try:
                listener(payload)
            except Exception:
                logger.exception(
                    "Storage event listener failed",
                    extra={"event": event}
                )
