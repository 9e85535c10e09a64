"""
Application configuration.

Static configuration comes from environment variables via Pydantic
settings; encryption settings can change at runtime.
"""

from .encryption import EncryptionSettingsSource, RuntimeEncryptionSettings
from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "EncryptionSettingsSource",
    "RuntimeEncryptionSettings",
]
