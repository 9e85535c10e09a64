"""
FastAPI dependency injection.

Dependencies hand route handlers the services built at startup. Using
dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Tests can override get_app_context with their own context
- There is exactly one storage manager per process

The application context lives on `app.state.context`, set by the
lifespan handler in main.py.
"""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from ..config.settings import Settings, get_settings
from ..context import AppContext
from ..infrastructure.storage.base import StorageProvider
from ..infrastructure.storage.manager import StorageManager
from ..infrastructure.video.processor import VideoProcessor

logger = logging.getLogger(__name__)


def get_app_context(request: Request) -> AppContext:
    """Provide the process-wide application context."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        logger.error("Application context requested before startup completed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up",
        )
    return context


AppContextDep = Annotated[AppContext, Depends(get_app_context)]


def get_storage_manager(context: AppContextDep) -> StorageManager:
    return context.storage_manager


def get_storage_provider(context: AppContextDep) -> StorageProvider:
    """
    The provider active at the start of the request.

    A hot-swap during the request doesn't affect it; the next request
    picks up the new provider.
    """
    return context.storage_manager.get_provider()


def get_video_processor(context: AppContextDep) -> VideoProcessor:
    return context.video_processor


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
StorageManagerDep = Annotated[StorageManager, Depends(get_storage_manager)]
StorageProviderDep = Annotated[StorageProvider, Depends(get_storage_provider)]
VideoProcessorDep = Annotated[VideoProcessor, Depends(get_video_processor)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
