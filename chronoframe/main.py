"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order
- Tests can build an app around their own settings

The storage manager is built once, in the lifespan handler, and reaches
request handlers through the application context (see api/dependencies.py).

For local development:
    uvicorn chronoframe.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.routes import health
from .config.settings import Settings, get_settings
from .context import build_app_context
from .core.exceptions import ConfigError, CryptoError

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    """
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Build process-lifetime services on startup.

        Provider misconfiguration doesn't stop startup: the storage
        manager falls back to local storage and the readiness check
        reports the problem.
        """
        missing_fields = settings.validate_required_fields()
        if missing_fields:
            logger.error(
                "Missing required configuration",
                extra={"missing_fields": missing_fields}
            )

        app.state.context = build_app_context(settings)

        logger.info(
            "ChronoFrame storage starting",
            extra={
                "version": __version__,
                "storage_provider": app.state.context.storage_manager.provider_name,
                "encryption_enabled": settings.storage_encryption_enabled,
            }
        )

        yield

        logger.info("ChronoFrame storage shutting down")

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    @app.exception_handler(ConfigError)
    async def config_error_handler(request, exc):
        """Misconfiguration is the operator's problem, not a missing file."""
        logger.error(
            "Storage configuration error",
            extra={"path": request.url.path, "error": str(exc)}
        )
        return JSONResponse(
            status_code=500,
            content={"detail": f"Storage is misconfigured: {exc}"}
        )

    @app.exception_handler(CryptoError)
    async def crypto_error_handler(request, exc):
        logger.error(
            "Decryption failed",
            extra={"path": request.url.path, "error": str(exc)}
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Stored object could not be decrypted. Check the encryption key."}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        In production, this prevents stack traces from leaking to clients.
        We log the full error server-side but return a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    return app


# Create the application instance
# This is what uvicorn will import
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "chronoframe.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
