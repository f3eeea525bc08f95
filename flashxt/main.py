"""FastAPI application for device discovery, bundle acquisition and flashing"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flashxt.config import Settings
from flashxt.core.database import create_db_engine, create_session_factory
from flashxt.core.errors import DownloadFailure, ExtractionExhausted, FlashCoreError, UnsafeDestination
from flashxt.core.logging import setup_logging
from flashxt.routes import bundles, devices, flash
from flashxt.utils.action_log import SqlActionLogger
from flashxt.utils.bundles import BundleAcquirer
from flashxt.utils.tools import DeviceTools

logger = logging.getLogger(__name__)


def error_payload(exc: FlashCoreError):
    """HTTP status and body for a core error that reached the route layer"""
    if isinstance(exc, DownloadFailure):
        return 502, {"detail": exc.message, "url": exc.url}
    if isinstance(exc, ExtractionExhausted):
        return 422, {
            "detail": {
                "message": exc.message,
                "archive_path": str(exc.archive),
                "destination": str(exc.destination),
                "attempted": exc.attempted,
            }
        }
    if isinstance(exc, UnsafeDestination):
        return 403, {"detail": exc.message}
    return 400, {"detail": exc.message}


def create_app(
    settings: Optional[Settings] = None,
    tools: Optional[DeviceTools] = None,
    acquirer: Optional[BundleAcquirer] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """Build the application; components are created once and kept on app.state"""
    settings = settings or Settings()
    if configure_logging:
        setup_logging(settings)

    api_docs = settings.DEBUG
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        docs_url="/docs" if api_docs else None,
        redoc_url=None,
        openapi_url="/openapi.json" if api_docs else None,
    )

    session_factory = create_session_factory(create_db_engine(settings))
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.action_logger = SqlActionLogger(session_factory)
    app.state.tools = tools or DeviceTools(settings)
    app.state.acquirer = acquirer or BundleAcquirer(settings)
    # download_id -> progress dict, updated by background acquisitions
    app.state.download_progress = {}

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for module, prefix in ((devices, "/devices"), (bundles, "/bundles"), (flash, "/flash")):
        app.include_router(module.router, prefix=prefix, tags=[prefix.strip("/")])

    @app.get("/")
    async def root():
        return {"name": settings.APP_NAME, "version": settings.APP_VERSION}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": settings.APP_VERSION}

    @app.get("/tools/check")
    def check_tools(request: Request):
        """Whether adb and fastboot can be started from the configured paths"""
        device_tools: DeviceTools = request.app.state.tools
        return {
            name: {"available": device_tools.check_tool(path), "path": path}
            for name, path in (("adb", settings.ADB_PATH), ("fastboot", settings.FASTBOOT_PATH))
        }

    @app.exception_handler(FlashCoreError)
    async def flash_core_error_handler(request: Request, exc: FlashCoreError):
        status_code, body = error_payload(exc)
        logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")
        return JSONResponse(status_code=status_code, content=body)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "message": str(exc) if settings.DEBUG else "An error occurred",
            },
        )

    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} ready")
    return app


if __name__ == "__main__":
    import uvicorn

    settings = Settings()
    uvicorn.run(
        create_app(settings),
        host=settings.PY_HOST,
        port=settings.PY_PORT,
        log_config=None,  # setup_logging owns the handlers
    )
