"""Main application entrypoint for VoxStudio Engine."""

from fastapi import FastAPI

from voxstudio.api.v1 import routes_health
from voxstudio.api.v1.routes_projects import router as projects_router
from voxstudio.api.v1.routes_upload import router as upload_router
from voxstudio.api.v1.routes_voices import router as voices_router
from voxstudio.core.config import settings
from voxstudio.core.logging import setup_logging
from voxstudio.core.middleware import HTTPErrorLoggingMiddleware


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    # Initialize logging first
    setup_logging()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
    )
    app.add_middleware(HTTPErrorLoggingMiddleware)

    app.include_router(routes_health.router, tags=["health"])
    app.include_router(upload_router)
    app.include_router(projects_router)
    app.include_router(voices_router)

    return app


# Export app instance for ASGI servers
app = create_app()
