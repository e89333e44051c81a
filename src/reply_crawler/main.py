"""
Main Application Entry Point

FastAPI application factory and router registration.
"""

from fastapi import FastAPI
from reply_crawler.api.routes import health, jobs, statuses
from reply_crawler.api.routes.health import root_router as health_root_router
from reply_crawler.core.events import lifespan
from reply_crawler.core.config import settings


def create_app() -> FastAPI:
    """
    FastAPI application factory

    Creates and configures the FastAPI application with all routers.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Recursive ActivityPub reply crawler",
        lifespan=lifespan,
    )

    # Root-level health endpoints (Kubernetes probes)
    app.include_router(health_root_router, tags=["health"])

    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(statuses.router, prefix="/api/v1/statuses", tags=["statuses"])
    app.include_router(jobs.router, prefix="/api/v1/jobs", tags=["jobs"])

    return app


# Application instance
app = create_app()
