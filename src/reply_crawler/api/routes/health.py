"""
Health Check Router

Provides Kubernetes-compatible health check endpoints:
- /health: Simple health for load balancers
- /health/live: Liveness probe (process alive)
- /health/ready: Readiness probe (database reachable)
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from reply_crawler.api.deps import get_status_store

logger = logging.getLogger(__name__)

# Router for /api/v1 prefix
router = APIRouter()

# Router for root-level health endpoints
root_router = APIRouter()


def _check_database() -> bool:
    try:
        get_status_store().ping()
        return True
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return False


@root_router.get("/health")
async def health():
    """Simple health check for load balancers."""
    return {"status": "ok"}


@root_router.get("/health/live")
async def liveness():
    """Kubernetes liveness probe - is the process running?"""
    return {"status": "ok"}


@root_router.get("/health/ready")
async def readiness():
    """Kubernetes readiness probe - is the database reachable?"""
    checks = {"database": "ok" if _check_database() else "unhealthy"}

    all_healthy = all(v == "ok" for v in checks.values())
    status = "ok" if all_healthy else "unhealthy"

    return JSONResponse(
        status_code=200 if all_healthy else 503,
        content={"status": status, "checks": checks},
    )


@router.get("/health")
async def health_check():
    return {"status": "ok"}
