"""
Application Lifecycle Events

Manages FastAPI lifespan events for startup and shutdown.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
import logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager

    Creates the status and job tables on startup. Jobs are executed by the
    separate worker process (python -m reply_crawler.worker).
    """
    logger.info("🚀 Starting Reply Crawler API...")

    from reply_crawler.api.deps import get_job_queue, get_status_store

    get_status_store()
    get_job_queue()
    logger.info("✅ Database ready")

    yield

    logger.info("🛑 Reply Crawler API stopped")
