"""
API Dependencies

Dependency injection for FastAPI routes.
"""

from reply_crawler.core.config import settings
from reply_crawler.db.statuses import StatusStore
from reply_crawler.services.jobs import JobQueue
from reply_crawler.services.retry import RetryPolicy

# Lazy-initialized instances
_status_store: StatusStore | None = None
_job_queue: JobQueue | None = None


def get_status_store() -> StatusStore:
    """Get or create StatusStore instance."""
    global _status_store
    if _status_store is None:
        _status_store = StatusStore(settings.DB_PATH)
    return _status_store


def get_job_queue() -> JobQueue:
    """Get or create JobQueue instance."""
    global _job_queue
    if _job_queue is None:
        _job_queue = JobQueue(
            settings.DB_PATH,
            retry_policy=RetryPolicy(
                max_attempts=settings.JOB_MAX_ATTEMPTS,
                base_seconds=settings.JOB_RETRY_BASE_SEC,
                max_seconds=settings.JOB_RETRY_MAX_SEC,
            ),
            default_queue=settings.JOB_QUEUE,
        )
    return _job_queue


def reset() -> None:
    """Drop cached instances (tests switch DB_PATH between cases)."""
    global _status_store, _job_queue
    _status_store = None
    _job_queue = None
