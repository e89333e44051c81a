"""
Job Queue Models
"""

from typing import Literal

from pydantic import BaseModel, Field


class JobStatusResponse(BaseModel):
    job_id: str
    kind: str
    queue: str
    status: Literal[
        "pending", "processing", "done", "failed_retry", "failed_permanent"
    ]
    attempts: int = Field(..., ge=0)
    max_attempts: int = Field(..., ge=1)
    last_error: str | None = None
    available_at: int | None = None
    created_at: int | None = None
    updated_at: int | None = None


class QueueStatsResponse(BaseModel):
    pending_jobs: int = Field(..., ge=0)
    retry_jobs: int = Field(..., ge=0)
    processing_jobs: int = Field(..., ge=0)
    done_jobs: int = Field(..., ge=0)
    failed_permanent_jobs: int = Field(..., ge=0)
    total_jobs: int = Field(..., ge=0)
    oldest_pending_seconds: int = Field(..., ge=0)
