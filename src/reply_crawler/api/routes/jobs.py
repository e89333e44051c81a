"""
Jobs Router

Read-only view of the job queue.
"""

from fastapi import APIRouter, Depends, HTTPException

from reply_crawler.api.deps import get_job_queue
from reply_crawler.models.jobs import JobStatusResponse, QueueStatsResponse
from reply_crawler.services.jobs import JobQueue

router = APIRouter()


@router.get("/stats", response_model=QueueStatsResponse)
async def queue_stats(jobs: JobQueue = Depends(get_job_queue)):
    return QueueStatsResponse(**jobs.get_queue_stats())


@router.get("/{job_id}", response_model=JobStatusResponse)
async def job_status(job_id: str, jobs: JobQueue = Depends(get_job_queue)):
    status = jobs.get_job_status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobStatusResponse(**status)
