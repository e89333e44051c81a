"""
Statuses Router

Register statuses and queue recursive reply crawls for them.
"""

import json
import time

from fastapi import APIRouter, Depends, HTTPException

from reply_crawler.api.deps import get_job_queue, get_status_store
from reply_crawler.core.config import settings
from reply_crawler.core.errors import StatusNotFound
from reply_crawler.db.statuses import StatusStore
from reply_crawler.models.statuses import (
    FetchRepliesRequest,
    FetchRepliesResponse,
    StatusCreateRequest,
    StatusResponse,
)
from reply_crawler.services.jobs import JobQueue, build_dedupe_key
from reply_crawler.workers.fetch_all_replies import FETCH_ALL_REPLIES_JOB

router = APIRouter()


def _crawl_dedupe_key(status_id: int, options: dict) -> str | None:
    """Same status and options within one debounce window share a job."""
    window = settings.FETCH_REPLIES_DEBOUNCE_MINUTES * 60
    if window <= 0:
        return None
    return build_dedupe_key(
        FETCH_ALL_REPLIES_JOB,
        str(status_id),
        json.dumps(options, sort_keys=True),
        str(int(time.time()) // window),
    )


def _to_response(store: StatusStore, status_id: int) -> StatusResponse:
    status = store.get(status_id)
    return StatusResponse(
        id=status.id,
        uri=status.uri,
        in_reply_to_uri=status.in_reply_to_uri,
        fetched_replies_at=status.fetched_replies_at,
        body=store.get_body(status_id),
    )


@router.post("", response_model=StatusResponse, status_code=201)
async def create_status(
    request: StatusCreateRequest,
    store: StatusStore = Depends(get_status_store),
):
    """Register a status by URI (returns the existing row if already known)."""
    status = store.upsert(str(request.uri))
    return _to_response(store, status.id)


@router.get("/{status_id}", response_model=StatusResponse)
async def get_status(
    status_id: int,
    store: StatusStore = Depends(get_status_store),
):
    try:
        return _to_response(store, status_id)
    except StatusNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post(
    "/{status_id}/replies/fetch",
    response_model=FetchRepliesResponse,
    status_code=202,
)
async def fetch_replies(
    status_id: int,
    request: FetchRepliesRequest | None = None,
    store: StatusStore = Depends(get_status_store),
    jobs: JobQueue = Depends(get_job_queue),
):
    """
    Queue a crawl of every reply to the status.

    The crawl runs in the worker process; poll GET /jobs/{job_id} for its state.
    """
    try:
        store.get(status_id)
    except StatusNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    options = request.options if request else {}
    job_id, created = jobs.enqueue(
        FETCH_ALL_REPLIES_JOB,
        {"status_id": status_id, "options": options},
        dedupe_key=_crawl_dedupe_key(status_id, options),
    )
    return FetchRepliesResponse(job_id=job_id, created=created)
