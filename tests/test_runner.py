"""
JobRunner Tests

Job dispatch and the whole-job retry contract, end to end through the queue.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from conftest import make_resources, status_doc
from reply_crawler.services.collections import CollectionConfig, CollectionFetcher
from reply_crawler.workers import build_handlers
from reply_crawler.workers.runner import JobRunner

ROOT = "https://a.example/notes/root"


@pytest.mark.asyncio
async def test_successful_job_is_marked_done(job_queue):
    handler = AsyncMock()
    job_id, _ = job_queue.enqueue("noop", {"value": 1})
    runner = JobRunner(job_queue, {"noop": handler})

    assert await runner.run_once("worker-1") == 1

    handler.assert_awaited_once_with({"value": 1})
    assert job_queue.get_job_status(job_id)["status"] == "done"


@pytest.mark.asyncio
async def test_unknown_kind_is_a_failure(job_queue):
    job_id, _ = job_queue.enqueue("mystery", {})
    runner = JobRunner(job_queue, {})

    await runner.run_once("worker-1")

    status = job_queue.get_job_status(job_id)
    assert status["status"] == "failed_retry"
    assert "mystery" in status["last_error"]


@pytest.mark.asyncio
async def test_run_once_with_empty_queue(job_queue):
    runner = JobRunner(job_queue, {})
    assert await runner.run_once("worker-1") == 0


def _handlers(status_store, job_queue, documents):
    resources = make_resources(documents)
    collections = CollectionFetcher(
        resources, job_queue, status_store, CollectionConfig()
    )
    return build_handlers(status_store, resources, collections, job_queue)


@pytest.mark.asyncio
async def test_root_transport_error_fails_three_times_then_permanently(
    status_store, job_queue
):
    root = status_store.upsert(ROOT)
    job_id, _ = job_queue.enqueue("fetch_all_replies", {"status_id": root.id})
    handlers = _handlers(
        status_store, job_queue, {ROOT: aiohttp.ClientConnectionError("refused")}
    )
    runner = JobRunner(job_queue, handlers)

    for attempt in range(1, 4):
        assert await runner.run_once("worker-1") == 1
        status = job_queue.get_job_status(job_id)
        assert status["attempts"] == attempt

    assert status["status"] == "failed_permanent"
    assert await runner.run_once("worker-1") == 0
    assert status_store.get(root.id).fetched_replies_at is None


@pytest.mark.asyncio
async def test_missing_root_status_fails_the_job(status_store, job_queue):
    job_id, _ = job_queue.enqueue("fetch_all_replies", {"status_id": 404})
    runner = JobRunner(job_queue, _handlers(status_store, job_queue, {}))

    await runner.run_once("worker-1")

    status = job_queue.get_job_status(job_id)
    assert status["status"] == "failed_retry"
    assert "404" in status["last_error"]


@pytest.mark.asyncio
async def test_full_crawl_through_the_queue(status_store, job_queue):
    reply = "https://b.example/notes/1"
    root = status_store.upsert(ROOT)
    job_queue.enqueue(
        "fetch_all_replies", {"status_id": root.id, "options": {"request_id": "r"}}
    )
    documents = {ROOT: status_doc(ROOT, [reply]), reply: status_doc(reply)}
    runner = JobRunner(job_queue, _handlers(status_store, job_queue, documents))

    # Crawl job first, then the parent refresh and the reply fetch it queued
    assert await runner.run_once("worker-1") == 1
    assert await runner.run_once("worker-1") == 2

    stats = job_queue.get_queue_stats()
    assert stats["done_jobs"] == 3
    assert status_store.get(root.id).fetched_replies_at is not None
    assert status_store.find_by_uri(reply) is not None
    assert status_store.get_body(root.id)["replies"]["id"] == f"{ROOT}/replies"


@pytest.mark.asyncio
async def test_worker_loop_survives_claim_errors():
    jobs = MagicMock()
    jobs.claim_jobs.side_effect = [
        RuntimeError("db locked"),
        [],
        asyncio.CancelledError(),
    ]
    runner = JobRunner(jobs, {}, poll_interval=0)

    with pytest.raises(asyncio.CancelledError):
        await runner.worker_loop("worker-1")

    assert jobs.claim_jobs.call_count == 3


@pytest.mark.asyncio
async def test_long_job_keeps_its_lease(job_queue):
    job_id, _ = job_queue.enqueue("slow", {})
    runs = []

    async def slow(payload):
        runs.append(payload)
        await asyncio.sleep(2.2)

    first = JobRunner(job_queue, {"slow": slow}, lease_seconds=1, renew_interval=0.2)
    second = JobRunner(job_queue, {"slow": slow}, lease_seconds=1)

    running = asyncio.create_task(first.run_once("worker-1"))
    await asyncio.sleep(2)
    assert await second.run_once("worker-2") == 0
    assert await running == 1

    status = job_queue.get_job_status(job_id)
    assert len(runs) == 1
    assert status["status"] == "done"
    assert status["attempts"] == 0


@pytest.mark.asyncio
async def test_result_is_dropped_when_lease_was_lost(job_queue):
    job_id, _ = job_queue.enqueue("noop", {})
    [job] = job_queue.claim_jobs(limit=1, lease_seconds=-10, worker_id="worker-1")
    job_queue.claim_jobs(limit=1, lease_seconds=60, worker_id="worker-2")
    runner = JobRunner(job_queue, {"noop": AsyncMock()})

    assert await runner.run_job(job) is False

    status = job_queue.get_job_status(job_id)
    assert status["status"] == "processing"
    assert status["attempts"] == 1
