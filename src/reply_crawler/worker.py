"""
Worker Entry Point

Runs the job workers for the pull queue until SIGTERM/SIGINT.

Usage:
    ENVIRONMENT=development python -m reply_crawler.worker
"""

import asyncio
import logging
import signal

import aiohttp

from reply_crawler.core.config import settings
from reply_crawler.api.deps import get_job_queue, get_status_store
from reply_crawler.services.collections import CollectionConfig, CollectionFetcher
from reply_crawler.services.resources import ResourceFetcher
from reply_crawler.workers import build_handlers
from reply_crawler.workers.fetch_all_replies import CrawlConfig
from reply_crawler.workers.runner import JobRunner

logger = logging.getLogger(__name__)


def open_session() -> aiohttp.ClientSession:
    return aiohttp.ClientSession(headers={"User-Agent": settings.FETCH_USER_AGENT})


def build_fetchers(
    session: aiohttp.ClientSession,
) -> tuple[ResourceFetcher, CollectionFetcher]:
    """Resource and collection fetchers configured from settings."""
    resources = ResourceFetcher(
        session,
        timeout_sec=settings.FETCH_TIMEOUT_SEC,
        max_response_size=settings.MAX_RESPONSE_SIZE,
    )
    collections = CollectionFetcher(
        resources,
        get_job_queue(),
        get_status_store(),
        CollectionConfig(
            max_pages=settings.FETCH_REPLIES_MAX_PAGES,
            max_items=settings.FETCH_REPLIES_MAX_SINGLE,
            debounce_seconds=settings.FETCH_REPLIES_DEBOUNCE_MINUTES * 60,
        ),
    )
    return resources, collections


def crawl_config() -> CrawlConfig:
    return CrawlConfig(max_replies=settings.FETCH_REPLIES_MAX_GLOBAL)


async def main() -> None:
    logging.basicConfig(level=logging.INFO)
    logger.info("Starting reply crawler worker")

    statuses = get_status_store()
    jobs = get_job_queue()

    async with open_session() as session:
        resources, collections = build_fetchers(session)
        handlers = build_handlers(
            statuses, resources, collections, jobs, crawl_config=crawl_config()
        )
        runner = JobRunner(
            jobs,
            handlers,
            queue=settings.JOB_QUEUE,
            batch_size=settings.JOB_BATCH_SIZE,
            lease_seconds=settings.JOB_LEASE_SEC,
            poll_interval=max(settings.JOB_POLL_INTERVAL_MS, 50) / 1000.0,
        )

        job_workers = [
            asyncio.create_task(runner.worker_loop(f"reply-worker-{i + 1}"))
            for i in range(max(1, settings.JOB_WORKERS))
        ]

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                signal.signal(sig, lambda *_: stop_event.set())

        await stop_event.wait()

        logger.info("Shutting down reply crawler worker")
        for worker_task in job_workers:
            worker_task.cancel()
        await asyncio.gather(*job_workers, return_exceptions=True)


if __name__ == "__main__":
    asyncio.run(main())
