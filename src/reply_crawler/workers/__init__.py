"""
Crawl workers and the job handlers that wire them to the queue.
"""

from typing import Any

from reply_crawler.db.statuses import StatusStore
from reply_crawler.services.collections import FETCH_REPLY_JOB, CollectionFetcher
from reply_crawler.services.jobs import JobQueue
from reply_crawler.services.resources import ResourceFetcher
from reply_crawler.workers.fetch_all_replies import (
    FETCH_ALL_REPLIES_JOB,
    CrawlConfig,
    FetchAllRepliesWorker,
)
from reply_crawler.workers.fetch_reply import FetchReplyWorker
from reply_crawler.workers.runner import Handler


def build_handlers(
    statuses: StatusStore,
    resources: ResourceFetcher,
    collections: CollectionFetcher,
    jobs: JobQueue,
    crawl_config: CrawlConfig | None = None,
) -> dict[str, Handler]:
    """Map job kinds to coroutines taking the job payload."""
    fetch_all = FetchAllRepliesWorker(
        statuses, resources, collections, jobs, config=crawl_config
    )
    fetch_one = FetchReplyWorker(statuses, resources)

    async def fetch_all_replies(payload: dict[str, Any]) -> None:
        await fetch_all.perform(int(payload["status_id"]), payload.get("options"))

    async def fetch_reply(payload: dict[str, Any]) -> None:
        await fetch_one.perform(
            payload["uri"],
            prefetched_body=payload.get("prefetched_body"),
            options=payload.get("options"),
        )

    return {
        FETCH_ALL_REPLIES_JOB: fetch_all_replies,
        FETCH_REPLY_JOB: fetch_reply,
    }
