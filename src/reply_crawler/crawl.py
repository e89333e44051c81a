"""
Crawl the replies of one status inline, without the job queue.

Failures of the whole crawl are retried with the job retry policy.
Follow-up fetch jobs are still queued for the worker.

Usage:
    python -m reply_crawler.crawl STATUS_ID [--max-replies 1000] [--register URI]
"""

import argparse
import asyncio
import logging
from dataclasses import replace

from reply_crawler.api.deps import get_job_queue, get_status_store
from reply_crawler.core.config import settings
from reply_crawler.workers.fetch_all_replies import FetchAllRepliesWorker
from reply_crawler.worker import build_fetchers, crawl_config, open_session

logger = logging.getLogger(__name__)


async def crawl(status_id: int, max_replies: int) -> int:
    statuses = get_status_store()
    jobs = get_job_queue()
    async with open_session() as session:
        resources, collections = build_fetchers(session)
        worker = FetchAllRepliesWorker(
            statuses,
            resources,
            collections,
            jobs,
            config=replace(crawl_config(), max_replies=max_replies),
        )
        visited = await jobs.retry_policy.run(worker.perform, status_id, {})
    return len(visited)


def main():
    parser = argparse.ArgumentParser(description="Fetch all replies to a status")
    parser.add_argument("status_id", type=int, nargs="?", help="Local status id")
    parser.add_argument(
        "--register", metavar="URI", help="Register a status by URI and crawl it"
    )
    parser.add_argument(
        "--max-replies",
        type=int,
        default=settings.FETCH_REPLIES_MAX_GLOBAL,
        help="Global cap on replies visited",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    status_id = args.status_id
    if args.register:
        status_id = get_status_store().upsert(args.register).id
        print(f"Registered {args.register} as status {status_id}")
    if status_id is None:
        parser.error("either STATUS_ID or --register is required")

    count = asyncio.run(crawl(status_id, args.max_replies))
    print(f"Visited {count} replies for status {status_id}")


if __name__ == "__main__":
    main()
