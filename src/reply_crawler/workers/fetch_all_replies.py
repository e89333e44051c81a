"""
Fetch All Replies

Fetch every reply to a status, walking ActivityPub replies collections
recursively across servers, up to a global cap per run.
"""

import copy
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from reply_crawler.core.errors import UnexpectedResponseError
from reply_crawler.db.statuses import StatusStore
from reply_crawler.domain.visited import VisitedSet
from reply_crawler.services.collections import FETCH_REPLY_JOB, CollectionFetcher
from reply_crawler.services.jobs import JobQueue, build_dedupe_key
from reply_crawler.services.resolver import CollectionResolver
from reply_crawler.services.resources import ResourceFetcher

logger = logging.getLogger(__name__)

FETCH_ALL_REPLIES_JOB = "fetch_all_replies"


@dataclass
class CrawlConfig:
    # Global max replies to visit per run (all replies, recursively)
    max_replies: int = 1000


class FetchAllRepliesWorker:
    """
    One crawl per job.

    The frontier is a work-list popped from the end (newest discovery
    first), so when the cap cuts a run short it is the older sibling
    branches that go unvisited.
    """

    def __init__(
        self,
        statuses: StatusStore,
        resources: ResourceFetcher,
        collections: CollectionFetcher,
        jobs: JobQueue,
        config: CrawlConfig | None = None,
    ):
        self.statuses = statuses
        self.resources = resources
        self.collections = collections
        self.jobs = jobs
        self.config = config or CrawlConfig()

    async def perform(
        self, status_id: int, options: Mapping[str, Any] | None = None
    ) -> VisitedSet:
        options = dict(options or {})
        parent = self.statuses.get(status_id)
        logger.debug(f"{parent.uri}: fetching all replies for status {status_id}")

        # Refetch parent status and replies pointer with one request
        parent_json = await self.resources.fetch_resource(parent.uri, force_refresh=True)
        if parent_json is None:
            raise UnexpectedResponseError(
                parent.uri, detail="could not fetch parent status"
            )

        self._refresh_parent(parent.uri, parent_json)

        resolver = CollectionResolver(self.resources, root_uri=parent.uri)
        pointer = await resolver.replies_pointer(parent.uri, parent_json)
        if pointer is None:
            return VisitedSet()

        batch = await self.collections.expand(pointer, copy.deepcopy(options))
        if batch is None:
            # Collection could not be read; leave the debounce stamp alone
            return VisitedSet()
        self.statuses.touch_fetched_replies_at(status_id)

        visited = VisitedSet()
        frontier = visited.add_new(batch)

        while frontier and len(visited) < self.config.max_replies:
            next_reply = frontier.pop()
            if not next_reply:
                continue

            next_pointer = await resolver.replies_pointer(next_reply)
            if next_pointer is None:
                continue

            new_replies = await self.collections.expand(
                next_pointer, copy.deepcopy(options)
            )
            if not new_replies:
                continue

            frontier.extend(visited.add_new(new_replies))

        logger.debug(f"{parent.uri}: visited {len(visited)} replies")
        return visited

    def _refresh_parent(self, uri: str, body: dict[str, Any]) -> None:
        body_hash = hashlib.sha256(
            json.dumps(body, sort_keys=True).encode("utf-8")
        ).hexdigest()
        self.jobs.enqueue(
            FETCH_REPLY_JOB,
            {"uri": uri, "prefetched_body": body},
            dedupe_key=build_dedupe_key(FETCH_REPLY_JOB, uri, body_hash),
        )
