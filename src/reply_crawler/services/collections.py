"""
Collection Fetcher

Turns a replies pointer into the list of reply URIs it names, walking the
collection's pages, and queues a fetch job for every reply found.
"""

import copy
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping

from reply_crawler.db.statuses import StatusStore
from reply_crawler.domain.pointers import (
    InlineReplies,
    RepliesPointer,
    UnresolvableReplies,
)
from reply_crawler.services.jobs import JobQueue
from reply_crawler.services.resources import ResourceFetcher

logger = logging.getLogger(__name__)

FETCH_REPLY_JOB = "fetch_reply"

ITEM_KEYS = ("orderedItems", "items")


@dataclass
class CollectionConfig:
    # Pages followed per call (the collection document itself not included)
    max_pages: int = 500
    # Reply URIs returned per call
    max_items: int = 500
    # Replies whose own replies were crawled this recently are dropped
    debounce_seconds: int = 15 * 60


def _item_uri(item: Any) -> str | None:
    if isinstance(item, str):
        return item or None
    if isinstance(item, dict):
        value = item.get("id")
        if isinstance(value, str) and value:
            return value
    return None


def _page_items(page: dict[str, Any]) -> list[Any]:
    for key in ITEM_KEYS:
        items = page.get(key)
        if isinstance(items, list):
            return items
    return []


def _has_content(collection: dict[str, Any]) -> bool:
    return any(key in collection for key in (*ITEM_KEYS, "first"))


class CollectionFetcher:
    def __init__(
        self,
        resources: ResourceFetcher,
        jobs: JobQueue,
        statuses: StatusStore,
        config: CollectionConfig | None = None,
    ):
        self.resources = resources
        self.jobs = jobs
        self.statuses = statuses
        self.config = config or CollectionConfig()

    async def expand(
        self, pointer: RepliesPointer, options: Mapping[str, Any] | None = None
    ) -> list[str] | None:
        """
        Resolve `pointer` to reply URIs.

        Returns None when the collection itself can't be resolved. Failures
        on later pages end pagination early and keep what was collected.
        """
        collection = await self._resolve_collection(pointer)
        if collection is None:
            return None

        uris = await self._collect_uris(collection)
        uris = self._drop_recently_crawled(uris)

        for uri in uris:
            self.jobs.enqueue(
                FETCH_REPLY_JOB,
                {"uri": uri, "options": copy.deepcopy(dict(options or {}))},
            )
        return uris

    async def _resolve_collection(
        self, pointer: RepliesPointer
    ) -> dict[str, Any] | None:
        if isinstance(pointer, UnresolvableReplies):
            logger.debug(f"Unresolvable replies value: {pointer.value!r}")
            return None

        if isinstance(pointer, InlineReplies):
            collection = pointer.collection
            if _has_content(collection):
                return collection
            uri = _item_uri(collection)
            if uri is None:
                logger.debug("Inline replies collection without id or items")
                return None
        else:
            uri = pointer.uri

        return await self._fetch_quietly(uri)

    async def _collect_uris(self, collection: dict[str, Any]) -> list[str]:
        seen: set[str] = set()
        uris: list[str] = []

        def take(page: dict[str, Any]) -> bool:
            for item in _page_items(page):
                uri = _item_uri(item)
                if uri is None or uri in seen:
                    continue
                seen.add(uri)
                uris.append(uri)
                if len(uris) >= self.config.max_items:
                    return False
            return True

        if not take(collection):
            return uris

        page_ref = collection.get("first")
        pages = 0
        visited_pages: set[str] = set()
        while page_ref is not None and pages < self.config.max_pages:
            if isinstance(page_ref, dict):
                page = page_ref
            else:
                page_uri = _item_uri(page_ref)
                if page_uri is None or page_uri in visited_pages:
                    break
                visited_pages.add(page_uri)
                page = await self._fetch_quietly(page_uri)
                if page is None:
                    break

            pages += 1
            if not take(page):
                break
            page_ref = page.get("next")

        return uris

    def _drop_recently_crawled(self, uris: list[str]) -> list[str]:
        if not uris or self.config.debounce_seconds <= 0:
            return uris
        since_ts = int(time.time()) - self.config.debounce_seconds
        fresh = self.statuses.recently_crawled_uris(uris, since_ts)
        if fresh:
            logger.debug(f"Skipping {len(fresh)} recently crawled replies")
        return [uri for uri in uris if uri not in fresh]

    async def _fetch_quietly(self, uri: str) -> dict[str, Any] | None:
        try:
            return await self.resources.fetch_resource(uri)
        except Exception as e:
            logger.warning(f"Failed to fetch replies collection {uri}: {e}")
            return None
