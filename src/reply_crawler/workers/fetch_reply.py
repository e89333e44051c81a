"""
Fetch Reply

Refresh the local copy of a single status.
"""

import logging
from typing import Any, Mapping

from reply_crawler.core.errors import UnexpectedResponseError
from reply_crawler.db.statuses import Status, StatusStore
from reply_crawler.services.resources import ResourceFetcher

logger = logging.getLogger(__name__)


class FetchReplyWorker:
    def __init__(self, statuses: StatusStore, resources: ResourceFetcher):
        self.statuses = statuses
        self.resources = resources

    async def perform(
        self,
        uri: str,
        prefetched_body: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> Status:
        """Store `prefetched_body` for uri, fetching it first if not given."""
        if prefetched_body is None:
            body = await self.resources.fetch_resource(uri)
            if body is None:
                raise UnexpectedResponseError(uri, detail="could not fetch status")
        else:
            body = dict(prefetched_body)

        status = self.statuses.upsert(uri, body)
        logger.debug(
            f"Stored {uri} (id={status.id}, request_id={(options or {}).get('request_id')})"
        )
        return status
