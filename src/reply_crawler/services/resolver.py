"""
Collection Resolver

Finds the replies pointer of a status, fetching the status when needed.
"""

import logging
from typing import Any

from reply_crawler.core.errors import UnexpectedResponseError
from reply_crawler.domain.pointers import RepliesPointer, pointer_from_value
from reply_crawler.services.resources import ResourceFetcher

logger = logging.getLogger(__name__)


class CollectionResolver:
    """
    Bound to one crawl run. Fetch failures for any status other than the
    run's root are logged and read as "no replies"; failures for the root
    are raised so the job is retried.
    """

    def __init__(self, resources: ResourceFetcher, root_uri: str):
        self.resources = resources
        self.root_uri = root_uri

    async def replies_pointer(
        self, status_uri: str, representation: dict[str, Any] | None = None
    ) -> RepliesPointer | None:
        try:
            if representation is None:
                representation = await self.resources.fetch_resource(
                    status_uri, force_refresh=True
                )
                if representation is None:
                    raise UnexpectedResponseError(status_uri, detail="empty response")
        except Exception as e:
            if status_uri == self.root_uri:
                raise
            logger.warning(
                f"{self.root_uri}: could not fetch {status_uri} for its replies: {e}"
            )
            return None

        if representation.get("replies") is None:
            logger.debug(f"{self.root_uri}: no replies collection on {status_uri}")
            return None

        return pointer_from_value(representation["replies"])
