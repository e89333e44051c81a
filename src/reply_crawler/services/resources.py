"""
Resource Fetcher

Fetches ActivityPub JSON documents from remote servers.
"""

import json
import logging
from typing import Any

import aiohttp

from reply_crawler.core.errors import UnexpectedResponseError

logger = logging.getLogger(__name__)

ACCEPT_HEADER = (
    'application/activity+json, application/ld+json; profile="https://www.w3.org/ns/activitystreams"'
)

JSON_CONTENT_TYPES = ("application/activity+json", "application/ld+json", "application/json")

READ_CHUNK_SIZE = 64 * 1024

# Statuses worth retrying the whole job for
TEMPORARY_ERROR_STATUSES = (408, 429, 500, 502, 503, 504)


class ResourceFetcher:
    """
    Thin JSON fetcher over an aiohttp session.

    `fetch_resource` returns the decoded object, or None when the server
    answers with a permanent error or something that isn't a JSON object.
    Temporary server errors raise UnexpectedResponseError; transport errors
    (aiohttp.ClientError, asyncio.TimeoutError) propagate unchanged.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        timeout_sec: float = 10,
        max_response_size: int = 1024 * 1024,
    ):
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout_sec)
        self.max_response_size = max_response_size

    async def fetch_resource(
        self, uri: str, force_refresh: bool = False
    ) -> dict[str, Any] | None:
        headers = {"Accept": ACCEPT_HEADER}
        if force_refresh:
            headers["Cache-Control"] = "no-cache"

        async with self.session.get(
            uri, headers=headers, timeout=self.timeout, allow_redirects=True
        ) as resp:
            if resp.status in TEMPORARY_ERROR_STATUSES:
                raise UnexpectedResponseError(uri, resp.status)

            if resp.status != 200:
                logger.debug(f"HTTP {resp.status} fetching {uri}")
                return None

            ct = resp.headers.get("Content-Type", "").lower()
            if not any(t in ct for t in JSON_CONTENT_TYPES):
                logger.debug(f"Non-JSON response ({ct}) for {uri}")
                return None

            body = bytearray()
            async for chunk in resp.content.iter_chunked(READ_CHUNK_SIZE):
                body.extend(chunk)
                if len(body) > self.max_response_size:
                    logger.warning(f"Response too large, discarding: {uri}")
                    return None

        try:
            document = json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.debug(f"Invalid JSON from {uri}")
            return None

        if not isinstance(document, dict):
            return None
        return document
