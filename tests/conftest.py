"""
Test configuration and fixtures for Reply Crawler tests
"""

import os

# Set ENVIRONMENT before importing any modules that read the configuration
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.pop("DATABASE_URL", None)

import pytest  # noqa: E402
from unittest.mock import AsyncMock, MagicMock, patch  # noqa: E402


@pytest.fixture
def temp_db_path(tmp_path):
    """Create a temporary database path for testing"""
    return str(tmp_path / "test_reply_crawler.db")


@pytest.fixture
def status_store(temp_db_path):
    from reply_crawler.db.statuses import StatusStore

    return StatusStore(temp_db_path)


@pytest.fixture
def job_queue(temp_db_path):
    """JobQueue with three attempts and no backoff delay"""
    from reply_crawler.services.jobs import JobQueue
    from reply_crawler.services.retry import RetryPolicy

    return JobQueue(
        temp_db_path,
        retry_policy=RetryPolicy(max_attempts=3, base_seconds=0, max_seconds=0),
    )


@pytest.fixture
def test_client(temp_db_path):
    """FastAPI test client with temporary database"""
    from fastapi.testclient import TestClient
    from reply_crawler.api import deps

    with patch("reply_crawler.core.config.settings.DB_PATH", temp_db_path):
        deps.reset()
        from reply_crawler.main import app

        with TestClient(app) as client:
            yield client
        deps.reset()


def make_resources(documents: dict):
    """
    Mock ResourceFetcher backed by a dict of uri -> document.

    Unknown URIs return None; Exception values are raised.
    """
    resources = MagicMock()

    async def fetch(uri, force_refresh=False):
        value = documents.get(uri)
        if isinstance(value, Exception):
            raise value
        return value

    resources.fetch_resource = AsyncMock(side_effect=fetch)
    return resources


def status_doc(uri: str, replies: list[str] | None = None) -> dict:
    """ActivityPub Note; `replies` of None means no replies collection at all"""
    doc = {"id": uri, "type": "Note", "content": f"<p>{uri}</p>"}
    if replies is not None:
        doc["replies"] = {
            "id": f"{uri}/replies",
            "type": "Collection",
            "first": {
                "type": "CollectionPage",
                "partOf": f"{uri}/replies",
                "items": list(replies),
            },
        }
    return doc
