"""
Reply Crawler Configuration

Infrastructure settings (database, environment) and crawl parameters.
Values are read from the environment once, at import time.
"""

import os
from enum import Enum
from pathlib import Path


class Environment(str, Enum):
    """Application environment"""

    PRODUCTION = "production"
    DEVELOPMENT = "development"
    TEST = "test"


def _get_environment() -> Environment:
    """Get and validate ENVIRONMENT variable."""
    env_value = os.getenv("ENVIRONMENT")
    if env_value is None:
        raise RuntimeError(
            "ENVIRONMENT is required. Set to 'production', 'development', or 'test'."
        )
    try:
        return Environment(env_value.lower())
    except ValueError:
        raise RuntimeError(
            f"Invalid ENVIRONMENT value: '{env_value}'. "
            "Must be 'production', 'development', or 'test'."
        )


class InfrastructureSettings:
    """Infrastructure-level configuration (database, paths)"""

    # Project Paths
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent.parent
    DATA_DIR: Path = BASE_DIR / "data"

    # Database
    # PostgreSQL (production): Set DATABASE_URL environment variable
    # SQLite (development): Uses REPLY_CRAWLER_DB path or default
    DATABASE_URL: str | None = os.getenv("DATABASE_URL")
    DB_PATH: str = os.getenv("REPLY_CRAWLER_DB", str(DATA_DIR / "reply_crawler.db"))

    # Environment
    ENVIRONMENT: Environment = _get_environment()


class CrawlerSettings(InfrastructureSettings):
    """Reply crawler configuration (inherits infrastructure settings)"""

    # Application
    APP_NAME: str = "Reply Crawler"
    APP_VERSION: str = "0.1.0"

    # Global max replies to fetch per run (all replies, recursively)
    FETCH_REPLIES_MAX_GLOBAL: int = int(os.getenv("FETCH_REPLIES_MAX_GLOBAL", "1000"))
    # Per-collection limits, applied by the collection fetcher on each call
    FETCH_REPLIES_MAX_PAGES: int = int(os.getenv("FETCH_REPLIES_MAX_PAGES", "500"))
    FETCH_REPLIES_MAX_SINGLE: int = int(os.getenv("FETCH_REPLIES_MAX_SINGLE", "500"))
    # Statuses crawled more recently than this are not walked again
    FETCH_REPLIES_DEBOUNCE_MINUTES: int = int(
        os.getenv("FETCH_REPLIES_DEBOUNCE_MINUTES", "15")
    )

    # Remote fetching
    FETCH_USER_AGENT: str = os.getenv(
        "FETCH_USER_AGENT", "ReplyCrawler/0.1 (+https://example.local/)"
    )
    FETCH_TIMEOUT_SEC: int = int(os.getenv("FETCH_TIMEOUT_SEC", "10"))
    MAX_RESPONSE_SIZE: int = int(os.getenv("MAX_RESPONSE_SIZE", str(1024 * 1024)))

    # Job queue
    JOB_QUEUE: str = os.getenv("JOB_QUEUE", "pull")
    JOB_MAX_ATTEMPTS: int = int(os.getenv("JOB_MAX_ATTEMPTS", "3"))
    JOB_RETRY_BASE_SEC: int = int(os.getenv("JOB_RETRY_BASE_SEC", "15"))
    JOB_RETRY_MAX_SEC: int = int(os.getenv("JOB_RETRY_MAX_SEC", "1800"))
    JOB_WORKERS: int = int(os.getenv("JOB_WORKERS", "4"))
    JOB_BATCH_SIZE: int = int(os.getenv("JOB_BATCH_SIZE", "10"))
    JOB_LEASE_SEC: int = int(os.getenv("JOB_LEASE_SEC", "300"))
    JOB_POLL_INTERVAL_MS: int = int(os.getenv("JOB_POLL_INTERVAL_MS", "500"))


settings = CrawlerSettings()
