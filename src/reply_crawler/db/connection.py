"""
Database Connection Module

Supports both:
- PostgreSQL (production): Set DATABASE_URL environment variable
- Local SQLite (development): Uses REPLY_CRAWLER_DB path or default
"""

import os
from pathlib import Path
from typing import Any

from reply_crawler.core.config import Environment, settings


def is_postgres_mode() -> bool:
    """Check if we're using PostgreSQL."""
    return os.getenv("DATABASE_URL") is not None


def sql_placeholder() -> str:
    """Return parameter placeholder for current database driver."""
    return "%s" if is_postgres_mode() else "?"


def sql_placeholders(count: int) -> str:
    """Return comma-separated placeholders for IN clauses."""
    if count <= 0:
        raise ValueError("count must be greater than zero")
    ph = sql_placeholder()
    return ",".join([ph] * count)


def get_connection(db_path: str | None = None) -> Any:
    """Get database connection (PostgreSQL or local SQLite).

    Args:
        db_path: Optional path to SQLite database. Ignored if DATABASE_URL is set.

    Raises:
        RuntimeError: If ENVIRONMENT is 'production' but DATABASE_URL is not set.
    """
    database_url = os.getenv("DATABASE_URL")

    if settings.ENVIRONMENT == Environment.PRODUCTION and not database_url:
        raise RuntimeError(
            "DATABASE_URL is required in production environment. "
            "Set DATABASE_URL environment variable."
        )

    if database_url:
        import psycopg2

        return psycopg2.connect(database_url)
    else:
        import sqlite3

        path = db_path or os.getenv("REPLY_CRAWLER_DB", settings.DB_PATH)
        return sqlite3.connect(path)


def execute_schema(db_path: str, schema_pg: str, schema_sqlite: str) -> None:
    """Create tables for whichever backend is active."""
    postgres_mode = is_postgres_mode()

    if not postgres_mode:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    con = get_connection(db_path)
    try:
        if postgres_mode:
            cur = con.cursor()
            for stmt in schema_pg.split(";"):
                stmt = stmt.strip()
                if stmt:
                    cur.execute(stmt)
            cur.close()
            con.commit()
        else:
            con.executescript(schema_sqlite)
    finally:
        con.close()
