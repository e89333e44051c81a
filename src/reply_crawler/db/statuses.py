"""
Status Store

Minimal local record of statuses: enough to look up a crawl root, stamp
when its replies were last crawled, and keep the latest fetched JSON.
"""

import json
import time
from dataclasses import dataclass
from typing import Any

from reply_crawler.core.errors import StatusNotFound
from reply_crawler.db.connection import (
    execute_schema,
    get_connection,
    is_postgres_mode,
    sql_placeholder,
    sql_placeholders,
)


@dataclass
class Status:
    id: int
    uri: str
    in_reply_to_uri: str | None
    fetched_replies_at: int | None
    created_at: int
    updated_at: int


SCHEMA_PG = """
CREATE TABLE IF NOT EXISTS statuses (
    id BIGSERIAL PRIMARY KEY,
    uri TEXT NOT NULL UNIQUE,
    in_reply_to_uri TEXT,
    body JSONB,
    fetched_replies_at BIGINT,
    created_at BIGINT NOT NULL,
    updated_at BIGINT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_statuses_in_reply_to ON statuses(in_reply_to_uri);
"""

SCHEMA_SQLITE = """
CREATE TABLE IF NOT EXISTS statuses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uri TEXT NOT NULL UNIQUE,
    in_reply_to_uri TEXT,
    body TEXT,
    fetched_replies_at INTEGER,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_statuses_in_reply_to ON statuses(in_reply_to_uri);
"""

_COLUMNS = "id, uri, in_reply_to_uri, fetched_replies_at, created_at, updated_at"


def _in_reply_to(body: dict[str, Any] | None) -> str | None:
    if not body:
        return None
    value = body.get("inReplyTo")
    if isinstance(value, dict):
        value = value.get("id")
    return str(value) if value else None


class StatusStore:
    def __init__(self, db_path: str):
        self.db_path = db_path
        execute_schema(db_path, SCHEMA_PG, SCHEMA_SQLITE)

    @staticmethod
    def _now_ts() -> int:
        return int(time.time())

    @staticmethod
    def _row_to_status(row: tuple[Any, ...]) -> Status:
        return Status(
            id=int(row[0]),
            uri=str(row[1]),
            in_reply_to_uri=row[2],
            fetched_replies_at=int(row[3]) if row[3] is not None else None,
            created_at=int(row[4]),
            updated_at=int(row[5]),
        )

    def get(self, status_id: int) -> Status:
        """Load a status by id; raises StatusNotFound if absent."""
        ph = sql_placeholder()
        con = get_connection(self.db_path)
        try:
            cur = con.cursor()
            cur.execute(
                f"SELECT {_COLUMNS} FROM statuses WHERE id = {ph}", (status_id,)
            )
            row = cur.fetchone()
            cur.close()
        finally:
            con.close()
        if not row:
            raise StatusNotFound(status_id)
        return self._row_to_status(row)

    def find_by_uri(self, uri: str) -> Status | None:
        ph = sql_placeholder()
        con = get_connection(self.db_path)
        try:
            cur = con.cursor()
            cur.execute(f"SELECT {_COLUMNS} FROM statuses WHERE uri = {ph}", (uri,))
            row = cur.fetchone()
            cur.close()
        finally:
            con.close()
        return self._row_to_status(row) if row else None

    def get_body(self, status_id: int) -> dict[str, Any] | None:
        ph = sql_placeholder()
        con = get_connection(self.db_path)
        try:
            cur = con.cursor()
            cur.execute(f"SELECT body FROM statuses WHERE id = {ph}", (status_id,))
            row = cur.fetchone()
            cur.close()
        finally:
            con.close()
        if not row:
            raise StatusNotFound(status_id)
        if row[0] is None:
            return None
        # psycopg2 decodes JSONB already
        return row[0] if isinstance(row[0], dict) else json.loads(row[0])

    def upsert(self, uri: str, body: dict[str, Any] | None = None) -> Status:
        """Insert a status by URI, or refresh its body if it already exists."""
        now_ts = self._now_ts()
        body_json = json.dumps(body) if body is not None else None
        in_reply_to = _in_reply_to(body)
        ph = sql_placeholder()
        body_ph = f"{ph}::jsonb" if is_postgres_mode() else ph

        con = get_connection(self.db_path)
        try:
            cur = con.cursor()
            cur.execute(
                f"""
                INSERT INTO statuses (
                    uri, in_reply_to_uri, body, fetched_replies_at,
                    created_at, updated_at
                ) VALUES ({ph}, {ph}, {body_ph}, NULL, {ph}, {ph})
                ON CONFLICT (uri) DO UPDATE SET
                    in_reply_to_uri = COALESCE(excluded.in_reply_to_uri, statuses.in_reply_to_uri),
                    body = COALESCE(excluded.body, statuses.body),
                    updated_at = excluded.updated_at
                """,
                (uri, in_reply_to, body_json, now_ts, now_ts),
            )
            con.commit()
            cur.close()
        finally:
            con.close()

        status = self.find_by_uri(uri)
        if status is None:
            raise RuntimeError(f"Failed to upsert status {uri}")
        return status

    def touch_fetched_replies_at(self, status_id: int) -> int:
        """Stamp the replies-crawl debounce field with the current time."""
        now_ts = self._now_ts()
        ph = sql_placeholder()
        con = get_connection(self.db_path)
        try:
            cur = con.cursor()
            cur.execute(
                f"""
                UPDATE statuses
                SET fetched_replies_at = {ph}, updated_at = {ph}
                WHERE id = {ph}
                """,
                (now_ts, now_ts, status_id),
            )
            con.commit()
            cur.close()
        finally:
            con.close()
        return now_ts

    def recently_crawled_uris(self, uris: list[str], since_ts: int) -> set[str]:
        """Return the subset of uris whose replies were crawled after since_ts."""
        if not uris:
            return set()

        ph = sql_placeholder()
        con = get_connection(self.db_path)
        try:
            cur = con.cursor()
            cur.execute(
                f"""
                SELECT uri FROM statuses
                WHERE uri IN ({sql_placeholders(len(uris))})
                  AND fetched_replies_at IS NOT NULL
                  AND fetched_replies_at > {ph}
                """,
                (*uris, since_ts),
            )
            rows = cur.fetchall()
            cur.close()
        finally:
            con.close()
        return {str(row[0]) for row in rows}

    def ping(self) -> None:
        con = get_connection(self.db_path)
        try:
            cur = con.cursor()
            cur.execute("SELECT 1")
            cur.fetchone()
            cur.close()
        finally:
            con.close()
