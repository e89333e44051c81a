"""Durable job queue with leases and whole-job retry."""

import hashlib
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any

from reply_crawler.db.connection import (
    execute_schema,
    get_connection,
    is_postgres_mode,
    sql_placeholder,
)
from reply_crawler.services.retry import RetryPolicy

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_DONE = "done"
STATUS_FAILED_RETRY = "failed_retry"
STATUS_FAILED_PERMANENT = "failed_permanent"

CLAIMABLE_STATUSES = (STATUS_PENDING, STATUS_FAILED_RETRY)

DEFAULT_QUEUE = "pull"

SCHEMA_PG = """
CREATE TABLE IF NOT EXISTS jobs (
    job_id TEXT PRIMARY KEY,
    kind TEXT NOT NULL,
    queue TEXT NOT NULL,
    payload JSONB NOT NULL,
    status TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    max_attempts INTEGER NOT NULL,
    available_at BIGINT NOT NULL,
    lease_until BIGINT,
    worker_id TEXT,
    last_error TEXT,
    created_at BIGINT NOT NULL,
    updated_at BIGINT NOT NULL,
    dedupe_key TEXT NOT NULL UNIQUE
);

CREATE INDEX IF NOT EXISTS idx_jobs_claim ON jobs(queue, status, available_at);
"""

SCHEMA_SQLITE = """
CREATE TABLE IF NOT EXISTS jobs (
    job_id TEXT PRIMARY KEY,
    kind TEXT NOT NULL,
    queue TEXT NOT NULL,
    payload TEXT NOT NULL,
    status TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    max_attempts INTEGER NOT NULL,
    available_at INTEGER NOT NULL,
    lease_until INTEGER,
    worker_id TEXT,
    last_error TEXT,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    dedupe_key TEXT NOT NULL UNIQUE
);

CREATE INDEX IF NOT EXISTS idx_jobs_claim ON jobs(queue, status, available_at);
"""


@dataclass(frozen=True)
class Job:
    job_id: str
    kind: str
    queue: str
    payload: dict[str, Any]
    status: str
    attempts: int
    max_attempts: int
    worker_id: str | None = None


def _decode_payload(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    try:
        decoded = json.loads(value)
    except (TypeError, json.JSONDecodeError):
        return {}
    return decoded if isinstance(decoded, dict) else {}


def build_dedupe_key(kind: str, *parts: str) -> str:
    raw = "\n".join((kind, *parts))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class JobQueue:
    """
    Job table shared by the API (producer) and the worker process (consumer).

    Delivery is at-least-once: a job whose lease expires is handed out again.
    Each failure counts as one attempt; once `max_attempts` attempts have
    failed the job is marked failed_permanent.
    """

    def __init__(
        self,
        db_path: str,
        *,
        retry_policy: RetryPolicy | None = None,
        default_queue: str = DEFAULT_QUEUE,
    ):
        self.db_path = db_path
        self.retry_policy = retry_policy or RetryPolicy()
        self.default_queue = default_queue
        execute_schema(db_path, SCHEMA_PG, SCHEMA_SQLITE)

    @staticmethod
    def _now_ts() -> int:
        return int(time.time())

    def enqueue(
        self,
        kind: str,
        payload: dict[str, Any],
        *,
        queue: str | None = None,
        dedupe_key: str | None = None,
    ) -> tuple[str, bool]:
        """Queue a job (idempotent by dedupe_key). Returns (job_id, created)."""
        job_id = str(uuid.uuid4())
        dedupe_key = dedupe_key or job_id
        queue = queue or self.default_queue
        now_ts = self._now_ts()
        payload_json = json.dumps(payload)
        ph = sql_placeholder()
        payload_ph = f"{ph}::jsonb" if is_postgres_mode() else ph

        con = get_connection(self.db_path)
        try:
            cur = con.cursor()
            cur.execute(
                f"""
                INSERT INTO jobs (
                    job_id, kind, queue, payload,
                    status, attempts, max_attempts,
                    available_at, lease_until, worker_id, last_error,
                    created_at, updated_at, dedupe_key
                ) VALUES (
                    {ph}, {ph}, {ph}, {payload_ph},
                    {ph}, 0, {ph},
                    {ph}, NULL, NULL, NULL,
                    {ph}, {ph}, {ph}
                )
                ON CONFLICT (dedupe_key) DO NOTHING
                """,
                (
                    job_id,
                    kind,
                    queue,
                    payload_json,
                    STATUS_PENDING,
                    self.retry_policy.max_attempts,
                    now_ts,
                    now_ts,
                    now_ts,
                    dedupe_key,
                ),
            )
            inserted = cur.rowcount > 0
            if inserted:
                con.commit()
                cur.close()
                logger.debug(f"Enqueued {kind} job {job_id} on {queue}")
                return job_id, True

            cur.execute(
                f"SELECT job_id FROM jobs WHERE dedupe_key = {ph}",
                (dedupe_key,),
            )
            existing = cur.fetchone()
            con.commit()
            cur.close()
            if not existing:
                raise RuntimeError("Failed to resolve deduplicated job")
            return str(existing[0]), False
        finally:
            con.close()

    def get_job_status(self, job_id: str) -> dict[str, Any] | None:
        ph = sql_placeholder()
        con = get_connection(self.db_path)
        try:
            cur = con.cursor()
            cur.execute(
                f"""
                SELECT job_id, kind, queue, status, attempts, max_attempts,
                       last_error, available_at, created_at, updated_at
                FROM jobs
                WHERE job_id = {ph}
                """,
                (job_id,),
            )
            row = cur.fetchone()
            cur.close()
            if not row:
                return None
            return {
                "job_id": str(row[0]),
                "kind": str(row[1]),
                "queue": str(row[2]),
                "status": str(row[3]),
                "attempts": int(row[4]),
                "max_attempts": int(row[5]),
                "last_error": row[6],
                "available_at": int(row[7]) if row[7] is not None else None,
                "created_at": int(row[8]) if row[8] is not None else None,
                "updated_at": int(row[9]) if row[9] is not None else None,
            }
        finally:
            con.close()

    def claim_jobs(
        self,
        *,
        limit: int,
        lease_seconds: int,
        worker_id: str,
        queue: str | None = None,
    ) -> list[Job]:
        if limit <= 0:
            return []

        queue = queue or self.default_queue
        now_ts = self._now_ts()
        lease_until = now_ts + lease_seconds
        ph = sql_placeholder()
        con = get_connection(self.db_path)
        try:
            cur = con.cursor()
            self._recover_expired_locked(cur, now_ts)

            if is_postgres_mode():
                cur.execute(
                    f"""
                    WITH candidates AS (
                        SELECT job_id
                        FROM jobs
                        WHERE queue = {ph}
                          AND status IN ({ph}, {ph})
                          AND available_at <= {ph}
                        ORDER BY available_at ASC, created_at ASC
                        LIMIT {ph}
                        FOR UPDATE SKIP LOCKED
                    )
                    UPDATE jobs AS j
                    SET
                        status = {ph},
                        lease_until = {ph},
                        worker_id = {ph},
                        updated_at = {ph}
                    FROM candidates c
                    WHERE j.job_id = c.job_id
                    RETURNING
                        j.job_id, j.kind, j.queue, j.payload,
                        j.status, j.attempts, j.max_attempts, j.worker_id
                    """,
                    (
                        queue,
                        *CLAIMABLE_STATUSES,
                        now_ts,
                        limit,
                        STATUS_PROCESSING,
                        lease_until,
                        worker_id,
                        now_ts,
                    ),
                )
                rows = cur.fetchall()
                con.commit()
                cur.close()
                return [self._row_to_job(row) for row in rows]

            cur.execute(
                f"""
                SELECT job_id
                FROM jobs
                WHERE queue = {ph}
                  AND status IN ({ph}, {ph})
                  AND available_at <= {ph}
                ORDER BY available_at ASC, created_at ASC
                LIMIT {ph}
                """,
                (queue, *CLAIMABLE_STATUSES, now_ts, limit),
            )
            ids = [str(row[0]) for row in cur.fetchall()]
            if not ids:
                con.commit()
                cur.close()
                return []

            id_placeholders = ",".join([ph] * len(ids))
            cur.execute(
                f"""
                UPDATE jobs
                SET
                    status = {ph},
                    lease_until = {ph},
                    worker_id = {ph},
                    updated_at = {ph}
                WHERE job_id IN ({id_placeholders})
                """,
                (STATUS_PROCESSING, lease_until, worker_id, now_ts, *ids),
            )

            cur.execute(
                f"""
                SELECT
                    job_id, kind, queue, payload,
                    status, attempts, max_attempts, worker_id
                FROM jobs
                WHERE job_id IN ({id_placeholders})
                ORDER BY available_at ASC, created_at ASC
                """,
                tuple(ids),
            )
            rows = cur.fetchall()
            con.commit()
            cur.close()
            return [self._row_to_job(row) for row in rows]
        finally:
            con.close()

    @staticmethod
    def _owner_clause(worker_id: str | None) -> tuple[str, tuple[Any, ...]]:
        # A worker may only settle a job it still holds the lease on
        if worker_id is None:
            return "", ()
        ph = sql_placeholder()
        return (
            f" AND status = {ph} AND worker_id = {ph}",
            (STATUS_PROCESSING, worker_id),
        )

    def renew_lease(self, job_id: str, worker_id: str, lease_seconds: int) -> bool:
        """Extend a running job's lease. False if the worker no longer holds it."""
        now_ts = self._now_ts()
        ph = sql_placeholder()
        owner_sql, owner_params = self._owner_clause(worker_id)

        con = get_connection(self.db_path)
        try:
            cur = con.cursor()
            cur.execute(
                f"""
                UPDATE jobs
                SET
                    lease_until = {ph},
                    updated_at = {ph}
                WHERE job_id = {ph}{owner_sql}
                """,
                (now_ts + lease_seconds, now_ts, job_id, *owner_params),
            )
            renewed = cur.rowcount > 0
            con.commit()
            cur.close()
            return renewed
        finally:
            con.close()

    def mark_done(self, job_id: str, worker_id: str | None = None) -> bool:
        """Mark a job done. With worker_id, only while that worker holds it."""
        now_ts = self._now_ts()
        ph = sql_placeholder()
        owner_sql, owner_params = self._owner_clause(worker_id)

        con = get_connection(self.db_path)
        try:
            cur = con.cursor()
            cur.execute(
                f"""
                UPDATE jobs
                SET
                    status = {ph},
                    lease_until = NULL,
                    worker_id = NULL,
                    last_error = NULL,
                    updated_at = {ph}
                WHERE job_id = {ph}{owner_sql}
                """,
                (STATUS_DONE, now_ts, job_id, *owner_params),
            )
            updated = cur.rowcount > 0
            con.commit()
            cur.close()
        finally:
            con.close()

        if not updated:
            logger.warning(f"Job {job_id} no longer held by {worker_id}, result dropped")
        return updated

    def mark_failure(
        self, job_id: str, error_text: str, worker_id: str | None = None
    ) -> str | None:
        """
        Record a failed attempt. Returns the job's new status, or None when
        the job is unknown or (with worker_id) no longer held by that worker.
        """
        now_ts = self._now_ts()
        ph = sql_placeholder()
        owner_sql, owner_params = self._owner_clause(worker_id)
        lock_sql = " FOR UPDATE" if is_postgres_mode() else ""

        con = get_connection(self.db_path)
        try:
            cur = con.cursor()
            cur.execute(
                f"""
                SELECT attempts, max_attempts FROM jobs
                WHERE job_id = {ph}{owner_sql}{lock_sql}
                """,
                (job_id, *owner_params),
            )
            row = cur.fetchone()
            if not row:
                con.commit()
                cur.close()
                if worker_id is not None:
                    logger.warning(
                        f"Job {job_id} no longer held by {worker_id}, failure dropped"
                    )
                return None

            new_status = self._record_failed_attempt(
                cur,
                job_id,
                attempts=int(row[0]) + 1,
                max_attempts=int(row[1]),
                error_text=error_text,
                now_ts=now_ts,
            )
            con.commit()
            cur.close()
            return new_status
        finally:
            con.close()

    def get_queue_stats(self, queue: str | None = None) -> dict[str, int]:
        queue = queue or self.default_queue
        now_ts = self._now_ts()
        ph = sql_placeholder()
        con = get_connection(self.db_path)
        try:
            cur = con.cursor()
            cur.execute(
                f"""
                SELECT
                    SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status = 'failed_retry' THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status = 'processing' THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status = 'done' THEN 1 ELSE 0 END),
                    SUM(CASE WHEN status = 'failed_permanent' THEN 1 ELSE 0 END),
                    COUNT(*)
                FROM jobs
                WHERE queue = {ph}
                """,
                (queue,),
            )
            row = cur.fetchone()

            cur.execute(
                f"""
                SELECT MIN(available_at)
                FROM jobs
                WHERE queue = {ph} AND status IN ({ph}, {ph})
                """,
                (queue, *CLAIMABLE_STATUSES),
            )
            min_available = cur.fetchone()[0]
            cur.close()

            oldest_pending_seconds = 0
            if min_available is not None:
                oldest_pending_seconds = max(0, now_ts - int(min_available))

            return {
                "pending_jobs": int(row[0] or 0),
                "retry_jobs": int(row[1] or 0),
                "processing_jobs": int(row[2] or 0),
                "done_jobs": int(row[3] or 0),
                "failed_permanent_jobs": int(row[4] or 0),
                "total_jobs": int(row[5] or 0),
                "oldest_pending_seconds": oldest_pending_seconds,
            }
        finally:
            con.close()

    def _record_failed_attempt(
        self,
        cur: Any,
        job_id: str,
        *,
        attempts: int,
        max_attempts: int,
        error_text: str,
        now_ts: int,
    ) -> str:
        ph = sql_placeholder()
        if attempts >= max_attempts:
            cur.execute(
                f"""
                UPDATE jobs
                SET
                    status = {ph},
                    attempts = {ph},
                    lease_until = NULL,
                    worker_id = NULL,
                    last_error = {ph},
                    updated_at = {ph}
                WHERE job_id = {ph}
                """,
                (STATUS_FAILED_PERMANENT, attempts, error_text, now_ts, job_id),
            )
            logger.warning(
                f"Job {job_id} failed permanently after {attempts} attempts: {error_text}"
            )
            return STATUS_FAILED_PERMANENT

        available_at = now_ts + self.retry_policy.delay_seconds(attempts)
        cur.execute(
            f"""
            UPDATE jobs
            SET
                status = {ph},
                attempts = {ph},
                available_at = {ph},
                lease_until = NULL,
                worker_id = NULL,
                last_error = {ph},
                updated_at = {ph}
            WHERE job_id = {ph}
            """,
            (STATUS_FAILED_RETRY, attempts, available_at, error_text, now_ts, job_id),
        )
        return STATUS_FAILED_RETRY

    def _recover_expired_locked(self, cur: Any, now_ts: int) -> None:
        ph = sql_placeholder()
        cur.execute(
            f"""
            SELECT job_id, attempts, max_attempts
            FROM jobs
            WHERE status = {ph}
              AND lease_until IS NOT NULL
              AND lease_until < {ph}
            """,
            (STATUS_PROCESSING, now_ts),
        )
        for job_id, attempts, max_attempts in cur.fetchall():
            self._record_failed_attempt(
                cur,
                job_id,
                attempts=int(attempts) + 1,
                max_attempts=int(max_attempts),
                error_text="Lease expired",
                now_ts=now_ts,
            )

    def _row_to_job(self, row: tuple[Any, ...]) -> Job:
        return Job(
            job_id=str(row[0]),
            kind=str(row[1]),
            queue=str(row[2]),
            payload=_decode_payload(row[3]),
            status=str(row[4]),
            attempts=int(row[5]),
            max_attempts=int(row[6]),
            worker_id=str(row[7]) if len(row) > 7 and row[7] is not None else None,
        )
