"""
Job Runner

Claims jobs from the queue and dispatches them to their handlers.
"""

import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable

from reply_crawler.services.jobs import Job, JobQueue

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[Any]]


class UnknownJobKind(LookupError):
    pass


class JobRunner:
    """
    Runs claimed jobs one after another.

    A crawl can outlive its lease, so the lease is renewed before each job
    starts and periodically while its handler runs. Outcomes are recorded
    only while this worker still holds the job.
    """

    def __init__(
        self,
        jobs: JobQueue,
        handlers: dict[str, Handler],
        *,
        queue: str | None = None,
        batch_size: int = 10,
        lease_seconds: int = 300,
        poll_interval: float = 0.5,
        renew_interval: float | None = None,
    ):
        self.jobs = jobs
        self.handlers = handlers
        self.queue = queue
        self.batch_size = batch_size
        self.lease_seconds = lease_seconds
        self.poll_interval = poll_interval
        self.renew_interval = (
            renew_interval if renew_interval is not None else lease_seconds / 3
        )

    async def _keep_lease(self, job: Job, worker_name: str) -> None:
        while True:
            await asyncio.sleep(self.renew_interval)
            if not self.jobs.renew_lease(job.job_id, worker_name, self.lease_seconds):
                logger.warning(f"{worker_name} lost the lease on job {job.job_id}")
                return

    async def run_job(self, job: Job, worker_name: str | None = None) -> bool:
        """Execute one claimed job and record the outcome. Returns success."""
        worker_name = worker_name or job.worker_id
        heartbeat = None
        if worker_name is not None:
            heartbeat = asyncio.create_task(self._keep_lease(job, worker_name))

        try:
            handler = self.handlers.get(job.kind)
            if handler is None:
                raise UnknownJobKind(f"No handler for job kind '{job.kind}'")
            await handler(job.payload)
        except Exception as exc:
            error_text = str(exc) or type(exc).__name__
            logger.exception(
                "Job %s (%s) failed on attempt %s/%s: %s",
                job.job_id,
                job.kind,
                job.attempts + 1,
                job.max_attempts,
                error_text,
            )
            self.jobs.mark_failure(job.job_id, error_text, worker_id=worker_name)
            return False
        finally:
            if heartbeat is not None:
                heartbeat.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await heartbeat

        return self.jobs.mark_done(job.job_id, worker_id=worker_name)

    async def run_once(self, worker_name: str) -> int:
        """Claim and run one batch. Returns the number of jobs claimed."""
        jobs = self.jobs.claim_jobs(
            limit=self.batch_size,
            lease_seconds=self.lease_seconds,
            worker_id=worker_name,
            queue=self.queue,
        )
        for job in jobs:
            # Earlier jobs in the batch may have used up this one's lease
            if not self.jobs.renew_lease(job.job_id, worker_name, self.lease_seconds):
                logger.warning(f"{worker_name} skipping job {job.job_id}: lease lost")
                continue
            await self.run_job(job, worker_name)
        return len(jobs)

    async def worker_loop(self, worker_name: str) -> None:
        logger.info(f"{worker_name} started")
        while True:
            try:
                claimed = await self.run_once(worker_name)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s failed to claim jobs", worker_name)
                claimed = 0

            if not claimed:
                await asyncio.sleep(self.poll_interval)
