"""InMemoryJobStore: job tracking for a single process.

Jobs live in a dict owned by the store. Each job has a single writer (the
review flow that created it), while status queries may read at any time;
within one asyncio process that needs no locking. The store is NOT shared
between processes: running several workers behind a load balancer needs a
shared backend implementing BaseJobStore.

Retention is purely age-based. sweep() evicts every job that started before
the retention window, whatever its status, so a job stuck in processing is
eventually purged too.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from mrlens_store.base import BaseJobStore
from mrlens_store.models import COMPLETED, FAILED, Job, new_job_id, utcnow

logger = logging.getLogger(__name__)

_SWEEP_INTERVAL_SECONDS = 60 * 60


class InMemoryJobStore(BaseJobStore):
    def __init__(self, retention_days: float = 7, clock: Callable[[], datetime] = utcnow):
        self.retention = timedelta(days=retention_days)
        self._clock = clock
        self._jobs: dict[str, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def create(self, url: str, project_path: str | None = None, mr_iid: int | None = None) -> str:
        job_id = new_job_id()
        while job_id in self._jobs:
            job_id = new_job_id()
        now = self._clock()
        self._jobs[job_id] = Job(
            id=job_id,
            start_time=now,
            last_updated=now,
            url=url,
            project_path=project_path,
            mr_iid=mr_iid,
        )
        return job_id

    def advance(self, job_id: str, progress: int, step: str) -> None:
        job = self._jobs.get(job_id)
        if job is None or job.is_terminal:
            return
        job.progress = progress
        job.current_step = step
        job.last_updated = self._clock()

    def complete(self, job_id: str, result: Any) -> None:
        job = self._finishable(job_id, COMPLETED)
        if job is None:
            return
        job.status = COMPLETED
        job.result = result
        job.end_time = job.last_updated = self._clock()

    def fail(self, job_id: str, error: str) -> None:
        job = self._finishable(job_id, FAILED)
        if job is None:
            return
        job.status = FAILED
        job.error = error
        job.result = None
        job.end_time = job.last_updated = self._clock()

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def list_jobs(self, limit: int = 20, offset: int = 0) -> list[Job]:
        jobs = sorted(self._jobs.values(), key=lambda j: j.start_time, reverse=True)
        return jobs[offset : offset + limit]

    def sweep(self, now: datetime | None = None) -> int:
        cutoff = (now or self._clock()) - self.retention
        expired = [job_id for job_id, job in self._jobs.items() if job.start_time < cutoff]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.info("Cleaned up %d old review job(s)", len(expired))
        return len(expired)

    def close(self) -> None:
        self._jobs.clear()

    def _finishable(self, job_id: str, new_status: str) -> Job | None:
        job = self._jobs.get(job_id)
        if job is None:
            return None
        if job.is_terminal:
            logger.warning("Ignoring %s for job %s: already %s", new_status, job_id, job.status)
            return None
        return job


async def sweep_periodically(
    store: BaseJobStore,
    interval: float = _SWEEP_INTERVAL_SECONDS,
    sleep: Callable[[float], Any] = asyncio.sleep,
) -> None:
    """Call store.sweep() every ``interval`` seconds until cancelled."""
    logger.info("Periodic job cleanup scheduled (every %ss)", interval)
    while True:
        await sleep(interval)
        try:
            store.sweep()
        except Exception:
            logger.exception("Job cleanup failed")
