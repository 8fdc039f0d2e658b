"""Abstract job store interface.

The review pipeline only needs advance/complete/fail; the CLI additionally
creates, reads, lists and sweeps jobs. Depending on BaseJobStore rather than
a concrete class keeps room for a shared backend when reviews have to be
tracked across processes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mrlens_store.models import Job


class BaseJobStore(ABC):
    """Lifecycle of review jobs: processing → completed | failed."""

    @abstractmethod
    def create(self, url: str, project_path: str | None = None, mr_iid: int | None = None) -> str:
        """Register a new processing job at progress 0 and return its id."""

    @abstractmethod
    def advance(self, job_id: str, progress: int, step: str) -> None:
        """Record progress. Unknown job ids are ignored; never raises."""

    @abstractmethod
    def complete(self, job_id: str, result: Any) -> None:
        """Mark a job completed with its result."""

    @abstractmethod
    def fail(self, job_id: str, error: str) -> None:
        """Mark a job failed with a human-readable error."""

    @abstractmethod
    def get(self, job_id: str) -> Job | None:
        """Return the job, or None if it is unknown or was swept."""

    @abstractmethod
    def list_jobs(self, limit: int = 20, offset: int = 0) -> list[Job]:
        """Return jobs newest first."""

    @abstractmethod
    def sweep(self, now: datetime | None = None) -> int:
        """Evict jobs older than the retention window and return how many went."""

    def close(self) -> None:
        """Release any resources held by the store.

        Optional: subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """
