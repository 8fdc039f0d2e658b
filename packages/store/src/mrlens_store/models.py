"""Review job data models.

Decoupled from mrlens_core so the store layer can be used independently;
a job's result is whatever the pipeline hands to complete().
"""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"
TERMINAL_STATUSES = (COMPLETED, FAILED)


def new_job_id() -> str:
    """Return an id like review_1700000000000_k3j9x0a1b."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"review_{int(time.time() * 1000)}_{suffix}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """A tracked review run.

    Mutated in place by the store while processing; frozen in practice once
    the status is completed or failed.
    """

    id: str
    status: str = PROCESSING
    progress: int = 0
    current_step: str = "Queued"
    start_time: datetime | None = None
    last_updated: datetime | None = None
    end_time: datetime | None = None
    result: Any = None
    error: str | None = None
    url: str | None = None
    project_path: str | None = None
    mr_iid: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
