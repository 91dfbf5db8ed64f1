"""Process-wide table of tracking jobs that are currently being polled."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace

from shiptrack.tracking.models import TrackingCategory


@dataclass(frozen=True)
class ActiveJob:
    """Progress metadata for a job under supervision."""

    job_id: str
    provider: str
    category: TrackingCategory
    reference: str
    attempts: int = 0


class JobRegistry:
    """Shared registry of active jobs.

    A job id is present from the moment its ``create`` call succeeds until
    its supervisor reaches a terminal state or is abandoned. All access goes
    through one lock so concurrent requests never lose an update.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[str, ActiveJob] = {}

    def register(
        self,
        job_id: str,
        *,
        provider: str = "",
        category: TrackingCategory = TrackingCategory.CONTAINER,
        reference: str = "",
    ) -> bool:
        """Register a job; returns False if it is already being polled."""
        with self._lock:
            if job_id in self._jobs:
                return False
            self._jobs[job_id] = ActiveJob(
                job_id=job_id,
                provider=provider,
                category=category,
                reference=reference,
            )
            return True

    def unregister(self, job_id: str) -> bool:
        """Remove a job; returns False if it was not registered."""
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def update_attempts(self, job_id: str, attempts: int) -> None:
        with self._lock:
            active = self._jobs.get(job_id)
            if active is not None:
                self._jobs[job_id] = replace(active, attempts=attempts)

    def is_active(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def list_active(self) -> list[str]:
        with self._lock:
            return list(self._jobs)

    def snapshot(self) -> list[ActiveJob]:
        with self._lock:
            return list(self._jobs.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
