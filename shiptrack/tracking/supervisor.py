"""Fixed-interval polling of one tracking job to a terminal state."""

from __future__ import annotations

import logging
from collections.abc import Callable

from shiptrack.tracking.client import TrackingClient
from shiptrack.tracking.errors import TransportError
from shiptrack.tracking.models import (
    IN_PROGRESS_STATUSES,
    PROVIDER_MISMATCH,
    STATUS_FAILED,
    STATUS_SUCCEEDED,
    JobState,
    TrackingJob,
)
from shiptrack.tracking.projector import project, read_status
from shiptrack.tracking.scheduler import Clock, default_clock

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MAX_ATTEMPTS = 15


class PollSupervisor:
    """Drives a single TrackingJob through its state machine.

    Each tick fetches the job snapshot and maps the provider status:

    - ``Is-Tracking``/``Track-Queued``: poll again after ``interval`` while
      ``attempts < max_attempts``, otherwise ``TimedOut``.
    - ``Track-Succeeded``: ``Succeeded`` with a projected result.
    - ``Track-Failed``: ``Failed`` with the provider's exception detail.
    - no tracking object or an unknown status: ``Failed`` with
      ``ProviderMismatch``.

    A transport fault consumes an attempt like an in-progress answer unless
    ``separate_transport_errors`` is set, in which case it is retried without
    touching the budget, up to ``max_transport_errors`` in a row.
    """

    def __init__(
        self,
        client: TrackingClient,
        job: TrackingJob,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Clock | None = None,
        separate_transport_errors: bool = False,
        max_transport_errors: int = 3,
        on_tick: Callable[[TrackingJob], None] | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.client = client
        self.job = job
        self.interval = interval
        self.max_attempts = max_attempts
        self.clock = clock or default_clock()
        self.separate_transport_errors = separate_transport_errors
        self.max_transport_errors = max_transport_errors
        self.on_tick = on_tick
        self._abandoned = False
        self._transport_errors = 0

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    def abandon(self) -> None:
        """Stop polling; late responses are discarded."""
        if not self._abandoned:
            logger.debug("Abandoning poll of job %s", self.job.job_id)
        self._abandoned = True

    async def run(self) -> TrackingJob:
        """Poll until the job is terminal or the supervisor is abandoned."""
        job = self.job
        while not self._abandoned and not job.is_terminal:
            await self._tick()
            if self._abandoned or job.is_terminal:
                break
            await self.clock.sleep(self.interval)
        return job

    async def _tick(self) -> None:
        job = self.job

        try:
            snapshot = await self.client.fetch(job.job_id)
        except TransportError as exc:
            if self._abandoned:
                return
            self._on_transport_error(exc)
            return

        if self._abandoned:
            return

        self._transport_errors = 0
        job.record_attempt()
        job.note_error(None)
        if job.state == JobState.AWAITING_FIRST_POLL:
            job.transition(JobState.POLLING)
        self._emit_tick()

        status = read_status(job.category, snapshot)
        if status is None:
            logger.info(
                "Job %s (%s): no %s tracking object",
                job.job_id,
                job.provider,
                job.category.label.lower(),
            )
            job.transition(JobState.FAILED, error=PROVIDER_MISMATCH)
            return

        remote_status, exception = status
        if remote_status == STATUS_SUCCEEDED:
            job.transition(JobState.SUCCEEDED, result=project(job.category, snapshot))
        elif remote_status == STATUS_FAILED:
            job.transition(JobState.FAILED, error=exception or "Invalid reference")
        elif remote_status in IN_PROGRESS_STATUSES:
            logger.debug(
                "Job %s (%s) still tracking, attempt %d/%d",
                job.job_id,
                job.provider,
                job.attempts,
                self.max_attempts,
            )
            self._check_budget()
        else:
            logger.info(
                "Job %s (%s): unrecognised status %r",
                job.job_id,
                job.provider,
                remote_status,
            )
            job.transition(JobState.FAILED, error=PROVIDER_MISMATCH)

    def _on_transport_error(self, exc: TransportError) -> None:
        job = self.job
        logger.warning("Poll of job %s failed: %s", job.job_id, exc)

        if self.separate_transport_errors:
            self._transport_errors += 1
            if self._transport_errors >= self.max_transport_errors:
                if job.state == JobState.AWAITING_FIRST_POLL:
                    job.transition(JobState.POLLING)
                job.transition(JobState.FAILED, error=f"TransportError: {exc}")
            return

        job.record_attempt()
        if job.state == JobState.AWAITING_FIRST_POLL:
            job.transition(JobState.POLLING)
        job.note_error(f"TransportError: {exc}")
        self._emit_tick()
        self._check_budget()

    def _check_budget(self) -> None:
        job = self.job
        if job.attempts >= self.max_attempts:
            logger.info(
                "Job %s (%s) timed out after %d polls",
                job.job_id,
                job.provider,
                job.attempts,
            )
            job.transition(JobState.TIMED_OUT)

    def _emit_tick(self) -> None:
        if self.on_tick is None:
            return
        self.on_tick(self.job)
