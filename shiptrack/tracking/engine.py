"""Carrier resolution: trial candidates until one tracks the reference."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from shiptrack.config.settings import Settings
from shiptrack.tracking.catalog import CandidateCatalog
from shiptrack.tracking.client import TrackingClient
from shiptrack.tracking.errors import (
    AggregateFailure,
    CreateRejected,
    ResolutionFailed,
    ResolutionTimeout,
    TransportError,
)
from shiptrack.tracking.events import (
    CandidatePollTick,
    CandidateStarted,
    CandidateTerminal,
    EventHub,
    Resolved,
)
from shiptrack.tracking.models import (
    CandidateAttempt,
    CandidateProvider,
    JobState,
    ResolutionMode,
    ResolutionOutcome,
    TrackingJob,
    TrackingRequest,
    TrialOutcome,
)
from shiptrack.tracking.registry import JobRegistry
from shiptrack.tracking.scheduler import Clock, default_clock
from shiptrack.tracking.supervisor import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    PollSupervisor,
)

logger = logging.getLogger(__name__)


@dataclass
class _Trial:
    """Result of trialling one candidate."""

    attempt: CandidateAttempt
    job: TrackingJob | None = None

    @property
    def succeeded(self) -> bool:
        return self.attempt.outcome == TrialOutcome.SUCCEEDED


@dataclass
class _RequestState:
    """Mutable bookkeeping owned by one ``resolve`` call."""

    request: TrackingRequest
    started: dict[int, CandidateProvider] = field(default_factory=dict)
    finished: dict[int, CandidateAttempt] = field(default_factory=dict)
    live_jobs: dict[int, TrackingJob] = field(default_factory=dict)

    def record(self, index: int, attempt: CandidateAttempt) -> None:
        self.finished[index] = attempt
        self.live_jobs.pop(index, None)

    def unfinished(self) -> list[tuple[int, CandidateProvider]]:
        return [
            (index, candidate)
            for index, candidate in sorted(self.started.items())
            if index not in self.finished
        ]

    @property
    def log(self) -> list[CandidateAttempt]:
        """Finished trials in catalog order."""
        return [self.finished[index] for index in sorted(self.finished)]


class ResolutionEngine:
    """Coordinates candidate trials for tracking requests.

    Manual requests run a single trial against the explicit carrier.
    Auto-detect requests walk the catalog in order, ``trial_concurrency``
    candidates at a time (1 by default, so trial i+1 only starts once trial
    i is terminal or its ``create`` failed).

    The engine keeps no state between requests; only the JobRegistry is
    shared, so one engine can serve many concurrent requests.
    """

    def __init__(
        self,
        client: TrackingClient,
        catalog: CandidateCatalog,
        registry: JobRegistry | None = None,
        *,
        events: EventHub | None = None,
        clock: Clock | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        trial_concurrency: int = 1,
        separate_transport_errors: bool = False,
        max_transport_errors: int = 3,
        resolution_timeout: float | None = None,
    ) -> None:
        if trial_concurrency < 1:
            raise ValueError("trial_concurrency must be >= 1")
        self.client = client
        self.catalog = catalog
        self.registry = registry if registry is not None else JobRegistry()
        self.events = events if events is not None else EventHub()
        self.clock = clock or default_clock()
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.trial_concurrency = trial_concurrency
        self.separate_transport_errors = separate_transport_errors
        self.max_transport_errors = max_transport_errors
        self.resolution_timeout = resolution_timeout

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        client: TrackingClient,
        catalog: CandidateCatalog,
        registry: JobRegistry | None = None,
        events: EventHub | None = None,
        clock: Clock | None = None,
    ) -> ResolutionEngine:
        return cls(
            client,
            catalog,
            registry,
            events=events,
            clock=clock,
            poll_interval=settings.poll_interval_seconds,
            max_attempts=settings.max_poll_attempts,
            trial_concurrency=settings.trial_concurrency,
            separate_transport_errors=settings.separate_transport_errors,
            max_transport_errors=settings.max_transport_errors,
            resolution_timeout=settings.resolution_timeout_seconds,
        )

    def supervise(
        self,
        job: TrackingJob,
        on_tick: Callable[[TrackingJob], None] | None = None,
    ) -> PollSupervisor:
        """Build a supervisor for ``job`` under this engine's polling policy."""
        return PollSupervisor(
            self.client,
            job,
            interval=self.poll_interval,
            max_attempts=self.max_attempts,
            clock=self.clock,
            separate_transport_errors=self.separate_transport_errors,
            max_transport_errors=self.max_transport_errors,
            on_tick=on_tick,
        )

    async def resolve(self, request: TrackingRequest) -> ResolutionOutcome:
        """Resolve ``request`` to a carrier and tracking result.

        Returns:
            The outcome naming the winning carrier.

        Raises:
            ResolutionFailed: The manual-mode carrier did not track the reference.
            AggregateFailure: No auto-detect candidate tracked the reference.
            ResolutionTimeout: The overall ``resolution_timeout`` elapsed.
        """
        state = _RequestState(request=request)
        logger.info(
            "Resolving %s %s (%s)",
            request.category.label.lower(),
            request.reference,
            request.mode.value,
        )

        if self.resolution_timeout is None:
            return await self._resolve(state)

        try:
            return await asyncio.wait_for(
                self._resolve(state), timeout=self.resolution_timeout
            )
        except asyncio.TimeoutError:
            # Trials cut off mid-poll or mid-create
            for index, candidate in state.unfinished():
                job = state.live_jobs.get(index)
                state.record(
                    index,
                    CandidateAttempt(
                        candidate=candidate.id,
                        outcome=TrialOutcome.ABANDONED,
                        error="ResolutionTimeout",
                        attempts=job.attempts if job is not None else 0,
                        job_id=job.job_id if job is not None else None,
                    ),
                )
            outcome = self._build_outcome(state)
            self.events.publish(Resolved(request=request, outcome=outcome))
            raise ResolutionTimeout(
                f"Resolution of {request.reference} exceeded "
                f"{self.resolution_timeout:g}s after {outcome.candidates_tried} candidate(s)",
                outcome,
            ) from None

    async def _resolve(self, state: _RequestState) -> ResolutionOutcome:
        if state.request.mode == ResolutionMode.MANUAL:
            return await self._resolve_manual(state)
        return await self._resolve_auto(state)

    async def _resolve_manual(self, state: _RequestState) -> ResolutionOutcome:
        request = state.request
        provider_id = request.explicit_provider or ""
        candidate = CandidateProvider(id=provider_id, display_name=provider_id)

        trial = await self._run_trial(state, candidate, index=0, total=1)
        outcome = self._build_outcome(state, trial if trial.succeeded else None)
        self.events.publish(Resolved(request=request, outcome=outcome))

        if trial.succeeded:
            return outcome

        detail = trial.attempt.error or trial.attempt.outcome.value
        raise ResolutionFailed(
            f"{provider_id} could not track {request.reference}: "
            f"{trial.attempt.outcome.value} ({detail})",
            outcome,
        )

    async def _resolve_auto(self, state: _RequestState) -> ResolutionOutcome:
        request = state.request
        candidates = await self.catalog.list(request.category)
        total = len(candidates)

        for start in range(0, total, self.trial_concurrency):
            window = candidates[start : start + self.trial_concurrency]
            if len(window) == 1:
                trials = [await self._run_trial(state, window[0], start, total)]
            else:
                trials = await self._run_window(state, window, start, total)

            winner = next((trial for trial in trials if trial.succeeded), None)
            if winner is not None:
                outcome = self._build_outcome(state, winner)
                logger.info(
                    "Resolved %s via %s after %d candidate(s)",
                    request.reference,
                    outcome.winner,
                    outcome.candidates_tried,
                )
                self.events.publish(Resolved(request=request, outcome=outcome))
                return outcome

        outcome = self._build_outcome(state)
        logger.info(
            "No carrier tracked %s (%d candidate(s) tried)",
            request.reference,
            outcome.candidates_tried,
        )
        self.events.publish(Resolved(request=request, outcome=outcome))
        if total == 0:
            message = f"No candidate carriers for {request.category.label.lower()} tracking"
        else:
            message = f"All {total} candidate carriers failed for {request.reference}"
        raise AggregateFailure(message, outcome)

    async def _run_window(
        self,
        state: _RequestState,
        window: list[CandidateProvider],
        start: int,
        total: int,
    ) -> list[_Trial]:
        """Trial several candidates at once, keeping catalog priority.

        The window is decided as soon as the lowest-index success is known,
        i.e. every earlier candidate has finished without success. Trials
        still running at that point are abandoned.
        """
        tasks = [
            asyncio.create_task(self._run_trial(state, candidate, start + offset, total))
            for offset, candidate in enumerate(window)
        ]
        results: list[_Trial | None] = [None] * len(tasks)

        try:
            pending = set(tasks)
            while pending:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    results[tasks.index(task)] = task.result()
                if self._window_decided(results):
                    break
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        trials: list[_Trial] = []
        for offset, task in enumerate(tasks):
            if results[offset] is not None:
                trials.append(results[offset])
                continue
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            candidate = window[offset]
            job = state.live_jobs.get(start + offset)
            attempt = CandidateAttempt(
                candidate=candidate.id,
                outcome=TrialOutcome.ABANDONED,
                attempts=job.attempts if job is not None else 0,
                job_id=job.job_id if job is not None else None,
            )
            state.record(start + offset, attempt)
            self.events.publish(
                CandidateTerminal(
                    request=state.request,
                    candidate=candidate.id,
                    outcome=TrialOutcome.ABANDONED,
                )
            )
            trials.append(_Trial(attempt=attempt, job=job))
        return trials

    @staticmethod
    def _window_decided(results: list[_Trial | None]) -> bool:
        for trial in results:
            if trial is None:
                return False
            if trial.succeeded:
                return True
        return False

    async def _run_trial(
        self,
        state: _RequestState,
        candidate: CandidateProvider,
        index: int,
        total: int,
    ) -> _Trial:
        request = state.request
        state.started[index] = candidate
        logger.info(
            "Trying %s for %s (%d/%d)",
            candidate.id,
            request.reference,
            index + 1,
            total,
        )
        self.events.publish(
            CandidateStarted(
                request=request, candidate=candidate.id, index=index, total=total
            )
        )

        try:
            job_id = await self.client.create(
                request.reference, request.category, candidate.id
            )
        except CreateRejected as exc:
            return self._finish_without_job(
                state, index, candidate, TrialOutcome.CREATE_REJECTED, exc.reason
            )
        except TransportError as exc:
            logger.warning("Create via %s failed: %s", candidate.id, exc)
            return self._finish_without_job(
                state, index, candidate, TrialOutcome.TRANSPORT_ERROR, str(exc)
            )

        job = TrackingJob(
            job_id=job_id,
            provider=candidate.id,
            category=request.category,
            reference=request.reference,
        )
        if not self.registry.register(
            job_id,
            provider=candidate.id,
            category=request.category,
            reference=request.reference,
        ):
            logger.warning("Job %s is already being polled", job_id)
            attempt = CandidateAttempt(
                candidate=candidate.id,
                outcome=TrialOutcome.FAILED,
                error="DuplicateJob",
                job_id=job_id,
            )
            state.record(index, attempt)
            self._publish_terminal(request, attempt)
            return _Trial(attempt=attempt)

        state.live_jobs[index] = job
        supervisor = self.supervise(
            job, on_tick=lambda polled: self._on_tick(request, candidate, polled)
        )
        try:
            await supervisor.run()
        except asyncio.CancelledError:
            supervisor.abandon()
            raise
        finally:
            self.registry.unregister(job_id)

        attempt = CandidateAttempt(
            candidate=candidate.id,
            outcome=TrialOutcome.from_job_state(job.state),
            error=job.last_error if job.state != JobState.SUCCEEDED else None,
            attempts=job.attempts,
            job_id=job_id,
        )
        state.record(index, attempt)
        logger.info(
            "%s finished %s after %d poll(s)%s",
            candidate.id,
            job.state.value,
            job.attempts,
            f": {attempt.error}" if attempt.error else "",
        )
        self._publish_terminal(request, attempt)
        return _Trial(attempt=attempt, job=job)

    def _finish_without_job(
        self,
        state: _RequestState,
        index: int,
        candidate: CandidateProvider,
        outcome: TrialOutcome,
        error: str,
    ) -> _Trial:
        logger.info("%s declined %s: %s", candidate.id, state.request.reference, error)
        attempt = CandidateAttempt(candidate=candidate.id, outcome=outcome, error=error)
        state.record(index, attempt)
        self._publish_terminal(state.request, attempt)
        return _Trial(attempt=attempt)

    def _on_tick(
        self, request: TrackingRequest, candidate: CandidateProvider, job: TrackingJob
    ) -> None:
        self.registry.update_attempts(job.job_id, job.attempts)
        self.events.publish(
            CandidatePollTick(
                request=request,
                candidate=candidate.id,
                job_id=job.job_id,
                attempt=job.attempts,
                max_attempts=self.max_attempts,
            )
        )

    def _publish_terminal(
        self, request: TrackingRequest, attempt: CandidateAttempt
    ) -> None:
        self.events.publish(
            CandidateTerminal(
                request=request,
                candidate=attempt.candidate,
                outcome=attempt.outcome,
                error=attempt.error,
            )
        )

    @staticmethod
    def _build_outcome(
        state: _RequestState, winner: _Trial | None = None
    ) -> ResolutionOutcome:
        request = state.request
        log = state.log
        job = winner.job if winner is not None else None
        return ResolutionOutcome(
            reference=request.reference,
            category=request.category,
            mode=request.mode,
            winner=winner.attempt.candidate if winner is not None else None,
            attempts=sum(entry.attempts for entry in log),
            candidates_tried=len(log),
            per_candidate_log=log,
            result=job.result if job is not None else None,
            job_id=job.job_id if job is not None else None,
        )
