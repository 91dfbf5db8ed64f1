"""Error taxonomy for tracking resolution.

Transport and create failures are raised by the TrackingClient and
recovered inside the engine. Only ResolutionError subclasses reach callers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shiptrack.tracking.models import CandidateAttempt, ResolutionOutcome


class TrackingError(Exception):
    """Base class for all tracking errors."""


class TransportError(TrackingError):
    """Infrastructure fault while talking to the provider."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error


class CreateRejected(TrackingError):
    """The provider explicitly declined to create a tracking job."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class InvalidTransition(TrackingError):
    """A tracking job was mutated after reaching a terminal state."""


class ResolutionError(TrackingError):
    """A tracking request ended without a winning carrier."""

    def __init__(self, message: str, outcome: ResolutionOutcome):
        super().__init__(message)
        self.outcome = outcome

    @property
    def candidates_tried(self) -> int:
        return self.outcome.candidates_tried

    @property
    def per_candidate_log(self) -> list[CandidateAttempt]:
        return list(self.outcome.per_candidate_log)


class ResolutionFailed(ResolutionError):
    """The single carrier of a manual-mode request failed."""


class AggregateFailure(ResolutionError):
    """Every candidate carrier was tried in auto-detect mode and none succeeded."""


class ResolutionTimeout(ResolutionError):
    """The request exceeded its overall wall-clock budget."""
