"""Carrier discovery for tracking references.

Public API:
- ResolutionEngine: trials candidate carriers for a TrackingRequest
- PollSupervisor: polls one remote tracking job to a terminal state
- JobRegistry: shared table of jobs currently being polled
- CandidateCatalog / StaticCandidateCatalog / RemoteCandidateCatalog
- TrackingClient / GraphQLTrackingClient: provider transport
- project: snapshot -> TrackingResult

TrackingService lives in ``shiptrack.tracking.service``.
"""

from shiptrack.tracking.catalog import (
    CandidateCatalog,
    RemoteCandidateCatalog,
    StaticCandidateCatalog,
)
from shiptrack.tracking.client import GraphQLTrackingClient, TrackingClient
from shiptrack.tracking.engine import ResolutionEngine
from shiptrack.tracking.errors import (
    AggregateFailure,
    CreateRejected,
    ResolutionError,
    ResolutionFailed,
    ResolutionTimeout,
    TrackingError,
    TransportError,
)
from shiptrack.tracking.events import EventHub
from shiptrack.tracking.models import (
    CandidateAttempt,
    CandidateProvider,
    JobState,
    ResolutionMode,
    ResolutionOutcome,
    TrackingCategory,
    TrackingJob,
    TrackingRequest,
    TrackingResult,
    TrialOutcome,
)
from shiptrack.tracking.projector import project
from shiptrack.tracking.registry import JobRegistry
from shiptrack.tracking.supervisor import PollSupervisor

__all__ = [
    "AggregateFailure",
    "CandidateAttempt",
    "CandidateCatalog",
    "CandidateProvider",
    "CreateRejected",
    "EventHub",
    "GraphQLTrackingClient",
    "JobRegistry",
    "JobState",
    "PollSupervisor",
    "RemoteCandidateCatalog",
    "ResolutionEngine",
    "ResolutionError",
    "ResolutionFailed",
    "ResolutionMode",
    "ResolutionOutcome",
    "ResolutionTimeout",
    "StaticCandidateCatalog",
    "TrackingCategory",
    "TrackingClient",
    "TrackingError",
    "TrackingJob",
    "TrackingRequest",
    "TrackingResult",
    "TransportError",
    "TrialOutcome",
    "project",
]
