"""Data models for tracking resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from shiptrack.tracking.errors import InvalidTransition


class TrackingCategory(str, Enum):
    """Kind of tracking reference; values are the provider's tracking types."""

    CONTAINER = "ContainerTracking"
    BILL_OF_LADING = "BLTracking"
    BOOKING = "BookingTracking"

    @classmethod
    def parse(cls, value: str | TrackingCategory) -> TrackingCategory:
        """Parse a category from a wire value or a short alias."""
        if isinstance(value, TrackingCategory):
            return value
        raw = str(value).strip()
        aliases = {
            "container": cls.CONTAINER,
            "ct": cls.CONTAINER,
            "bl": cls.BILL_OF_LADING,
            "billoflading": cls.BILL_OF_LADING,
            "bill_of_lading": cls.BILL_OF_LADING,
            "booking": cls.BOOKING,
            "bk": cls.BOOKING,
        }
        lowered = raw.lower()
        if lowered in aliases:
            return aliases[lowered]
        for member in cls:
            if member.value.lower() == lowered:
                return member
        raise ValueError(f"Unknown tracking category: {value}")

    @property
    def label(self) -> str:
        return {
            TrackingCategory.CONTAINER: "Container",
            TrackingCategory.BILL_OF_LADING: "Bill of Lading",
            TrackingCategory.BOOKING: "Booking",
        }[self]


class ResolutionMode(str, Enum):
    """How the carrier for a reference is chosen."""

    MANUAL = "manual"
    AUTO_DETECT = "auto_detect"


class JobState(str, Enum):
    """Lifecycle state of a remote tracking job."""

    AWAITING_FIRST_POLL = "awaiting_first_poll"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT})


class TrialOutcome(str, Enum):
    """How a single candidate trial ended."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CREATE_REJECTED = "create_rejected"
    TRANSPORT_ERROR = "transport_error"
    ABANDONED = "abandoned"

    @classmethod
    def from_job_state(cls, state: JobState) -> TrialOutcome:
        mapping = {
            JobState.SUCCEEDED: cls.SUCCEEDED,
            JobState.FAILED: cls.FAILED,
            JobState.TIMED_OUT: cls.TIMED_OUT,
        }
        if state not in mapping:
            raise ValueError(f"Job state {state.value} is not terminal")
        return mapping[state]


# Remote status markers, reproduced exactly as the provider reports them
STATUS_IN_PROGRESS = "Is-Tracking"
STATUS_QUEUED = "Track-Queued"
STATUS_SUCCEEDED = "Track-Succeeded"
STATUS_FAILED = "Track-Failed"

IN_PROGRESS_STATUSES = frozenset({STATUS_IN_PROGRESS, STATUS_QUEUED})

PROVIDER_MISMATCH = "ProviderMismatch"


@dataclass(frozen=True)
class TrackingRequest:
    """A caller's request to resolve one tracking reference."""

    reference: str
    category: TrackingCategory
    mode: ResolutionMode = ResolutionMode.AUTO_DETECT
    explicit_provider: str | None = None

    def __post_init__(self) -> None:
        reference = (self.reference or "").strip()
        if not reference:
            raise ValueError("reference must not be empty")
        object.__setattr__(self, "reference", reference)
        object.__setattr__(self, "category", TrackingCategory.parse(self.category))
        object.__setattr__(self, "mode", ResolutionMode(self.mode))
        if self.explicit_provider is not None:
            provider = self.explicit_provider.strip().upper()
            object.__setattr__(self, "explicit_provider", provider or None)
        if self.mode == ResolutionMode.MANUAL and not self.explicit_provider:
            raise ValueError("explicit_provider is required in manual mode")


@dataclass(frozen=True)
class CandidateProvider:
    """A carrier that can be asked to track references."""

    id: str
    display_name: str
    categories: frozenset[TrackingCategory] = field(
        default_factory=lambda: frozenset(TrackingCategory)
    )

    def supports(self, category: TrackingCategory) -> bool:
        return category in self.categories


class KeyDate(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    value: str | None = None
    is_actual: bool | None = None


class Route(BaseModel):
    model_config = ConfigDict(frozen=True)

    origin: str | None = None
    destination: str | None = None
    place_of_receipt: str | None = None
    place_of_delivery: str | None = None


class VesselPosition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    observed_at: str | None = None


class SubUnit(BaseModel):
    """A container tracked beneath a bill of lading."""

    model_config = ConfigDict(frozen=True)

    number: str | None = None
    status_label: str | None = None
    key_dates: list[KeyDate] = Field(default_factory=list)
    vessel: VesselPosition | None = None


class TrackingResult(BaseModel):
    """Normalized view of a provider snapshot."""

    model_config = ConfigDict(frozen=True)

    category: TrackingCategory
    reference: str | None = None
    carrier_name: str | None = None
    carrier_code: str | None = None
    status_label: str | None = None
    key_dates: list[KeyDate] = Field(default_factory=list)
    route: Route = Field(default_factory=Route)
    sub_units: list[SubUnit] = Field(default_factory=list)
    last_movement: str | None = None
    vessel: VesselPosition | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        return self.model_dump(mode="json")


@dataclass
class TrackingJob:
    """A remote tracking job and its local polling state.

    Only the PollSupervisor running the job mutates it, and only through
    ``transition``/``record_attempt``. Terminal states are final.
    """

    job_id: str
    provider: str
    category: TrackingCategory
    reference: str
    state: JobState = JobState.AWAITING_FIRST_POLL
    attempts: int = 0
    last_error: str | None = None
    result: TrackingResult | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def _ensure_mutable(self) -> None:
        if self.is_terminal:
            raise InvalidTransition(
                f"Job {self.job_id} is already {self.state.value}; no further changes allowed"
            )

    def record_attempt(self) -> int:
        self._ensure_mutable()
        self.attempts += 1
        return self.attempts

    def note_error(self, error: str | None) -> None:
        """Set or clear the last non-terminal error."""
        self._ensure_mutable()
        self.last_error = error

    def transition(
        self,
        state: JobState,
        *,
        error: str | None = None,
        result: TrackingResult | None = None,
    ) -> None:
        self._ensure_mutable()
        if state == JobState.AWAITING_FIRST_POLL and self.state != state:
            raise InvalidTransition(
                f"Job {self.job_id} cannot return to {state.value}"
            )
        if state == JobState.SUCCEEDED and result is None:
            raise InvalidTransition("A succeeded job needs a result")
        self.state = state
        if error is not None:
            self.last_error = error
        if result is not None:
            self.result = result


class CandidateAttempt(BaseModel):
    """One row of the per-candidate trial log."""

    model_config = ConfigDict(frozen=True)

    candidate: str
    outcome: TrialOutcome
    error: str | None = None
    attempts: int = 0
    job_id: str | None = None


class ResolutionOutcome(BaseModel):
    """Final, immutable output for one tracking request."""

    model_config = ConfigDict(frozen=True)

    reference: str
    category: TrackingCategory
    mode: ResolutionMode
    winner: str | None = None
    attempts: int = 0
    candidates_tried: int = 0
    per_candidate_log: list[CandidateAttempt] = Field(default_factory=list)
    result: TrackingResult | None = None
    job_id: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.winner is not None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        return self.model_dump(mode="json")
