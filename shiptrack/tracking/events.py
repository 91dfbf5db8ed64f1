"""Progress events emitted while a tracking request is resolved."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Union

from shiptrack.tracking.models import (
    ResolutionOutcome,
    TrackingRequest,
    TrialOutcome,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateStarted:
    request: TrackingRequest
    candidate: str
    index: int
    total: int


@dataclass(frozen=True)
class CandidatePollTick:
    request: TrackingRequest
    candidate: str
    job_id: str
    attempt: int
    max_attempts: int


@dataclass(frozen=True)
class CandidateTerminal:
    request: TrackingRequest
    candidate: str
    outcome: TrialOutcome
    error: str | None = None


@dataclass(frozen=True)
class Resolved:
    request: TrackingRequest
    outcome: ResolutionOutcome


ProgressEvent = Union[CandidateStarted, CandidatePollTick, CandidateTerminal, Resolved]
Subscriber = Callable[[ProgressEvent], None]


class EventHub:
    """Fan-out of progress events to any number of subscribers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Progress subscriber failed on %s", type(event).__name__
                )
