"""Fakes and snapshot builders shared by the test suite."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

from shiptrack.tracking.client import TrackingClient
from shiptrack.tracking.models import TrackingCategory

IN_PROGRESS = "Is-Tracking"
QUEUED = "Track-Queued"
SUCCEEDED = "Track-Succeeded"
FAILED = "Track-Failed"


def container_snapshot(
    status: str | None,
    *,
    exception: str | None = None,
    number: str = "DFSU7162007",
    carrier: str = "MSC",
    carrier_name: str = "MSC",
) -> dict[str, Any]:
    """Build a provider snapshot holding a container tracking object."""
    return {
        "id": "1",
        "trackingReference": number,
        "containerTracking": {
            "id": "10",
            "number": number,
            "trackStatus": {"status": status, "exception": exception},
            "shippingLine": {"name": carrier_name, "keyname": carrier},
            "arrivalTime": {"value": "2026-02-01T08:00:00Z", "isActual": False},
            "lastMovementEventDescription": "Loaded on vessel",
            "portOfLoading": {"unlocodeName": "Shanghai"},
            "portOfDischarge": {"unlocodeName": "Rotterdam"},
            "currentVessel": {
                "name": "MSC GULSUN",
                "position": {
                    "latitude": 31.2,
                    "longitude": 121.5,
                    "actualSnapTime": "2026-01-20T10:00:00Z",
                },
            },
        },
        "blTracking": None,
        "bookingTracking": None,
    }


def in_progress(**kwargs: Any) -> dict[str, Any]:
    return container_snapshot(IN_PROGRESS, **kwargs)


def succeeded(**kwargs: Any) -> dict[str, Any]:
    return container_snapshot(SUCCEEDED, **kwargs)


def failed(exception: str = "Invalid Number", **kwargs: Any) -> dict[str, Any]:
    return container_snapshot(FAILED, exception=exception, **kwargs)


class VirtualClock:
    """Clock that advances instantly and records every sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        # Yield so concurrent trials interleave
        await asyncio.sleep(0)


class FakeTrackingClient(TrackingClient):
    """Scripted TrackingClient.

    ``scripts`` maps a provider keyname to the sequence of poll answers for
    its job. Each answer is a snapshot dict or an exception instance to
    raise; the last answer repeats once the script is exhausted.
    ``create_errors`` maps a provider keyname to the exception its
    ``create`` raises. After ``request_refresh`` a job is answered from
    ``refresh_script`` instead, starting again from its first answer;
    ``refresh_snapshot`` is shorthand for a one-answer script.
    """

    def __init__(
        self,
        scripts: dict[str, Iterable[Any]] | None = None,
        *,
        create_errors: dict[str, Exception] | None = None,
        lines: dict[TrackingCategory, list[dict[str, Any]]] | None = None,
        refresh_snapshot: dict[str, Any] | None = None,
        refresh_script: Iterable[Any] | None = None,
    ) -> None:
        self.scripts = {key: list(value) for key, value in (scripts or {}).items()}
        self.create_errors = create_errors or {}
        self.lines = lines or {}
        if refresh_script is None and refresh_snapshot is not None:
            refresh_script = [refresh_snapshot]
        self.refresh_script = list(refresh_script) if refresh_script is not None else None
        self.created: list[tuple[str, TrackingCategory, str]] = []
        self.fetches: list[str] = []
        self.refreshes: list[str] = []
        self.lines_calls = 0
        self._jobs: dict[str, str] = {}
        self._cursor: dict[str, int] = {}
        self._refreshed: dict[str, int] = {}
        self.tags: dict[str, list[str]] = {}

    async def create(
        self, reference: str, category: TrackingCategory, provider_id: str
    ) -> str:
        self.created.append((reference, category, provider_id))
        error = self.create_errors.get(provider_id)
        if error is not None:
            raise error
        job_id = f"job-{len(self.created)}-{provider_id}"
        self._jobs[job_id] = provider_id
        self._cursor[job_id] = 0
        return job_id

    def polls_for(self, provider_id: str) -> int:
        return sum(1 for job_id in self.fetches if self._jobs.get(job_id) == provider_id)

    async def fetch(self, job_id: str) -> dict[str, Any]:
        self.fetches.append(job_id)
        if job_id in self._refreshed and self.refresh_script:
            script = self.refresh_script
            index = self._refreshed[job_id]
            self._refreshed[job_id] = index + 1
        else:
            provider_id = self._jobs.get(job_id, job_id)
            script = self.scripts.get(provider_id) or [{}]
            index = self._cursor.get(job_id, 0)
            self._cursor[job_id] = index + 1
        answer = script[min(index, len(script) - 1)]
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def request_refresh(self, job_id: str) -> None:
        self.refreshes.append(job_id)
        self._refreshed[job_id] = 0

    async def available_lines(self) -> dict[TrackingCategory, list[dict[str, Any]]]:
        self.lines_calls += 1
        return self.lines

    async def add_tags(self, job_id: str, tags: list[str]) -> list[str]:
        current = self.tags.setdefault(job_id, [])
        current.extend(tag for tag in tags if tag not in current)
        return list(current)

    async def remove_tags(self, job_id: str, tags: list[str]) -> list[str]:
        self.tags[job_id] = [tag for tag in self.tags.get(job_id, []) if tag not in tags]
        return list(self.tags[job_id])
