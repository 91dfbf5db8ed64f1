"""Caller-facing tracking service.

Wraps the ResolutionEngine with request handles, progress subscriptions,
manual refresh and tagging of resolved jobs, and persistence of successful
outcomes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from shiptrack.config.settings import CatalogSource, Settings
from shiptrack.shipments.models import ShipmentRecord
from shiptrack.shipments.repository import ShipmentRepository
from shiptrack.tracking.catalog import (
    CandidateCatalog,
    RemoteCandidateCatalog,
    StaticCandidateCatalog,
)
from shiptrack.tracking.client import GraphQLTrackingClient, TrackingClient
from shiptrack.tracking.engine import ResolutionEngine
from shiptrack.tracking.events import EventHub, Subscriber
from shiptrack.tracking.models import (
    CandidateProvider,
    JobState,
    ResolutionMode,
    ResolutionOutcome,
    TrackingCategory,
    TrackingJob,
    TrackingRequest,
    TrackingResult,
)
from shiptrack.tracking.registry import JobRegistry
from shiptrack.tracking.scheduler import Clock

logger = logging.getLogger(__name__)


class TrackingHandle:
    """Handle to a submitted tracking request."""

    def __init__(self, request: TrackingRequest, task: asyncio.Task) -> None:
        self.request = request
        self._task = task

    async def result(self) -> ResolutionOutcome:
        """Wait for the outcome; resolution errors are re-raised here."""
        return await self._task

    def cancel(self) -> bool:
        """Abandon the request; the running trial stops polling."""
        return self._task.cancel()

    def done(self) -> bool:
        return self._task.done()

    def cancelled(self) -> bool:
        return self._task.cancelled()


class TrackingService:
    """Submit tracking requests and manage resolved shipments."""

    def __init__(
        self,
        engine: ResolutionEngine,
        repository: ShipmentRepository | None = None,
    ) -> None:
        self.engine = engine
        self.repository = repository
        self._handles: set[TrackingHandle] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: TrackingClient,
        *,
        repository: ShipmentRepository | None = None,
        catalog: CandidateCatalog | None = None,
        registry: JobRegistry | None = None,
        clock: Clock | None = None,
    ) -> TrackingService:
        if catalog is None:
            if settings.catalog_source == CatalogSource.REMOTE:
                catalog = RemoteCandidateCatalog(
                    client, preferred=settings.preferred_carriers
                )
            else:
                catalog = StaticCandidateCatalog(preferred=settings.preferred_carriers)
        engine = ResolutionEngine.from_settings(
            settings,
            client=client,
            catalog=catalog,
            registry=registry,
            events=EventHub(),
            clock=clock,
        )
        return cls(engine, repository)

    @property
    def client(self) -> TrackingClient:
        return self.engine.client

    @property
    def registry(self) -> JobRegistry:
        return self.engine.registry

    @property
    def events(self) -> EventHub:
        return self.engine.events

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Receive progress events; returns an unsubscribe function."""
        return self.events.subscribe(callback)

    def submit(
        self,
        reference: str,
        category: TrackingCategory | str,
        mode: ResolutionMode | str = ResolutionMode.AUTO_DETECT,
        explicit_provider: str | None = None,
    ) -> TrackingHandle:
        """Start resolving a reference in the background.

        Must be called from a running event loop.
        """
        request = TrackingRequest(
            reference=reference,
            category=TrackingCategory.parse(category),
            mode=ResolutionMode(mode),
            explicit_provider=explicit_provider,
        )
        task = asyncio.get_running_loop().create_task(
            self._resolve_and_store(request),
            name=f"track:{request.reference}",
        )
        handle = TrackingHandle(request, task)
        self._handles.add(handle)
        task.add_done_callback(lambda _: self._handles.discard(handle))
        return handle

    async def track(
        self,
        reference: str,
        category: TrackingCategory | str,
        mode: ResolutionMode | str = ResolutionMode.AUTO_DETECT,
        explicit_provider: str | None = None,
    ) -> ResolutionOutcome:
        """Submit a request and wait for its outcome."""
        handle = self.submit(reference, category, mode, explicit_provider)
        try:
            return await handle.result()
        except asyncio.CancelledError:
            handle.cancel()
            raise

    def pending(self) -> list[TrackingHandle]:
        return [handle for handle in self._handles if not handle.done()]

    async def _resolve_and_store(self, request: TrackingRequest) -> ResolutionOutcome:
        outcome = await self.engine.resolve(request)
        if self.repository is not None and outcome.job_id and outcome.result:
            await self.repository.save_shipment(
                ShipmentRecord(
                    job_id=outcome.job_id,
                    reference=outcome.reference,
                    category=outcome.category,
                    carrier=outcome.winner or "",
                    result=outcome.result,
                    resolved_at=datetime.now(),
                )
            )
        return outcome

    async def refresh(
        self,
        job_id: str,
        category: TrackingCategory | str | None = None,
    ) -> TrackingResult | None:
        """Ask the provider to re-track a resolved job and poll it again.

        A job that is already being polled is left alone and None is
        returned. The stored result is replaced only when polling ends in a
        success that differs from it; otherwise the previous result is
        returned unchanged.

        Args:
            job_id: Provider job id of a resolved shipment.
            category: Tracking category; looked up in the store when omitted.

        Returns:
            The current result, or None if nothing is known about the job.
        """
        stored = None
        if self.repository is not None:
            stored = await self.repository.get_by_job_id(job_id)

        if category is not None:
            resolved_category = TrackingCategory.parse(category)
        elif stored is not None:
            resolved_category = stored.category
        else:
            raise ValueError(f"Unknown job {job_id}; pass the tracking category")

        job = TrackingJob(
            job_id=job_id,
            provider=stored.carrier if stored is not None else "",
            category=resolved_category,
            reference=stored.reference if stored is not None else "",
        )
        if not self.registry.register(
            job_id,
            provider=job.provider,
            category=job.category,
            reference=job.reference,
        ):
            logger.info("Job %s is already being polled; refresh skipped", job_id)
            return None

        try:
            await self.client.request_refresh(job_id)
            supervisor = self.engine.supervise(
                job,
                on_tick=lambda polled: self.registry.update_attempts(
                    job_id, polled.attempts
                ),
            )
            try:
                await supervisor.run()
            except asyncio.CancelledError:
                supervisor.abandon()
                raise
        finally:
            self.registry.unregister(job_id)

        previous = stored.result if stored is not None else None
        if job.state != JobState.SUCCEEDED or job.result is None:
            logger.info(
                "Job %s refresh ended %s after %d poll(s); keeping previous result",
                job_id,
                job.state.value,
                job.attempts,
            )
            return previous

        if previous is not None and previous == job.result:
            return previous

        if self.repository is not None and stored is not None:
            await self.repository.update_result(job_id, job.result)
        logger.info("Job %s refreshed: %s", job_id, job.result.status_label)
        return job.result

    async def add_tags(self, job_id: str, tags: list[str]) -> list[str]:
        """Attach tags to a shipment; returns every tag it now carries."""
        return await self._update_tags(job_id, tags, remove=False)

    async def remove_tags(self, job_id: str, tags: list[str]) -> list[str]:
        """Detach tags from a shipment; returns the tags left."""
        return await self._update_tags(job_id, tags, remove=True)

    async def _update_tags(
        self, job_id: str, tags: list[str], *, remove: bool
    ) -> list[str]:
        names = list(dict.fromkeys(tag.strip() for tag in tags if tag.strip()))
        if not names:
            raise ValueError("No tag names given")

        if remove:
            current = await self.client.remove_tags(job_id, names)
        else:
            current = await self.client.add_tags(job_id, names)

        if self.repository is not None:
            await self.repository.set_tags(job_id, current)
        logger.info("Job %s tags: %s", job_id, ", ".join(current) or "(none)")
        return current


async def run_tracking(
    settings: Settings,
    reference: str,
    category: TrackingCategory | str,
    *,
    carrier: str | None = None,
    save: bool = True,
    progress: Subscriber | None = None,
) -> ResolutionOutcome:
    """Resolve one reference against the configured provider.

    Builds the HTTP client, the shipment store (unless ``save`` is False)
    and a TrackingService for the duration of the call.
    """
    repository: ShipmentRepository | None = None
    if save:
        repository = ShipmentRepository(settings.shipments_db_path)
        await repository.initialize()

    try:
        async with GraphQLTrackingClient.from_settings(settings) as client:
            service = TrackingService.from_settings(
                settings, client, repository=repository
            )
            if progress is not None:
                service.subscribe(progress)
            mode = ResolutionMode.MANUAL if carrier else ResolutionMode.AUTO_DETECT
            return await service.track(reference, category, mode, carrier)
    finally:
        if repository is not None:
            await repository.close()


async def run_refresh(settings: Settings, job_id: str) -> TrackingResult | None:
    """Refresh a stored shipment from the provider."""
    repository = ShipmentRepository(settings.shipments_db_path)
    await repository.initialize()
    try:
        async with GraphQLTrackingClient.from_settings(settings) as client:
            service = TrackingService.from_settings(
                settings, client, repository=repository
            )
            return await service.refresh(job_id)
    finally:
        await repository.close()


async def run_tagging(
    settings: Settings, job_id: str, tags: list[str], *, remove: bool = False
) -> list[str]:
    """Add or remove provider tags on a shipment and mirror them in the store."""
    repository = ShipmentRepository(settings.shipments_db_path)
    await repository.initialize()
    try:
        async with GraphQLTrackingClient.from_settings(settings) as client:
            service = TrackingService.from_settings(
                settings, client, repository=repository
            )
            if remove:
                return await service.remove_tags(job_id, tags)
            return await service.add_tags(job_id, tags)
    finally:
        await repository.close()


async def list_available_lines(
    settings: Settings, category: TrackingCategory, *, remote: bool = False
) -> list[CandidateProvider]:
    """Return the candidate carriers for a category."""
    if not remote:
        catalog = StaticCandidateCatalog(preferred=settings.preferred_carriers)
        return await catalog.list(category)

    async with GraphQLTrackingClient.from_settings(settings) as client:
        catalog = RemoteCandidateCatalog(client, preferred=settings.preferred_carriers)
        return await catalog.list(category)
