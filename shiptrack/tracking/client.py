"""Transport wrapper for the remote tracking provider.

The engine only depends on the ``TrackingClient`` contract. The GraphQL
implementation talks to the Visiwise API, where a "shipment" created with
``withTracking: true`` is the remote tracking job.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from shiptrack.config.settings import Settings
from shiptrack.tracking.errors import CreateRejected, TransportError
from shiptrack.tracking.models import TrackingCategory

logger = logging.getLogger(__name__)


CREATE_SHIPMENT = """
mutation CreateShipment($createShipmentInput: CreateShipmentInput!) {
  createShipment(createShipmentInput: $createShipmentInput) {
    createdShipment {
      id
    }
  }
}
"""

GET_SHIPMENT = """
query Shipment($shipmentId: ID!) {
  shipment(id: $shipmentId) {
    id
    trackingReference
    containerTracking {
      id
      number
      trackStatus { status exception }
      shippingLine { name keyname }
      arrivalTime { value isActual }
      lastMovementEventDescription
      portOfLoading { unlocodeName }
      portOfDischarge { unlocodeName }
      currentVessel {
        name
        position { latitude longitude actualSnapTime }
      }
    }
    blTracking {
      id
      number
      trackStatus { status exception }
      shippingLine { name keyname }
      placeOfReceipt { unlocodeName }
      portOfLoading { unlocodeName }
      portOfDischarge { unlocodeName }
      placeOfDelivery { unlocodeName }
      containers {
        id
        number
        trackStatus { status }
        arrivalTime { value isActual }
        currentVessel {
          name
          position { latitude longitude actualSnapTime }
        }
      }
    }
    bookingTracking {
      id
      number
      trackStatus { status exception }
      shippingLine { name keyname }
      arrivalTime { value isActual }
    }
  }
}
"""

UPDATE_SHIPMENT = """
mutation UpdateShipment($shipmentId: ID!) {
  updateShipment(shipmentId: $shipmentId) {
    success
  }
}
"""

ADD_SHIPMENT_TAG = """
mutation AddShipmentTag($shipmentId: ID!, $tags: [String]!) {
  addShipmentTag(shipmentId: $shipmentId, tags: $tags) {
    tags { name }
  }
}
"""

REMOVE_SHIPMENT_TAG = """
mutation RemoveShipmentTag($shipmentId: ID!, $tags: [String]!) {
  removeShipmentTag(shipmentId: $shipmentId, tags: $tags) {
    tags { name }
  }
}
"""

AVAILABLE_LINES = """
query AvailableShippingLines {
  containerTrackingAvailableLines { name keyname }
  bookingTrackingAvailableLines { name keyname }
  blTrackingAvailableLines { name keyname }
}
"""

AVAILABLE_LINES_FIELDS: dict[TrackingCategory, str] = {
    TrackingCategory.CONTAINER: "containerTrackingAvailableLines",
    TrackingCategory.BILL_OF_LADING: "blTrackingAvailableLines",
    TrackingCategory.BOOKING: "bookingTrackingAvailableLines",
}


class TrackingClient(ABC):
    """Contract between the resolution engine and the tracking provider."""

    @abstractmethod
    async def create(
        self, reference: str, category: TrackingCategory, provider_id: str
    ) -> str:
        """Create a remote tracking job and return its id.

        Raises:
            CreateRejected: The provider declined the request.
            TransportError: The provider could not be reached.
        """

    @abstractmethod
    async def fetch(self, job_id: str) -> dict[str, Any]:
        """Return the current snapshot of a job.

        Raises:
            TransportError: The provider could not be reached.
        """

    @abstractmethod
    async def request_refresh(self, job_id: str) -> None:
        """Ask the provider to re-track a job.

        Raises:
            TransportError: The provider could not be reached.
        """

    @abstractmethod
    async def available_lines(self) -> dict[TrackingCategory, list[dict[str, Any]]]:
        """Return the carriers the provider accepts per category.

        Raises:
            TransportError: The provider could not be reached.
        """

    @abstractmethod
    async def add_tags(self, job_id: str, tags: list[str]) -> list[str]:
        """Attach tags to a job and return all of its tags."""

    @abstractmethod
    async def remove_tags(self, job_id: str, tags: list[str]) -> list[str]:
        """Detach tags from a job and return the tags left."""


class GraphQLTrackingClient(TrackingClient):
    """TrackingClient backed by the provider's GraphQL API."""

    def __init__(
        self,
        api_url: str,
        token: str | None = None,
        *,
        timeout: float = 20.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_url = api_url
        self._owns_client = http_client is None
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "shiptrack/1.0",
        }
        if token:
            headers["Authorization"] = f"Token {token}"
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=timeout, headers=headers)
        else:
            http_client.headers.update(headers)
        self._http = http_client

    @classmethod
    def from_settings(cls, settings: Settings) -> GraphQLTrackingClient:
        token = (
            settings.tracking_api_token.get_secret_value()
            if settings.tracking_api_token is not None
            else None
        )
        return cls(
            settings.tracking_api_url,
            token,
            timeout=settings.http_timeout_seconds,
        )

    async def __aenter__(self) -> GraphQLTrackingClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _send(
        self, query: str, variables: dict[str, Any] | None = None
    ) -> httpx.Response:
        try:
            response = await self._http.post(
                self.api_url,
                json={"query": query, "variables": variables or {}},
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Provider request failed: {exc}", exc) from exc

        if response.status_code >= 500:
            raise TransportError(f"Provider returned HTTP {response.status_code}")
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError(
                f"Provider returned an undecodable body (HTTP {response.status_code})",
                exc,
            ) from exc

        if not isinstance(payload, dict):
            raise TransportError("Provider returned a non-object body")
        return payload

    @staticmethod
    def _first_error(payload: dict[str, Any]) -> str | None:
        errors = payload.get("errors")
        if not errors:
            return None
        first = errors[0] if isinstance(errors, list) else errors
        if isinstance(first, dict):
            return str(first.get("message") or first)
        return str(first)

    @staticmethod
    def _field(value: Any, key: str) -> Any:
        return value.get(key) if isinstance(value, dict) else None

    async def _query(
        self, query: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        response = await self._send(query, variables)
        payload = self._decode(response)
        error = self._first_error(payload)
        if response.status_code >= 400 or error:
            raise TransportError(
                error or f"Provider returned HTTP {response.status_code}"
            )
        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    async def create(
        self, reference: str, category: TrackingCategory, provider_id: str
    ) -> str:
        variables = {
            "createShipmentInput": {
                "trackingInput": {
                    "trackingReference": reference,
                    "shippingLine": provider_id,
                    "trackingType": category.value,
                },
                "withTracking": True,
            }
        }
        response = await self._send(CREATE_SHIPMENT, variables)

        if response.status_code >= 400:
            # 4xx bodies are not always JSON
            try:
                error = self._first_error(self._decode(response))
            except TransportError:
                error = None
            raise CreateRejected(
                error or f"Provider returned HTTP {response.status_code}"
            )

        payload = self._decode(response)
        error = self._first_error(payload)
        if error:
            raise CreateRejected(error)

        created = self._field(
            self._field(payload.get("data"), "createShipment"), "createdShipment"
        )
        job_id = self._field(created, "id")
        if not job_id:
            raise CreateRejected("Provider did not return a shipment id")

        logger.debug(
            "Created tracking job %s for %s via %s", job_id, reference, provider_id
        )
        return str(job_id)

    async def fetch(self, job_id: str) -> dict[str, Any]:
        data = await self._query(GET_SHIPMENT, {"shipmentId": job_id})
        shipment = data.get("shipment")
        return shipment if isinstance(shipment, dict) else {}

    async def request_refresh(self, job_id: str) -> None:
        await self._query(UPDATE_SHIPMENT, {"shipmentId": job_id})

    async def available_lines(self) -> dict[TrackingCategory, list[dict[str, Any]]]:
        data = await self._query(AVAILABLE_LINES)
        lines: dict[TrackingCategory, list[dict[str, Any]]] = {}
        for category, field_name in AVAILABLE_LINES_FIELDS.items():
            entries = data.get(field_name)
            if not isinstance(entries, list):
                entries = []
            lines[category] = [entry for entry in entries if isinstance(entry, dict)]
        return lines

    async def _update_tags(
        self, mutation: str, field_name: str, job_id: str, tags: list[str]
    ) -> list[str]:
        data = await self._query(mutation, {"shipmentId": job_id, "tags": tags})
        entries = self._field(data.get(field_name), "tags")
        if not isinstance(entries, list):
            return []
        names = (self._field(entry, "name") for entry in entries)
        return [str(name) for name in names if name]

    async def add_tags(self, job_id: str, tags: list[str]) -> list[str]:
        return await self._update_tags(ADD_SHIPMENT_TAG, "addShipmentTag", job_id, tags)

    async def remove_tags(self, job_id: str, tags: list[str]) -> list[str]:
        return await self._update_tags(
            REMOVE_SHIPMENT_TAG, "removeShipmentTag", job_id, tags
        )
