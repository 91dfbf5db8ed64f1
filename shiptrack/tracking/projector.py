"""Projection of raw provider snapshots into TrackingResult.

A snapshot is the ``shipment`` object returned by the provider: it holds
one tracking object per category (``containerTracking``, ``blTracking``,
``bookingTracking``). Every accessor here tolerates missing or malformed
fields and falls back to empty values.
"""

from __future__ import annotations

import math
from typing import Any

from shiptrack.tracking.models import (
    KeyDate,
    Route,
    SubUnit,
    TrackingCategory,
    TrackingResult,
    VesselPosition,
)

TRACKING_FIELDS: dict[TrackingCategory, str] = {
    TrackingCategory.CONTAINER: "containerTracking",
    TrackingCategory.BILL_OF_LADING: "blTracking",
    TrackingCategory.BOOKING: "bookingTracking",
}


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def tracking_object(
    category: TrackingCategory, snapshot: Any
) -> dict[str, Any] | None:
    """Return the tracking object for ``category`` or None when absent."""
    tracking = _as_dict(snapshot).get(TRACKING_FIELDS[category])
    if not isinstance(tracking, dict):
        return None
    return tracking


def read_status(
    category: TrackingCategory, snapshot: Any
) -> tuple[str | None, str | None] | None:
    """Return ``(status, exception)`` or None when there is no tracking object."""
    tracking = tracking_object(category, snapshot)
    if tracking is None:
        return None
    track_status = _as_dict(tracking.get("trackStatus"))
    return _text(track_status.get("status")), _text(track_status.get("exception"))


def _port_name(value: Any) -> str | None:
    return _text(_as_dict(value).get("unlocodeName"))


def _arrival(value: Any) -> list[KeyDate]:
    arrival = _as_dict(value)
    if not arrival:
        return []
    is_actual = arrival.get("isActual")
    return [
        KeyDate(
            label="arrival",
            value=_text(arrival.get("value")),
            is_actual=is_actual if isinstance(is_actual, bool) else None,
        )
    ]


def _vessel(value: Any) -> VesselPosition | None:
    vessel = _as_dict(value)
    if not vessel:
        return None
    position = _as_dict(vessel.get("position"))
    return VesselPosition(
        name=_text(vessel.get("name")),
        latitude=_float(position.get("latitude")),
        longitude=_float(position.get("longitude")),
        observed_at=_text(position.get("actualSnapTime")),
    )


def _sub_units(tracking: dict[str, Any]) -> list[SubUnit]:
    units: list[SubUnit] = []
    for container in _as_list(tracking.get("containers")):
        if not isinstance(container, dict):
            continue
        units.append(
            SubUnit(
                number=_text(container.get("number")),
                status_label=_text(
                    _as_dict(container.get("trackStatus")).get("status")
                ),
                key_dates=_arrival(container.get("arrivalTime")),
                vessel=_vessel(container.get("currentVessel")),
            )
        )
    return units


def project(category: TrackingCategory, snapshot: Any) -> TrackingResult:
    """Map a raw provider snapshot into a normalized TrackingResult.

    For bills of lading the nested containers become sub-units, each
    keeping its own status instead of inheriting the parent's.
    """
    tracking = tracking_object(category, snapshot) or {}
    shipping_line = _as_dict(tracking.get("shippingLine"))
    track_status = _as_dict(tracking.get("trackStatus"))

    reference = _text(tracking.get("number")) or _text(
        _as_dict(snapshot).get("trackingReference")
    )

    sub_units = (
        _sub_units(tracking) if category == TrackingCategory.BILL_OF_LADING else []
    )

    return TrackingResult(
        category=category,
        reference=reference,
        carrier_name=_text(shipping_line.get("name")),
        carrier_code=_text(shipping_line.get("keyname")),
        status_label=_text(track_status.get("status")),
        key_dates=_arrival(tracking.get("arrivalTime")),
        route=Route(
            origin=_port_name(tracking.get("portOfLoading")),
            destination=_port_name(tracking.get("portOfDischarge")),
            place_of_receipt=_port_name(tracking.get("placeOfReceipt")),
            place_of_delivery=_port_name(tracking.get("placeOfDelivery")),
        ),
        sub_units=sub_units,
        last_movement=_text(tracking.get("lastMovementEventDescription")),
        vessel=_vessel(tracking.get("currentVessel")),
    )
