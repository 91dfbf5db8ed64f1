"""Tests for snapshot projection."""

from support import container_snapshot, succeeded

from shiptrack.tracking.models import TrackingCategory
from shiptrack.tracking.projector import project, read_status, tracking_object


def _bl_snapshot() -> dict:
    return {
        "id": "7",
        "trackingReference": "HLCUIZ1250599742",
        "containerTracking": None,
        "blTracking": {
            "number": "HLCUIZ1250599742",
            "trackStatus": {"status": "Track-Succeeded", "exception": None},
            "shippingLine": {"name": "Hapag-Lloyd", "keyname": "HAPAG-LLOYD"},
            "placeOfReceipt": {"unlocodeName": "Izmir"},
            "portOfLoading": {"unlocodeName": "Izmir"},
            "portOfDischarge": {"unlocodeName": "Hamburg"},
            "placeOfDelivery": None,
            "containers": [
                {
                    "number": "HLBU1234567",
                    "trackStatus": {"status": "Track-Succeeded"},
                    "arrivalTime": {"value": "2026-03-01", "isActual": True},
                    "currentVessel": None,
                },
                {
                    "number": "HLBU7654321",
                    "trackStatus": {"status": "Is-Tracking"},
                    "arrivalTime": None,
                },
                "garbage",
            ],
        },
        "bookingTracking": None,
    }


class TestReadStatus:
    def test_returns_status_and_exception(self):
        snapshot = container_snapshot("Track-Failed", exception="Invalid Number")
        assert read_status(TrackingCategory.CONTAINER, snapshot) == (
            "Track-Failed",
            "Invalid Number",
        )

    def test_missing_tracking_object_returns_none(self):
        snapshot = container_snapshot("Track-Succeeded")
        assert read_status(TrackingCategory.BOOKING, snapshot) is None
        assert tracking_object(TrackingCategory.BOOKING, snapshot) is None

    def test_tolerates_non_dict_snapshot(self):
        assert read_status(TrackingCategory.CONTAINER, None) is None
        assert read_status(TrackingCategory.CONTAINER, []) is None

    def test_missing_track_status_reads_as_none(self):
        snapshot = {"containerTracking": {"number": "X"}}
        assert read_status(TrackingCategory.CONTAINER, snapshot) == (None, None)


class TestProject:
    def test_projects_container_snapshot(self):
        result = project(TrackingCategory.CONTAINER, succeeded())

        assert result.category == TrackingCategory.CONTAINER
        assert result.reference == "DFSU7162007"
        assert result.carrier_code == "MSC"
        assert result.status_label == "Track-Succeeded"
        assert result.route.origin == "Shanghai"
        assert result.route.destination == "Rotterdam"
        assert result.key_dates[0].label == "arrival"
        assert result.key_dates[0].is_actual is False
        assert result.last_movement == "Loaded on vessel"
        assert result.vessel is not None
        assert result.vessel.name == "MSC GULSUN"
        assert result.vessel.latitude == 31.2
        assert result.sub_units == []

    def test_bill_of_lading_keeps_sub_unit_statuses(self):
        result = project(TrackingCategory.BILL_OF_LADING, _bl_snapshot())

        assert result.carrier_code == "HAPAG-LLOYD"
        assert result.route.place_of_receipt == "Izmir"
        assert result.route.place_of_delivery is None
        assert [unit.number for unit in result.sub_units] == [
            "HLBU1234567",
            "HLBU7654321",
        ]
        assert result.sub_units[0].status_label == "Track-Succeeded"
        assert result.sub_units[1].status_label == "Is-Tracking"
        assert result.sub_units[0].key_dates[0].is_actual is True
        assert result.sub_units[1].key_dates == []

    def test_empty_snapshot_projects_to_empty_result(self):
        result = project(TrackingCategory.BOOKING, {})

        assert result.category == TrackingCategory.BOOKING
        assert result.reference is None
        assert result.carrier_name is None
        assert result.key_dates == []
        assert result.vessel is None

    def test_falls_back_to_snapshot_reference(self):
        snapshot = {
            "trackingReference": "BK123",
            "bookingTracking": {"trackStatus": {"status": "Track-Succeeded"}},
        }
        assert project(TrackingCategory.BOOKING, snapshot).reference == "BK123"

    def test_malformed_coordinates_are_dropped(self):
        snapshot = succeeded()
        snapshot["containerTracking"]["currentVessel"]["position"]["latitude"] = "n/a"

        result = project(TrackingCategory.CONTAINER, snapshot)

        assert result.vessel.latitude is None
        assert result.vessel.longitude == 121.5

    def test_out_of_range_coordinates_are_dropped(self):
        snapshot = succeeded()
        snapshot["containerTracking"]["currentVessel"]["position"]["latitude"] = 10**400
        snapshot["containerTracking"]["currentVessel"]["position"]["longitude"] = "1e999"

        result = project(TrackingCategory.CONTAINER, snapshot)

        assert result.vessel.latitude is None
        assert result.vessel.longitude is None

    def test_same_snapshot_projects_equal_results(self):
        first = project(TrackingCategory.CONTAINER, succeeded())
        second = project(TrackingCategory.CONTAINER, succeeded())
        assert first == second
