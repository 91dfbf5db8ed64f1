"""Tests for the ShipmentRepository database layer."""

from datetime import datetime

import pytest
from support import succeeded

from shiptrack.shipments.models import ShipmentRecord
from shiptrack.tracking.models import TrackingCategory, TrackingResult
from shiptrack.tracking.projector import project


def _record(
    job_id: str = "job-1",
    *,
    reference: str = "DFSU7162007",
    carrier: str = "MSC",
    category: TrackingCategory = TrackingCategory.CONTAINER,
    resolved_at: datetime | None = None,
) -> ShipmentRecord:
    return ShipmentRecord(
        job_id=job_id,
        reference=reference,
        category=category,
        carrier=carrier,
        result=project(TrackingCategory.CONTAINER, succeeded(carrier=carrier)),
        resolved_at=resolved_at or datetime(2026, 1, 15, 9, 0, 0),
    )


class TestDatabaseInitialization:
    """Test database initialization."""

    @pytest.mark.asyncio
    async def test_creates_database_file_if_not_exists(self, tmp_path):
        """Should create database file (and parent dirs) if missing."""
        from shiptrack.shipments.repository import ShipmentRepository

        db_path = tmp_path / "nested" / "shipments.db"
        assert not db_path.exists()

        repo = ShipmentRepository(db_path)
        await repo.initialize()

        assert db_path.exists()
        await repo.close()

    @pytest.mark.asyncio
    async def test_creates_shipments_table_with_correct_schema(self, tmp_path):
        """Should create the shipments table with all required columns."""
        from shiptrack.shipments.repository import ShipmentRepository

        repo = ShipmentRepository(tmp_path / "shipments.db")
        await repo.initialize()

        async with repo._get_connection() as conn:
            cursor = await conn.execute("PRAGMA table_info(shipments)")
            columns = await cursor.fetchall()
            column_names = [col[1] for col in columns]

        for col in [
            "job_id",
            "reference",
            "category",
            "carrier",
            "status_label",
            "result_json",
            "resolved_at",
            "refreshed_at",
            "tags_json",
        ]:
            assert col in column_names

        await repo.close()

    @pytest.mark.asyncio
    async def test_handles_existing_database_gracefully(self, tmp_path):
        """Should not error when database already exists."""
        from shiptrack.shipments.repository import ShipmentRepository

        db_path = tmp_path / "shipments.db"
        repo1 = ShipmentRepository(db_path)
        await repo1.initialize()
        await repo1.save_shipment(_record())
        await repo1.close()

        repo2 = ShipmentRepository(db_path)
        await repo2.initialize()
        assert await repo2.get_by_job_id("job-1") is not None
        await repo2.close()


class TestRecordOperations:
    """Test save, lookup and update."""

    @pytest.mark.asyncio
    async def test_save_and_get_by_job_id(self, tmp_path):
        from shiptrack.shipments.repository import ShipmentRepository

        repo = ShipmentRepository(tmp_path / "shipments.db")
        await repo.initialize()
        record = _record()

        await repo.save_shipment(record)
        loaded = await repo.get_by_job_id("job-1")

        assert loaded is not None
        assert loaded.reference == "DFSU7162007"
        assert loaded.category == TrackingCategory.CONTAINER
        assert loaded.result == record.result
        assert loaded.status_label == "Track-Succeeded"
        assert loaded.resolved_at == record.resolved_at
        assert loaded.refreshed_at is None
        assert loaded.tags == []
        assert await repo.get_by_job_id("missing") is None
        await repo.close()

    @pytest.mark.asyncio
    async def test_save_same_job_replaces_row(self, tmp_path):
        from shiptrack.shipments.repository import ShipmentRepository

        repo = ShipmentRepository(tmp_path / "shipments.db")
        await repo.initialize()

        await repo.save_shipment(_record(carrier="MSC"))
        await repo.save_shipment(_record(carrier="ONE"))

        loaded = await repo.get_by_job_id("job-1")
        assert loaded.carrier == "ONE"
        assert len(await repo.list_recent()) == 1
        await repo.close()

    @pytest.mark.asyncio
    async def test_get_by_reference_returns_latest(self, tmp_path):
        from shiptrack.shipments.repository import ShipmentRepository

        repo = ShipmentRepository(tmp_path / "shipments.db")
        await repo.initialize()
        await repo.save_shipment(
            _record("job-1", resolved_at=datetime(2026, 1, 1, 8, 0, 0))
        )
        await repo.save_shipment(
            _record("job-2", resolved_at=datetime(2026, 1, 2, 8, 0, 0))
        )

        loaded = await repo.get_by_reference(" DFSU7162007 ")

        assert loaded.job_id == "job-2"
        assert await repo.get_by_reference("UNKNOWN") is None
        await repo.close()

    @pytest.mark.asyncio
    async def test_update_result_sets_refreshed_at(self, tmp_path):
        from shiptrack.shipments.repository import ShipmentRepository

        repo = ShipmentRepository(tmp_path / "shipments.db")
        await repo.initialize()
        await repo.save_shipment(_record())

        new_result = TrackingResult(
            category=TrackingCategory.CONTAINER,
            status_label="Track-Succeeded",
            last_movement="Gate out",
        )
        await repo.update_result("job-1", new_result)

        loaded = await repo.get_by_job_id("job-1")
        assert loaded.result == new_result
        assert loaded.refreshed_at is not None
        await repo.close()

    @pytest.mark.asyncio
    async def test_set_tags_replaces_tags(self, tmp_path):
        from shiptrack.shipments.repository import ShipmentRepository

        repo = ShipmentRepository(tmp_path / "shipments.db")
        await repo.initialize()
        await repo.save_shipment(_record())

        assert await repo.set_tags("job-1", ["urgent", "reefer"]) is True
        assert (await repo.get_by_job_id("job-1")).tags == ["urgent", "reefer"]

        assert await repo.set_tags("job-1", []) is True
        assert (await repo.get_by_job_id("job-1")).tags == []

        assert await repo.set_tags("missing", ["urgent"]) is False
        await repo.close()


class TestQueries:
    @pytest.mark.asyncio
    async def test_carrier_counts(self, tmp_path):
        from shiptrack.shipments.repository import ShipmentRepository

        repo = ShipmentRepository(tmp_path / "shipments.db")
        await repo.initialize()
        await repo.save_shipment(_record("1", carrier="MSC"))
        await repo.save_shipment(_record("2", carrier="MSC"))
        await repo.save_shipment(_record("3", carrier="ZIM"))

        assert await repo.get_carrier_counts() == {"MSC": 2, "ZIM": 1}
        await repo.close()

    @pytest.mark.asyncio
    async def test_list_recent_orders_and_filters(self, tmp_path):
        from shiptrack.shipments.repository import ShipmentRepository

        repo = ShipmentRepository(tmp_path / "shipments.db")
        await repo.initialize()
        await repo.save_shipment(
            _record("1", resolved_at=datetime(2026, 1, 1, 8, 0, 0))
        )
        await repo.save_shipment(
            _record(
                "2",
                category=TrackingCategory.BOOKING,
                resolved_at=datetime(2026, 1, 3, 8, 0, 0),
            )
        )
        await repo.save_shipment(
            _record("3", resolved_at=datetime(2026, 1, 2, 8, 0, 0))
        )

        recent = await repo.list_recent(limit=2)
        containers = await repo.list_recent(category=TrackingCategory.CONTAINER)

        assert [r.job_id for r in recent] == ["2", "3"]
        assert [r.job_id for r in containers] == ["3", "1"]
        await repo.close()
