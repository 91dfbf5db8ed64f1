"""Database repository for resolved shipments.

Only successful resolutions are stored; failed lookups are never
persisted, so every new request retries all carriers from scratch.
"""

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

import aiosqlite

from shiptrack.shipments.models import ShipmentRecord
from shiptrack.tracking.models import TrackingCategory, TrackingResult

# SQL schema for the shipments table
CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS shipments (
    job_id TEXT PRIMARY KEY,
    reference TEXT NOT NULL,
    category TEXT NOT NULL,
    carrier TEXT NOT NULL,
    status_label TEXT,
    result_json TEXT NOT NULL,
    resolved_at TEXT NOT NULL,
    refreshed_at TEXT,
    tags_json TEXT NOT NULL DEFAULT '[]'
)
"""

CREATE_INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_shipments_reference ON shipments(reference);
CREATE INDEX IF NOT EXISTS idx_shipments_resolved ON shipments(resolved_at);
"""


class ShipmentRepository:
    """Async SQLite repository for resolved shipments."""

    def __init__(self, db_path: Path | str):
        """Initialize the repository.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self._connection: aiosqlite.Connection | None = None

    @asynccontextmanager
    async def _get_connection(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row
        yield self._connection

    async def initialize(self) -> None:
        """Initialize the database, creating tables if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with self._get_connection() as conn:
            await conn.execute(CREATE_TABLE_SQL)
            await conn.executescript(CREATE_INDEX_SQL)
            await conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def save_shipment(self, record: ShipmentRecord) -> None:
        """Insert a record, replacing any previous row for the same job.

        Args:
            record: The shipment record to store.
        """
        async with self._get_connection() as conn:
            await conn.execute(
                """
                INSERT INTO shipments (
                    job_id, reference, category, carrier, status_label,
                    result_json, resolved_at, refreshed_at, tags_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(job_id) DO UPDATE SET
                    reference = excluded.reference,
                    category = excluded.category,
                    carrier = excluded.carrier,
                    status_label = excluded.status_label,
                    result_json = excluded.result_json,
                    resolved_at = excluded.resolved_at,
                    refreshed_at = excluded.refreshed_at,
                    tags_json = excluded.tags_json
                """,
                (
                    record.job_id,
                    record.reference,
                    record.category.value,
                    record.carrier,
                    record.status_label,
                    record.result.model_dump_json(),
                    record.resolved_at.isoformat(),
                    record.refreshed_at.isoformat() if record.refreshed_at else None,
                    json.dumps(record.tags),
                ),
            )
            await conn.commit()

    async def get_by_job_id(self, job_id: str) -> ShipmentRecord | None:
        """Get a record by the provider job id.

        Returns:
            The shipment record if found, None otherwise.
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM shipments WHERE job_id = ?",
                (job_id,),
            )
            row = await cursor.fetchone()

        if row is None:
            return None

        return self._row_to_record(row)

    async def get_by_reference(self, reference: str) -> ShipmentRecord | None:
        """Get the most recently resolved record for a tracking reference."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                """
                SELECT * FROM shipments
                WHERE reference = ?
                ORDER BY resolved_at DESC
                LIMIT 1
                """,
                (reference.strip(),),
            )
            row = await cursor.fetchone()

        if row is None:
            return None

        return self._row_to_record(row)

    async def update_result(self, job_id: str, result: TrackingResult) -> None:
        """Replace the stored result of a shipment after a refresh.

        Also updates the refreshed_at timestamp.
        """
        now = datetime.now().isoformat()

        async with self._get_connection() as conn:
            await conn.execute(
                """
                UPDATE shipments
                SET result_json = ?, status_label = ?, refreshed_at = ?
                WHERE job_id = ?
                """,
                (result.model_dump_json(), result.status_label, now, job_id),
            )
            await conn.commit()

    async def set_tags(self, job_id: str, tags: list[str]) -> bool:
        """Replace the tags of a shipment.

        Returns:
            True if the shipment exists, False otherwise.
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "UPDATE shipments SET tags_json = ? WHERE job_id = ?",
                (json.dumps(tags), job_id),
            )
            await conn.commit()
            return cursor.rowcount > 0

    async def get_carrier_counts(self) -> dict[str, int]:
        """Return resolved shipment counts grouped by carrier."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                """
                SELECT carrier, COUNT(*) AS count FROM shipments
                GROUP BY carrier
                ORDER BY count DESC, carrier
                """
            )
            rows = await cursor.fetchall()

        return {
            row["carrier"]: int(row["count"]) if row["count"] is not None else 0
            for row in rows
        }

    async def list_recent(
        self,
        limit: int = 10,
        category: TrackingCategory | None = None,
    ) -> list[ShipmentRecord]:
        """List recently resolved shipments.

        Args:
            limit: Maximum number of records to return.
            category: Optional category to filter by.

        Returns:
            List of shipment records, ordered by resolved_at descending.
        """
        async with self._get_connection() as conn:
            if category is not None:
                cursor = await conn.execute(
                    """
                    SELECT * FROM shipments
                    WHERE category = ?
                    ORDER BY resolved_at DESC
                    LIMIT ?
                    """,
                    (category.value, limit),
                )
            else:
                cursor = await conn.execute(
                    """
                    SELECT * FROM shipments
                    ORDER BY resolved_at DESC
                    LIMIT ?
                    """,
                    (limit,),
                )
            rows = await cursor.fetchall()

        return [self._row_to_record(row) for row in rows]

    def _row_to_record(self, row: aiosqlite.Row) -> ShipmentRecord:
        def parse_datetime(value: str | None) -> datetime | None:
            if value is None:
                return None
            return datetime.fromisoformat(value)

        return ShipmentRecord(
            job_id=row["job_id"],
            reference=row["reference"],
            category=TrackingCategory(row["category"]),
            carrier=row["carrier"],
            result=TrackingResult.model_validate_json(row["result_json"]),
            resolved_at=parse_datetime(row["resolved_at"]) or datetime.now(),
            refreshed_at=parse_datetime(row["refreshed_at"]),
            tags=json.loads(row["tags_json"] or "[]"),
        )
