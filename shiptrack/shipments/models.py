"""Data models for the resolved-shipment store."""

from dataclasses import dataclass, field
from datetime import datetime

from shiptrack.tracking.models import TrackingCategory, TrackingResult


@dataclass
class ShipmentRecord:
    """A shipment whose carrier has been resolved.

    Attributes:
        job_id: Provider job id of the winning trial (primary key).
        reference: Tracking reference as submitted.
        category: Tracking category of the reference.
        carrier: Keyname of the carrier that tracked the reference.
        result: Latest normalized tracking result.
        resolved_at: When the carrier was resolved.
        refreshed_at: When the result was last replaced by a refresh.
        tags: Labels attached to the shipment at the provider.
    """

    job_id: str
    reference: str
    category: TrackingCategory
    carrier: str
    result: TrackingResult
    resolved_at: datetime
    refreshed_at: datetime | None = None
    tags: list[str] = field(default_factory=list)

    @property
    def status_label(self) -> str | None:
        return self.result.status_label

    def to_dict(self) -> dict:
        """Serialize the record to a dictionary.

        Returns:
            Dictionary representation of the record.
        """
        return {
            "job_id": self.job_id,
            "reference": self.reference,
            "category": self.category.value,
            "carrier": self.carrier,
            "status_label": self.status_label,
            "result": self.result.to_dict(),
            "resolved_at": self.resolved_at.isoformat()
            if self.resolved_at
            else None,
            "refreshed_at": self.refreshed_at.isoformat()
            if self.refreshed_at
            else None,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ShipmentRecord":
        """Deserialize a record from a dictionary.

        Args:
            data: Dictionary containing record data.

        Returns:
            ShipmentRecord instance.
        """

        def parse_datetime(value: str | datetime | None) -> datetime | None:
            if value is None:
                return None
            if isinstance(value, datetime):
                return value
            return datetime.fromisoformat(value)

        return cls(
            job_id=data["job_id"],
            reference=data["reference"],
            category=TrackingCategory(data["category"]),
            carrier=data["carrier"],
            result=TrackingResult.model_validate(data["result"]),
            resolved_at=parse_datetime(data["resolved_at"]),
            refreshed_at=parse_datetime(data.get("refreshed_at")),
            tags=list(data.get("tags") or []),
        )
