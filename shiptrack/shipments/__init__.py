"""Store of resolved shipments.

Public API:
- ShipmentRepository: async SQLite repository
- ShipmentRecord: a shipment whose carrier has been resolved
"""

from shiptrack.shipments.models import ShipmentRecord
from shiptrack.shipments.repository import ShipmentRepository

__all__ = [
    "ShipmentRecord",
    "ShipmentRepository",
]
