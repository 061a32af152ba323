"""
Kernel - event sourcing infrastructure shared by the tender workflow

Append-only event store, error types, ids, clock, settings, access policy,
logging and metrics.
"""

from petagri_procurement.kernel.errors import (
    ConflictError,
    EventStoreError,
    NotFoundError,
    PermissionDenied,
    ProcurementError,
    StreamPreconditionFailed,
    StreamVersionConflict,
    ValidationError,
)
from petagri_procurement.kernel.events import Event
from petagri_procurement.kernel.ids import generate_id
from petagri_procurement.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs
    "generate_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Events
    "Event",
    # Errors
    "ProcurementError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "PermissionDenied",
    "EventStoreError",
    "StreamVersionConflict",
    "StreamPreconditionFailed",
]
