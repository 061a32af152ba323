"""
Event envelope for the append-only procurement log

Every state change in the tender workflow is recorded as an Event. The
envelope is shared by all streams; the domain-specific part lives in
``payload`` and is produced from the pydantic payload models in
``petagri_procurement.tender.events``.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Event(BaseModel):
    """
    Immutable fact in the event log

    (stream_id, version) is unique in the store, which is what makes
    "first writer wins" hold for approvals and delivery notes.
    command_id groups the events a single operation produced.
    """

    event_id: str = Field(..., description="Unique event identifier (time-ordered)")
    stream_id: str = Field(..., description="Aggregate identifier the event belongs to")
    stream_type: str = Field(
        ...,
        description="Aggregate type: 'TenderAssignment', 'Offering', 'Approval', 'DeliveryNote'",
    )
    event_type: str = Field(
        ..., description="Specific event type, e.g. 'OfferingSubmitted'"
    )
    occurred_at: datetime = Field(..., description="UTC timestamp of the change")
    actor_id: str | None = Field(
        default=None, description="Actor that caused the change (None for system)"
    )
    command_id: str = Field(..., description="Operation that produced this event")
    payload: dict = Field(
        default_factory=dict, description="JSON-serializable event data"
    )
    version: int = Field(
        ..., ge=1, description="Stream version after this event"
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "event_id": "01908e9a-3b87-7000-8000-123456789abc",
                    "stream_id": "approval:01908e9a-1111-7000-8000-aaaaaaaaaaaa",
                    "stream_type": "Approval",
                    "event_type": "OfferingApproved",
                    "occurred_at": "2025-01-15T10:30:00Z",
                    "actor_id": "approver-1",
                    "command_id": "01908e9a-2222-7000-8000-bbbbbbbbbbbb",
                    "payload": {"offering_id": "01908e9a-3333-7000-8000-cccccccccccc"},
                    "version": 1,
                }
            ]
        },
    }


def create_event(
    *,
    event_id: str,
    stream_id: str,
    stream_type: str,
    event_type: str,
    occurred_at: datetime,
    command_id: str,
    version: int,
    actor_id: str | None = None,
    payload: dict | None = None,
) -> Event:
    """Build an Event with every envelope field named explicitly"""
    return Event(
        event_id=event_id,
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=occurred_at,
        actor_id=actor_id,
        command_id=command_id,
        payload=payload or {},
        version=version,
    )
