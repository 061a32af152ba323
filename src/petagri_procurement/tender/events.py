"""
Tender Events

Payload records of the facts written to the event log, plus the stream
naming used by each component.

Streams:
- ``<assignment_id>`` (TenderAssignment): created, items replaced, closed
- ``<offering_id>`` (Offering): one OfferingSubmitted event
- ``approval:<assignment_id>`` (Approval): at most one OfferingApproved
- ``delivery:<assignment_id>`` (DeliveryNote): at most one DeliveryNoteIssued

Keying the approval and delivery streams by assignment id is what turns the
store's UNIQUE(stream_id, version) constraint into "one per assignment".
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

ASSIGNMENT_STREAM = "TenderAssignment"
OFFERING_STREAM = "Offering"
APPROVAL_STREAM = "Approval"
DELIVERY_STREAM = "DeliveryNote"


def approval_stream_id(assignment_id: str) -> str:
    return f"approval:{assignment_id}"


def delivery_stream_id(assignment_id: str) -> str:
    return f"delivery:{assignment_id}"


# ============================================================================
# Assignment Events
# ============================================================================


class TenderAssignmentCreated(BaseModel):
    """Tender assignment opened for a visit"""

    assignment_id: str
    visit_id: str
    deadline: date | None = None
    message: str | None = None
    line_items: list[dict[str, Any]] = Field(..., description="Requested items (serialized)")
    assigned_by: str
    created_at: datetime


class LineItemsReplaced(BaseModel):
    """Requested item set replaced as a whole"""

    assignment_id: str
    line_items: list[dict[str, Any]]
    replaced_by: str
    replaced_at: datetime


class TenderAssignmentClosed(BaseModel):
    """Close marker written after an approval"""

    assignment_id: str
    approval_id: str
    closed_by: str
    closed_at: datetime


# ============================================================================
# Offering & Approval Events
# ============================================================================


class OfferingSubmitted(BaseModel):
    offering_id: str
    assignment_id: str
    partner_id: str
    line_items: list[dict[str, Any]]
    submitted_at: datetime


class OfferingApproved(BaseModel):
    """Winning offering selected for an assignment"""

    approval_id: str
    assignment_id: str
    offering_id: str
    partner_id: str = Field(..., description="Partner who submitted the winning offering")
    approved_by: str
    approved_at: datetime
    reason: str | None = None


# ============================================================================
# Delivery Events
# ============================================================================


class DeliveryNoteIssued(BaseModel):
    delivery_note_id: str
    document_number: str
    assignment_id: str
    approval_id: str
    offering_id: str
    partner_id: str
    driver_id: str
    scheduled_for: date
    issued_by: str
    issued_at: datetime
