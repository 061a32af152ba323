"""
Tender Domain Models

Read-side records returned by the tender workflow. All of them are rebuilt
from the event log on every read; none is stored as such.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, computed_field


class AssignmentStatus(str, Enum):
    """
    Tender assignment lifecycle

    OPEN → CLOSED, terminal. Approving an offering is the only way to close
    an assignment and there is no reopening.
    """

    OPEN = "OPEN"  # Accepting offerings, line items editable
    CLOSED = "CLOSED"  # Winner approved


class OfferingOutcome(str, Enum):
    """
    Where an offering stands against the assignment's approval

    Derived on every read from the approval stream; the stored offering
    never changes.
    """

    PENDING = "PENDING"  # No winner approved yet
    ACCEPTED = "ACCEPTED"  # This offering won
    REJECTED = "REJECTED"  # Another offering won


class DeliveryStatus(str, Enum):
    PENDING = "PENDING"


class RequestedLineItem(BaseModel):
    """One product the visit report asks partners to supply"""

    product_name: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., gt=0)
    target_price: Decimal | None = Field(default=None, ge=0)
    dosage: str | None = None
    note: str | None = None

    model_config = {"frozen": True}


class OfferedLineItem(BaseModel):
    """One priced product line in a partner's offering"""

    product_name: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    dosage: str | None = None
    note: str | None = None

    model_config = {"frozen": True}

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price


class TenderAssignment(BaseModel):
    """
    Request for supply spawned by a completed field visit

    ``status`` is CLOSED as soon as an approval exists, even if the close
    marker on the assignment stream has not been written yet.
    """

    assignment_id: str
    visit_id: str
    deadline: date | None = None
    status: AssignmentStatus = AssignmentStatus.OPEN
    assigned_by: str
    message: str | None = None
    created_at: datetime
    line_items: list[RequestedLineItem] = Field(default_factory=list)
    closed_at: datetime | None = Field(
        default=None, description="When the close marker was recorded (None if pending)"
    )
    approval_id: str | None = None
    version: int = Field(..., ge=1, description="Assignment stream version")

    model_config = {"frozen": True}

    @property
    def is_open(self) -> bool:
        return self.status == AssignmentStatus.OPEN


class Offering(BaseModel):
    """A partner's priced bid; immutable once submitted"""

    offering_id: str
    assignment_id: str
    partner_id: str
    submitted_at: datetime
    line_items: list[OfferedLineItem]
    outcome: OfferingOutcome = OfferingOutcome.PENDING

    model_config = {"frozen": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_price(self) -> Decimal:
        return sum((item.line_total for item in self.line_items), Decimal("0"))


class Approval(BaseModel):
    """The single authoritative winner selection for an assignment"""

    approval_id: str
    assignment_id: str
    offering_id: str
    partner_id: str
    approved_by: str
    approved_at: datetime
    reason: str | None = None

    model_config = {"frozen": True}


class OfferingSummary(BaseModel):
    """Advisory price statistics for an assignment's offerings"""

    assignment_id: str
    offering_count: int = 0
    partner_count: int = 0
    lowest_total: Decimal | None = None
    highest_total: Decimal | None = None
    average_total: Decimal | None = None


class EligibilityReport(BaseModel):
    """Whether a delivery document may be issued, and why"""

    assignment_id: str
    eligible: bool
    status: AssignmentStatus
    approval_id: str | None = None
    offering_id: str | None = None
    winning_partner_id: str | None = None


class DeliveryNote(BaseModel):
    """Shipment document (surat jalan) for an approved assignment"""

    delivery_note_id: str
    document_number: str
    assignment_id: str
    approval_id: str
    offering_id: str
    partner_id: str
    driver_id: str
    status: DeliveryStatus = DeliveryStatus.PENDING
    scheduled_for: date
    issued_by: str
    issued_at: datetime

    model_config = {"frozen": True}
