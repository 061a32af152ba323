"""
Tender Invariant Tests

Pure rule checks: no store, no clock.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from petagri_procurement.kernel.errors import ConflictError, ValidationError
from petagri_procurement.tender import invariants
from petagri_procurement.tender.commands import OfferedItem, RequestedItem
from petagri_procurement.tender.models import (
    AssignmentStatus,
    EligibilityReport,
    Offering,
    TenderAssignment,
)

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def assignment(**overrides) -> TenderAssignment:
    data = {
        "assignment_id": "a-1",
        "visit_id": "visit-1",
        "assigned_by": "admin-1",
        "created_at": NOW,
        "version": 1,
    }
    data.update(overrides)
    return TenderAssignment(**data)


def test_requested_items_must_not_be_empty() -> None:
    with pytest.raises(ValidationError, match="At least one line item"):
        invariants.validate_requested_items([])


@pytest.mark.parametrize("quantity", ["0", "-1"])
def test_requested_quantity_must_be_positive(quantity: str) -> None:
    items = [RequestedItem(product_name="Urea", quantity=Decimal(quantity))]
    with pytest.raises(ValidationError, match="quantity"):
        invariants.validate_requested_items(items)


def test_negative_target_price_rejected() -> None:
    items = [RequestedItem(product_name="Urea", quantity=Decimal("1"), target_price=Decimal("-5"))]
    with pytest.raises(ValidationError, match="target_price"):
        invariants.validate_requested_items(items)


def test_blank_product_name_rejected() -> None:
    with pytest.raises(ValidationError, match="product_name"):
        invariants.validate_requested_items([RequestedItem(product_name="  ", quantity=Decimal("1"))])


def test_offered_items() -> None:
    invariants.validate_offered_items(
        [OfferedItem(product_name="Urea", quantity=Decimal("1"), unit_price=Decimal("0"))]
    )
    with pytest.raises(ValidationError, match="unit_price"):
        invariants.validate_offered_items(
            [OfferedItem(product_name="Urea", quantity=Decimal("1"), unit_price=Decimal("-0.01"))]
        )
    with pytest.raises(ValidationError):
        invariants.validate_offered_items([])


def test_closed_assignment_refuses_offerings_and_edits() -> None:
    closed = assignment(status=AssignmentStatus.CLOSED)

    with pytest.raises(ConflictError) as exc_info:
        invariants.validate_accepting_offerings(closed)
    assert exc_info.value.reason == ConflictError.ASSIGNMENT_NOT_ACCEPTING_OFFERINGS

    with pytest.raises(ConflictError) as exc_info:
        invariants.validate_line_items_editable(closed)
    assert exc_info.value.reason == ConflictError.ASSIGNMENT_CLOSED


def test_deadline_day_is_inclusive() -> None:
    deadline = date(2025, 1, 15)
    invariants.validate_before_deadline(deadline, date(2025, 1, 15))
    invariants.validate_before_deadline(None, date(2099, 1, 1))

    with pytest.raises(ConflictError) as exc_info:
        invariants.validate_before_deadline(deadline, date(2025, 1, 16))
    assert exc_info.value.reason == ConflictError.DEADLINE_PASSED


def test_close_marker_check_ignores_derived_status() -> None:
    # Derived CLOSED without a stored marker can still be closed
    invariants.validate_not_already_closed(assignment(status=AssignmentStatus.CLOSED))

    with pytest.raises(ConflictError) as exc_info:
        invariants.validate_not_already_closed(assignment(closed_at=NOW))
    assert exc_info.value.reason == ConflictError.ASSIGNMENT_ALREADY_CLOSED


def test_not_decided() -> None:
    invariants.validate_not_decided(False)
    with pytest.raises(ConflictError) as exc_info:
        invariants.validate_not_decided(True)
    assert exc_info.value.reason == "already_decided"
    assert str(exc_info.value) == "already decided"


def test_offering_must_belong_to_assignment() -> None:
    offering = Offering(
        offering_id="o-1",
        assignment_id="a-other",
        partner_id="toko-1",
        submitted_at=NOW,
        line_items=[{"product_name": "Urea", "quantity": "1", "unit_price": "1"}],
    )
    with pytest.raises(ValidationError) as exc_info:
        invariants.validate_offering_belongs(offering, "a-1")
    assert exc_info.value.reason == invariants.OFFERING_ASSIGNMENT_MISMATCH


def test_eligible_required() -> None:
    report = EligibilityReport(assignment_id="a-1", eligible=False, status=AssignmentStatus.OPEN)
    with pytest.raises(ConflictError) as exc_info:
        invariants.validate_eligible(report)
    assert exc_info.value.reason == ConflictError.NOT_ELIGIBLE
