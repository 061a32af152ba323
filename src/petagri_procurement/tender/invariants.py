"""
Tender Invariants

Rules checked by the command handlers before any event is emitted. Each
function raises a typed procurement error and returns nothing on success.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from petagri_procurement.kernel.errors import ConflictError, ValidationError
from petagri_procurement.tender.commands import OfferedItem, RequestedItem
from petagri_procurement.tender.models import EligibilityReport, Offering, TenderAssignment

OFFERING_ASSIGNMENT_MISMATCH = "offering_assignment_mismatch"


# ============================================================================
# Input Validation
# ============================================================================


def validate_required_text(value: str | None, field: str) -> None:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} must not be blank")


def _validate_common_item(index: int, product_name: str, quantity: Decimal) -> None:
    if not product_name or not product_name.strip():
        raise ValidationError(f"Line item {index}: product_name must not be blank")
    if not quantity.is_finite() or quantity <= 0:
        raise ValidationError(
            f"Line item {index} ({product_name}): quantity must be greater than 0, got {quantity}"
        )


def validate_requested_items(items: Sequence[RequestedItem]) -> None:
    """
    At least one item; every quantity > 0 and target price >= 0

    Raises:
        ValidationError: On the first offending item
    """
    if not items:
        raise ValidationError("At least one line item is required")

    for index, item in enumerate(items, start=1):
        _validate_common_item(index, item.product_name, item.quantity)
        if item.target_price is not None and (
            not item.target_price.is_finite() or item.target_price < 0
        ):
            raise ValidationError(
                f"Line item {index} ({item.product_name}): target_price must not be negative"
            )


def validate_offered_items(items: Sequence[OfferedItem]) -> None:
    """
    At least one item; every quantity > 0 and unit price >= 0

    Raises:
        ValidationError: On the first offending item
    """
    if not items:
        raise ValidationError("An offering must contain at least one line item")

    for index, item in enumerate(items, start=1):
        _validate_common_item(index, item.product_name, item.quantity)
        if not item.unit_price.is_finite() or item.unit_price < 0:
            raise ValidationError(
                f"Line item {index} ({item.product_name}): unit_price must not be negative"
            )


# ============================================================================
# State Transitions
# ============================================================================


def validate_accepting_offerings(assignment: TenderAssignment) -> None:
    if not assignment.is_open:
        raise ConflictError(
            "assignment not accepting offerings",
            reason=ConflictError.ASSIGNMENT_NOT_ACCEPTING_OFFERINGS,
        )


def validate_before_deadline(deadline: date | None, today: date) -> None:
    """Offerings are accepted through the whole deadline day"""
    if deadline is not None and today > deadline:
        raise ConflictError(
            f"deadline {deadline.isoformat()} has passed",
            reason=ConflictError.DEADLINE_PASSED,
        )


def validate_line_items_editable(assignment: TenderAssignment) -> None:
    if not assignment.is_open:
        raise ConflictError(
            f"Assignment {assignment.assignment_id} is closed; line items are frozen",
            reason=ConflictError.ASSIGNMENT_CLOSED,
        )


def validate_not_already_closed(assignment: TenderAssignment) -> None:
    """Checks the stored close marker, not the derived status"""
    if assignment.closed_at is not None:
        raise ConflictError(
            f"Assignment {assignment.assignment_id} already closed",
            reason=ConflictError.ASSIGNMENT_ALREADY_CLOSED,
        )


def validate_not_decided(decided: bool) -> None:
    if decided:
        raise ConflictError("already decided", reason=ConflictError.ALREADY_DECIDED)


def validate_offering_belongs(offering: Offering, assignment_id: str) -> None:
    if offering.assignment_id != assignment_id:
        raise ValidationError(
            f"Offering {offering.offering_id} belongs to assignment "
            f"{offering.assignment_id}, not {assignment_id}",
            reason=OFFERING_ASSIGNMENT_MISMATCH,
        )


def validate_eligible(report: EligibilityReport) -> None:
    if not report.eligible:
        raise ConflictError(
            f"Assignment {report.assignment_id} has no approved offering yet",
            reason=ConflictError.NOT_ELIGIBLE,
        )
