"""
Tender Commands

Input records expressing an intention to change tender state. They only
check shape and types; range rules (positive quantities, non-negative
prices, non-empty item lists) are enforced by the invariants in the handlers.
"""

from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal
from typing import Any, TypeVar

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from petagri_procurement.kernel.errors import ValidationError

# ============================================================================
# Line items
# ============================================================================


class RequestedItem(BaseModel):
    """Line item of a tender assignment"""

    product_name: str = Field(..., description="Product requested, e.g. 'Urea 50kg'")
    quantity: Decimal = Field(..., description="Requested quantity (> 0)")
    target_price: Decimal | None = Field(
        default=None, description="Indicative unit price from the visit report"
    )
    dosage: str | None = Field(default=None, description="Application dosage")
    note: str | None = None


class OfferedItem(BaseModel):
    """Line item of a partner's offering"""

    product_name: str = Field(..., description="Product offered")
    quantity: Decimal = Field(..., description="Offered quantity (> 0)")
    unit_price: Decimal = Field(..., description="Unit price (>= 0)")
    dosage: str | None = None
    note: str | None = None


# ============================================================================
# Assignment commands
# ============================================================================


class CreateAssignment(BaseModel):
    """
    Open a tender assignment for a visit

    Assignments start OPEN. More than one assignment per visit is allowed.
    """

    visit_id: str = Field(..., description="Visit whose report spawned the request")
    deadline: date | None = Field(
        default=None, description="Last day offerings are accepted (None = no deadline)"
    )
    items: list[RequestedItem] = Field(default_factory=list)
    message: str | None = Field(default=None, description="Note to partners")


class ReplaceLineItems(BaseModel):
    """Replace the whole requested item set of an open assignment"""

    assignment_id: str
    items: list[RequestedItem] = Field(default_factory=list)


# ============================================================================
# Offering & approval commands
# ============================================================================


class SubmitOffering(BaseModel):
    assignment_id: str
    partner_id: str
    items: list[OfferedItem] = Field(default_factory=list)


class ApproveOffering(BaseModel):
    """Select the winning offering; at most one per assignment"""

    assignment_id: str
    offering_id: str
    reason: str | None = Field(default=None, description="Why this offering was chosen")


class IssueDeliveryNote(BaseModel):
    assignment_id: str
    driver_id: str


# ============================================================================
# Parsing
# ============================================================================

C = TypeVar("C", bound=BaseModel)


def as_data(value: Any) -> Any:
    """Plain data for a record that may be a pydantic model or a mapping"""
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, Mapping):
        return dict(value)
    return value


def as_item_list(items: Iterable[Any] | None) -> list[Any]:
    if items is None:
        return []
    if isinstance(items, (str, bytes, Mapping)):
        raise ValidationError("items must be a list of line items")
    return [as_data(item) for item in items]


def parse_command(command_type: type[C], data: Any) -> C:
    """
    Validate input into a command record

    Accepts an instance of the command, any other pydantic model with
    matching fields, or a plain dict.

    Raises:
        ValidationError: If the input does not fit the command's shape
    """
    if isinstance(data, command_type):
        return data
    try:
        return command_type.model_validate(as_data(data))
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {command_type.__name__}: {e}") from e
