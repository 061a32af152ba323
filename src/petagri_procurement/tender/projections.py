"""
Tender Projections

Folds of tender events into plain dicts. The components build a fresh
projection for every read from the events currently in the store, so a
projection never outlives the call that built it.
"""

from collections.abc import Iterable
from typing import Any

from petagri_procurement.kernel.events import Event
from petagri_procurement.tender.models import AssignmentStatus


class AssignmentRegistry:
    """
    Tender assignments folded from their own streams

    ``status`` here reflects only the stored close marker; the assignment
    store additionally treats an existing approval as closing the assignment.
    """

    def __init__(self):
        self.assignments: dict[str, dict[str, Any]] = {}

    def apply_event(self, event: Event) -> None:
        if event.event_type == "TenderAssignmentCreated":
            self._apply_created(event)
        elif event.event_type == "LineItemsReplaced":
            self._apply_line_items_replaced(event)
        elif event.event_type == "TenderAssignmentClosed":
            self._apply_closed(event)

    def _apply_created(self, event: Event) -> None:
        payload = event.payload
        self.assignments[payload["assignment_id"]] = {
            "assignment_id": payload["assignment_id"],
            "visit_id": payload["visit_id"],
            "deadline": payload.get("deadline"),
            "message": payload.get("message"),
            "assigned_by": payload["assigned_by"],
            "created_at": payload["created_at"],
            "line_items": payload["line_items"],
            "status": AssignmentStatus.OPEN,
            "closed_at": None,
            "approval_id": None,
            "version": event.version,
        }

    def _apply_line_items_replaced(self, event: Event) -> None:
        assignment = self.assignments.get(event.payload["assignment_id"])
        if assignment is not None:
            assignment["line_items"] = event.payload["line_items"]
            assignment["version"] = event.version

    def _apply_closed(self, event: Event) -> None:
        assignment = self.assignments.get(event.payload["assignment_id"])
        if assignment is not None:
            assignment["status"] = AssignmentStatus.CLOSED
            assignment["closed_at"] = event.payload["closed_at"]
            assignment["approval_id"] = event.payload["approval_id"]
            assignment["version"] = event.version

    def get(self, assignment_id: str) -> dict[str, Any] | None:
        return self.assignments.get(assignment_id)


class OfferingBook:
    """Offerings keyed by id, in the order their events were applied"""

    def __init__(self):
        self.offerings: dict[str, dict[str, Any]] = {}

    def apply_event(self, event: Event) -> None:
        if event.event_type == "OfferingSubmitted":
            payload = event.payload
            self.offerings[payload["offering_id"]] = {
                "offering_id": payload["offering_id"],
                "assignment_id": payload["assignment_id"],
                "partner_id": payload["partner_id"],
                "submitted_at": payload["submitted_at"],
                "line_items": payload["line_items"],
            }

    def get(self, offering_id: str) -> dict[str, Any] | None:
        return self.offerings.get(offering_id)


class ApprovalLedger:
    """Approvals keyed by assignment id (at most one each)"""

    def __init__(self):
        self.approvals: dict[str, dict[str, Any]] = {}

    def apply_event(self, event: Event) -> None:
        if event.event_type == "OfferingApproved":
            payload = event.payload
            # The store rejects a second approval stream version; keep the first regardless
            self.approvals.setdefault(payload["assignment_id"], dict(payload))

    def get(self, assignment_id: str) -> dict[str, Any] | None:
        return self.approvals.get(assignment_id)


class DeliveryRegister:
    """Delivery notes keyed by assignment id"""

    def __init__(self):
        self.notes: dict[str, dict[str, Any]] = {}

    def apply_event(self, event: Event) -> None:
        if event.event_type == "DeliveryNoteIssued":
            payload = event.payload
            self.notes.setdefault(payload["assignment_id"], dict(payload))

    def get(self, assignment_id: str) -> dict[str, Any] | None:
        return self.notes.get(assignment_id)


def fold(projection: Any, events: Iterable[Event]) -> Any:
    """Apply events in order and return the projection"""
    for event in events:
        projection.apply_event(event)
    return projection
