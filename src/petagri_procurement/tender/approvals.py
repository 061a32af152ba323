"""
ApprovalResolver - exactly one winning offering per assignment

The winner is whoever stores version 1 of the assignment's approval stream
first. The check before the write is only a fast path; the write itself is
the decision, so concurrent approvers in different processes cannot both
succeed.
"""

import sqlite3

from petagri_procurement.kernel.bus import InProcessBus
from petagri_procurement.kernel.errors import (
    ConflictError,
    NotFoundError,
    ProcurementError,
    StreamVersionConflict,
)
from petagri_procurement.kernel.event_store import SQLiteEventStore
from petagri_procurement.kernel.ids import generate_id
from petagri_procurement.kernel.logging import get_logger
from petagri_procurement.kernel.metrics import approvals_total
from petagri_procurement.tender import events as tender_events
from petagri_procurement.tender import invariants
from petagri_procurement.tender.assignments import SYSTEM_ACTOR, AssignmentStore
from petagri_procurement.tender.commands import ApproveOffering, parse_command
from petagri_procurement.tender.handlers import TenderCommandHandlers
from petagri_procurement.tender.models import Approval, TenderAssignment
from petagri_procurement.tender.offerings import OfferingRegistry
from petagri_procurement.tender.projections import ApprovalLedger, fold
from petagri_procurement.tender.streams import commit

logger = get_logger(__name__)


class ApprovalResolver:
    def __init__(
        self,
        event_store: SQLiteEventStore,
        assignments: AssignmentStore,
        offerings: OfferingRegistry,
        handlers: TenderCommandHandlers,
        bus: InProcessBus | None = None,
    ) -> None:
        self.event_store = event_store
        self.assignments = assignments
        self.offerings = offerings
        self.handlers = handlers
        self.bus = bus

    def approve(
        self,
        assignment_id: str,
        offering_id: str,
        approved_by: str,
        reason: str | None = None,
        *,
        command_id: str | None = None,
    ) -> Approval:
        """
        Select the winning offering and close the assignment

        If the close marker cannot be written after the approval is stored,
        the approval stands: status and eligibility already follow from it,
        and ``reconcile`` writes the marker later.

        Raises:
            NotFoundError: Unknown assignment or offering
            ConflictError: An approval already exists (``already_decided``),
                including when a concurrent approver won the race
            ValidationError: Offering belongs to another assignment
        """
        command = parse_command(
            ApproveOffering,
            {"assignment_id": assignment_id, "offering_id": offering_id, "reason": reason},
        )
        self.assignments.get(assignment_id)
        try:
            invariants.validate_not_decided(self.assignments.is_decided(assignment_id))
        except ConflictError:
            approvals_total.labels(outcome="already_decided").inc()
            raise

        offering = self.offerings.get(offering_id)
        new_events = self.handlers.handle_approve_offering(
            command, command_id or generate_id(), approved_by, offering
        )

        try:
            stored = commit(self.event_store, new_events, self.bus)
        except StreamVersionConflict as e:
            approvals_total.labels(outcome="already_decided").inc()
            logger.info(
                "Approval lost the race",
                assignment_id=assignment_id,
                offering_id=offering_id,
            )
            raise ConflictError("already decided", reason=ConflictError.ALREADY_DECIDED) from e

        approvals_total.labels(outcome="approved").inc()
        approval = Approval.model_validate(stored[0].payload)
        logger.info(
            "Offering approved",
            assignment_id=assignment_id,
            offering_id=offering_id,
            approval_id=approval.approval_id,
        )

        try:
            self.assignments.close(
                assignment_id, approval.approval_id, closed_by=approved_by
            )
        except (ProcurementError, sqlite3.Error) as e:
            logger.warning(
                "Close marker not written; status follows the approval until reconciled",
                assignment_id=assignment_id,
                approval_id=approval.approval_id,
                error=str(e),
            )

        return approval

    def find_approval(self, assignment_id: str) -> Approval | None:
        stream = self.event_store.load_stream(tender_events.approval_stream_id(assignment_id))
        data = fold(ApprovalLedger(), stream).get(assignment_id)
        return Approval.model_validate(data) if data is not None else None

    def get_approval(self, assignment_id: str) -> Approval:
        """
        Raises:
            NotFoundError: No approval for the assignment
        """
        approval = self.find_approval(assignment_id)
        if approval is None:
            raise NotFoundError("approval", assignment_id)
        return approval

    def reconcile(self, assignment_id: str, *, actor_id: str = SYSTEM_ACTOR) -> TenderAssignment:
        """
        Write a missing close marker for an approved assignment

        No-op when there is no approval or the marker is already stored.

        Raises:
            NotFoundError: Unknown assignment
        """
        assignment = self.assignments.get(assignment_id)
        approval = self.find_approval(assignment_id)
        if approval is None or assignment.closed_at is not None:
            return assignment

        try:
            assignment = self.assignments.close(
                assignment_id, approval.approval_id, closed_by=actor_id
            )
        except ConflictError as e:
            if e.reason != ConflictError.ASSIGNMENT_ALREADY_CLOSED:
                raise
            return self.assignments.get(assignment_id)

        logger.info(
            "Close marker reconciled",
            assignment_id=assignment_id,
            approval_id=approval.approval_id,
        )
        return assignment
