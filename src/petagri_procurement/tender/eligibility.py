"""
EligibilityProjector - may a delivery document be issued?

Derived, never stored: an assignment is eligible when it is CLOSED and its
single approval exists. Recomputed from the store on every call, so it can
never disagree with the approval state.
"""

from collections.abc import Iterator

from petagri_procurement.kernel.event_store import SQLiteEventStore
from petagri_procurement.kernel.metrics import eligibility_checks_total
from petagri_procurement.kernel.query import RestartableQuery
from petagri_procurement.tender import events as tender_events
from petagri_procurement.tender.approvals import ApprovalResolver
from petagri_procurement.tender.assignments import AssignmentStore
from petagri_procurement.tender.models import AssignmentStatus, EligibilityReport


class EligibilityProjector:
    def __init__(
        self,
        event_store: SQLiteEventStore,
        assignments: AssignmentStore,
        approvals: ApprovalResolver,
    ) -> None:
        self.event_store = event_store
        self.assignments = assignments
        self.approvals = approvals

    def explain(self, assignment_id: str) -> EligibilityReport:
        """
        Raises:
            NotFoundError: Unknown assignment
        """
        assignment = self.assignments.get(assignment_id)
        approval = self.approvals.find_approval(assignment_id)
        eligible = assignment.status == AssignmentStatus.CLOSED and approval is not None
        return EligibilityReport(
            assignment_id=assignment_id,
            eligible=eligible,
            status=assignment.status,
            approval_id=approval.approval_id if approval else None,
            offering_id=approval.offering_id if approval else None,
            winning_partner_id=approval.partner_id if approval else None,
        )

    def is_eligible(self, assignment_id: str) -> bool:
        eligible = self.explain(assignment_id).eligible
        eligibility_checks_total.labels(eligible=str(eligible).lower()).inc()
        return eligible

    def list_eligible_assignments(self) -> RestartableQuery[str]:
        """Ids of eligible assignments, in approval order"""

        def scan() -> Iterator[str]:
            for event in self.event_store.iter_events(
                stream_type=tender_events.APPROVAL_STREAM,
                event_types=["OfferingApproved"],
            ):
                assignment_id = event.payload["assignment_id"]
                assignment = self.assignments.find(assignment_id)
                if assignment is not None and assignment.status == AssignmentStatus.CLOSED:
                    yield assignment_id

        return RestartableQuery(scan)
