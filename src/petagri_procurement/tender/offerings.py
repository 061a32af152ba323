"""
OfferingRegistry - competing offerings from partners

Any number of partners may submit any number of offerings while an
assignment is open. Offerings are immutable; each read attaches an outcome
derived from the assignment's approval, if any.
"""

from collections.abc import Iterable, Iterator
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from petagri_procurement.kernel.bus import InProcessBus
from petagri_procurement.kernel.event_store import SQLiteEventStore
from petagri_procurement.kernel.errors import (
    ConflictError,
    NotFoundError,
    StreamPreconditionFailed,
)
from petagri_procurement.kernel.events import Event
from petagri_procurement.kernel.ids import generate_id
from petagri_procurement.kernel.logging import get_logger
from petagri_procurement.kernel.metrics import offerings_submitted_total
from petagri_procurement.kernel.query import RestartableQuery
from petagri_procurement.tender import events as tender_events
from petagri_procurement.tender.assignments import AssignmentStore
from petagri_procurement.tender.commands import SubmitOffering, as_item_list, parse_command
from petagri_procurement.tender.handlers import TenderCommandHandlers
from petagri_procurement.tender.models import Offering, OfferingOutcome, OfferingSummary
from petagri_procurement.tender.projections import ApprovalLedger, OfferingBook, fold
from petagri_procurement.tender.streams import commit

logger = get_logger(__name__)

CENT = Decimal("0.01")


class OfferingRegistry:
    def __init__(
        self,
        event_store: SQLiteEventStore,
        assignments: AssignmentStore,
        handlers: TenderCommandHandlers,
        bus: InProcessBus | None = None,
    ) -> None:
        self.event_store = event_store
        self.assignments = assignments
        self.handlers = handlers
        self.bus = bus

    def submit(
        self,
        assignment_id: str,
        partner_id: str,
        items: Iterable[Any] | None,
        *,
        command_id: str | None = None,
    ) -> Offering:
        """
        Record a partner's offering against an open assignment

        Every check runs before anything is written. The write itself is
        refused if the assignment's approval stream exists by then, so an
        approval stored while this call was running still wins.

        Raises:
            NotFoundError: Unknown assignment
            ConflictError: Assignment closed or decided
                (``assignment_not_accepting_offerings``), or deadline passed
                (``deadline_passed``) when deadline enforcement is on
            ValidationError: Empty items, quantity <= 0, negative unit price
        """
        command = parse_command(
            SubmitOffering,
            {
                "assignment_id": assignment_id,
                "partner_id": partner_id,
                "items": as_item_list(items),
            },
        )
        assignment = self.assignments.get(assignment_id)
        new_events = self.handlers.handle_submit_offering(
            command, command_id or generate_id(), assignment
        )
        try:
            stored = commit(
                self.event_store,
                new_events,
                self.bus,
                unless_stream_exists=tender_events.approval_stream_id(assignment_id),
            )
        except StreamPreconditionFailed as e:
            logger.info("Offering arrived after approval", assignment_id=assignment_id)
            raise ConflictError(
                "assignment not accepting offerings",
                reason=ConflictError.ASSIGNMENT_NOT_ACCEPTING_OFFERINGS,
            ) from e
        offerings_submitted_total.inc()

        offering = self._to_model(stored[0])
        logger.info(
            "Offering submitted",
            assignment_id=assignment_id,
            offering_id=offering.offering_id,
            line_item_count=len(offering.line_items),
        )
        return offering

    def get(self, offering_id: str) -> Offering:
        """
        Raises:
            NotFoundError: Unknown offering id
        """
        offering = self.find(offering_id)
        if offering is None:
            raise NotFoundError("offering", offering_id)
        return offering

    def find(self, offering_id: str) -> Offering | None:
        stream = self.event_store.load_stream(offering_id)
        if not stream or stream[0].stream_type != tender_events.OFFERING_STREAM:
            return None
        offering = self._to_model(stream[0])
        return self._with_outcome(offering, self._winning_offering_id(offering.assignment_id))

    def list_for_assignment(self, assignment_id: str) -> RestartableQuery[Offering]:
        """Offerings for an assignment, oldest first (empty for unknown ids)"""
        return self._scan(assignment_id, {"assignment_id": assignment_id})

    def list_for_partner(self, assignment_id: str, partner_id: str) -> RestartableQuery[Offering]:
        """One partner's offerings for an assignment, newest first"""
        return self._scan(
            assignment_id,
            {"assignment_id": assignment_id, "partner_id": partner_id},
            descending=True,
        )

    def summarize(self, assignment_id: str) -> OfferingSummary:
        """
        Advisory price statistics over offering totals

        Never used to pick a winner; an approver decides explicitly.

        Raises:
            NotFoundError: Unknown assignment
        """
        self.assignments.get(assignment_id)

        totals: list[Decimal] = []
        partners: set[str] = set()
        for offering in self.list_for_assignment(assignment_id):
            totals.append(offering.total_price)
            partners.add(offering.partner_id)

        if not totals:
            return OfferingSummary(assignment_id=assignment_id)

        average = (sum(totals, Decimal("0")) / len(totals)).quantize(CENT, rounding=ROUND_HALF_UP)
        return OfferingSummary(
            assignment_id=assignment_id,
            offering_count=len(totals),
            partner_count=len(partners),
            lowest_total=min(totals),
            highest_total=max(totals),
            average_total=average,
        )

    def _scan(
        self,
        assignment_id: str,
        payload_equals: dict[str, str],
        *,
        descending: bool = False,
    ) -> RestartableQuery[Offering]:
        def scan() -> Iterator[Offering]:
            winner = self._winning_offering_id(assignment_id)
            for event in self.event_store.iter_events(
                stream_type=tender_events.OFFERING_STREAM,
                event_types=["OfferingSubmitted"],
                payload_equals=payload_equals,
                descending=descending,
            ):
                yield self._with_outcome(self._to_model(event), winner)

        return RestartableQuery(scan)

    def _winning_offering_id(self, assignment_id: str) -> str | None:
        stream = self.event_store.load_stream(tender_events.approval_stream_id(assignment_id))
        approval = fold(ApprovalLedger(), stream).get(assignment_id)
        return approval["offering_id"] if approval is not None else None

    @staticmethod
    def _with_outcome(offering: Offering, winner: str | None) -> Offering:
        if winner is None:
            return offering
        if offering.offering_id == winner:
            outcome = OfferingOutcome.ACCEPTED
        else:
            outcome = OfferingOutcome.REJECTED
        return offering.model_copy(update={"outcome": outcome})

    def _to_model(self, event: Event) -> Offering:
        data = fold(OfferingBook(), [event]).get(event.stream_id)
        return Offering.model_validate(data)
