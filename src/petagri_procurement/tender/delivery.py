"""
DeliveryNoteLog - shipment documents for approved assignments

At most one delivery note per assignment, enforced the same way as
approvals: the note is version 1 of a stream keyed by the assignment id.
"""

from petagri_procurement.kernel.bus import InProcessBus
from petagri_procurement.kernel.errors import ConflictError, NotFoundError, StreamVersionConflict
from petagri_procurement.kernel.event_store import SQLiteEventStore
from petagri_procurement.kernel.ids import generate_id
from petagri_procurement.kernel.logging import get_logger
from petagri_procurement.kernel.metrics import delivery_notes_issued_total
from petagri_procurement.tender import events as tender_events
from petagri_procurement.tender.commands import IssueDeliveryNote, parse_command
from petagri_procurement.tender.eligibility import EligibilityProjector
from petagri_procurement.tender.handlers import TenderCommandHandlers
from petagri_procurement.tender.models import DeliveryNote
from petagri_procurement.tender.projections import DeliveryRegister, fold
from petagri_procurement.tender.streams import commit

logger = get_logger(__name__)


def _note_exists(assignment_id: str) -> ConflictError:
    return ConflictError(
        f"Delivery note already issued for assignment {assignment_id}",
        reason=ConflictError.DELIVERY_NOTE_EXISTS,
    )


class DeliveryNoteLog:
    def __init__(
        self,
        event_store: SQLiteEventStore,
        eligibility: EligibilityProjector,
        handlers: TenderCommandHandlers,
        bus: InProcessBus | None = None,
    ) -> None:
        self.event_store = event_store
        self.eligibility = eligibility
        self.handlers = handlers
        self.bus = bus

    def issue(
        self,
        assignment_id: str,
        driver_id: str,
        issued_by: str,
        *,
        command_id: str | None = None,
    ) -> DeliveryNote:
        """
        Issue the delivery note to the winning partner

        Raises:
            NotFoundError: Unknown assignment
            ConflictError: Not eligible (``not_eligible``) or a note already
                exists (``delivery_note_exists``)
        """
        command = parse_command(
            IssueDeliveryNote, {"assignment_id": assignment_id, "driver_id": driver_id}
        )
        report = self.eligibility.explain(assignment_id)
        if self.find(assignment_id) is not None:
            raise _note_exists(assignment_id)

        new_events = self.handlers.handle_issue_delivery_note(
            command, command_id or generate_id(), issued_by, report
        )
        try:
            stored = commit(self.event_store, new_events, self.bus)
        except StreamVersionConflict as e:
            raise _note_exists(assignment_id) from e

        delivery_notes_issued_total.inc()
        note = DeliveryNote.model_validate(stored[0].payload)
        logger.info(
            "Delivery note issued",
            assignment_id=assignment_id,
            document_number=note.document_number,
            scheduled_for=note.scheduled_for.isoformat(),
        )
        return note

    def find(self, assignment_id: str) -> DeliveryNote | None:
        stream = self.event_store.load_stream(tender_events.delivery_stream_id(assignment_id))
        data = fold(DeliveryRegister(), stream).get(assignment_id)
        return DeliveryNote.model_validate(data) if data is not None else None

    def get(self, assignment_id: str) -> DeliveryNote:
        """
        Raises:
            NotFoundError: No delivery note for the assignment
        """
        note = self.find(assignment_id)
        if note is None:
            raise NotFoundError("delivery_note", assignment_id)
        return note
