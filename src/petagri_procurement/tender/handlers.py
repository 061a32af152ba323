"""
Tender Command Handlers

Turn commands plus current state into events. Handlers validate with the
invariants and never touch the store; the components load state, call a
handler and commit whatever it returns.
"""

from datetime import timedelta

from petagri_procurement.kernel.events import Event, create_event
from petagri_procurement.kernel.ids import document_number, generate_id
from petagri_procurement.kernel.settings import ProcurementSettings
from petagri_procurement.kernel.time import TimeProvider, today
from petagri_procurement.tender import commands, events, invariants
from petagri_procurement.tender.models import EligibilityReport, Offering, TenderAssignment

DELIVERY_NOTE_PREFIX = "DN"


class TenderCommandHandlers:
    """
    Stateless handlers for the tender workflow

    ``settings`` may be swapped at runtime when the process settings change.
    """

    def __init__(self, time_provider: TimeProvider, settings: ProcurementSettings):
        self.time_provider = time_provider
        self.settings = settings

    # ========================================================================
    # Assignment Handlers
    # ========================================================================

    def handle_create_assignment(
        self,
        command: commands.CreateAssignment,
        command_id: str,
        actor_id: str,
    ) -> list[Event]:
        """
        Open a tender assignment

        Returns:
            List containing TenderAssignmentCreated (version 1 of a new stream)
        """
        invariants.validate_required_text(command.visit_id, "visit_id")
        invariants.validate_requested_items(command.items)

        now = self.time_provider.now()
        assignment_id = generate_id()

        payload = events.TenderAssignmentCreated(
            assignment_id=assignment_id,
            visit_id=command.visit_id,
            deadline=command.deadline,
            message=command.message,
            line_items=[item.model_dump(mode="json") for item in command.items],
            assigned_by=actor_id,
            created_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type="TenderAssignmentCreated",
                stream_id=assignment_id,
                stream_type=events.ASSIGNMENT_STREAM,
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=1,
            )
        ]

    def handle_replace_line_items(
        self,
        command: commands.ReplaceLineItems,
        command_id: str,
        actor_id: str,
        assignment: TenderAssignment,
    ) -> list[Event]:
        invariants.validate_line_items_editable(assignment)
        invariants.validate_requested_items(command.items)

        now = self.time_provider.now()
        payload = events.LineItemsReplaced(
            assignment_id=assignment.assignment_id,
            line_items=[item.model_dump(mode="json") for item in command.items],
            replaced_by=actor_id,
            replaced_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type="LineItemsReplaced",
                stream_id=assignment.assignment_id,
                stream_type=events.ASSIGNMENT_STREAM,
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=assignment.version + 1,
            )
        ]

    def handle_close_assignment(
        self,
        assignment: TenderAssignment,
        approval_id: str,
        command_id: str,
        actor_id: str,
    ) -> list[Event]:
        """Record the close marker; only the stored marker is checked here"""
        invariants.validate_not_already_closed(assignment)

        now = self.time_provider.now()
        payload = events.TenderAssignmentClosed(
            assignment_id=assignment.assignment_id,
            approval_id=approval_id,
            closed_by=actor_id,
            closed_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type="TenderAssignmentClosed",
                stream_id=assignment.assignment_id,
                stream_type=events.ASSIGNMENT_STREAM,
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=assignment.version + 1,
            )
        ]

    # ========================================================================
    # Offering Handlers
    # ========================================================================

    def handle_submit_offering(
        self,
        command: commands.SubmitOffering,
        command_id: str,
        assignment: TenderAssignment,
    ) -> list[Event]:
        """
        Accept a partner's offering

        Validates:
        - Assignment is open (no approval yet)
        - Deadline day not passed, when deadline enforcement is on
        - Item list non-empty, quantities > 0, unit prices >= 0
        """
        invariants.validate_accepting_offerings(assignment)
        if self.settings.enforce_offering_deadline:
            invariants.validate_before_deadline(assignment.deadline, today(self.time_provider))
        invariants.validate_required_text(command.partner_id, "partner_id")
        invariants.validate_offered_items(command.items)

        now = self.time_provider.now()
        offering_id = generate_id()

        payload = events.OfferingSubmitted(
            offering_id=offering_id,
            assignment_id=assignment.assignment_id,
            partner_id=command.partner_id,
            line_items=[item.model_dump(mode="json") for item in command.items],
            submitted_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type="OfferingSubmitted",
                stream_id=offering_id,
                stream_type=events.OFFERING_STREAM,
                occurred_at=now,
                actor_id=command.partner_id,
                command_id=command_id,
                payload=payload,
                version=1,
            )
        ]

    # ========================================================================
    # Approval Handlers
    # ========================================================================

    def handle_approve_offering(
        self,
        command: commands.ApproveOffering,
        command_id: str,
        actor_id: str,
        offering: Offering,
    ) -> list[Event]:
        """
        Select the winning offering

        Always version 1 of the assignment's approval stream: a second
        approval for the same assignment cannot be stored.
        """
        invariants.validate_required_text(actor_id, "approved_by")
        invariants.validate_offering_belongs(offering, command.assignment_id)

        now = self.time_provider.now()
        payload = events.OfferingApproved(
            approval_id=generate_id(),
            assignment_id=command.assignment_id,
            offering_id=offering.offering_id,
            partner_id=offering.partner_id,
            approved_by=actor_id,
            approved_at=now,
            reason=command.reason,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type="OfferingApproved",
                stream_id=events.approval_stream_id(command.assignment_id),
                stream_type=events.APPROVAL_STREAM,
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=1,
            )
        ]

    # ========================================================================
    # Delivery Handlers
    # ========================================================================

    def handle_issue_delivery_note(
        self,
        command: commands.IssueDeliveryNote,
        command_id: str,
        actor_id: str,
        report: EligibilityReport,
    ) -> list[Event]:
        """
        Issue the delivery note for an eligible assignment

        Delivery is scheduled ``delivery_lead_days`` after the issue date.
        """
        invariants.validate_eligible(report)
        invariants.validate_required_text(command.driver_id, "driver_id")

        now = self.time_provider.now()
        delivery_note_id = generate_id()

        payload = events.DeliveryNoteIssued(
            delivery_note_id=delivery_note_id,
            document_number=document_number(DELIVERY_NOTE_PREFIX, delivery_note_id, now),
            assignment_id=command.assignment_id,
            approval_id=report.approval_id,
            offering_id=report.offering_id,
            partner_id=report.winning_partner_id,
            driver_id=command.driver_id,
            scheduled_for=today(self.time_provider)
            + timedelta(days=self.settings.delivery_lead_days),
            issued_by=actor_id,
            issued_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type="DeliveryNoteIssued",
                stream_id=events.delivery_stream_id(command.assignment_id),
                stream_type=events.DELIVERY_STREAM,
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=1,
            )
        ]
