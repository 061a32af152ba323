"""
Procurement - main façade for the tender workflow

One object per client session. It wires the event store, the four workflow
components and the delivery log together, checks the access policy at the
boundary of every write, and logs and measures each operation.

Example:
    >>> from petagri_procurement import Procurement
    >>> proc = Procurement("tender.db")
    >>> a = proc.create_assignment(
    ...     "visit-17", line_items=[{"product_name": "Urea", "quantity": 10}]
    ... )
    >>> o = proc.submit_offering(
    ...     a.assignment_id, "toko-tani",
    ...     [{"product_name": "Urea", "quantity": 10, "unit_price": 90}],
    ... )
    >>> approval = proc.approve(a.assignment_id, o.offering_id, actor_id="admin-1")
    >>> proc.is_eligible(a.assignment_id)
    True
"""

from collections.abc import Callable, Iterable
from datetime import date
from pathlib import Path
from typing import Any

from petagri_procurement.kernel.access_policy import (
    AccessPolicy,
    AccessRequest,
    Action,
    AllowAllPolicy,
    RoleTablePolicy,
    enforce,
)
from petagri_procurement.kernel.bus import InProcessBus
from petagri_procurement.kernel.event_store import SQLiteEventStore
from petagri_procurement.kernel.events import Event
from petagri_procurement.kernel.logging import LogOperation, get_logger
from petagri_procurement.kernel.metrics import track_command_duration
from petagri_procurement.kernel.query import RestartableQuery
from petagri_procurement.kernel.settings import ProcurementSettings, SettingsHolder
from petagri_procurement.kernel.time import RealTimeProvider, TimeProvider
from petagri_procurement.tender import events as tender_events
from petagri_procurement.tender.approvals import ApprovalResolver
from petagri_procurement.tender.assignments import SYSTEM_ACTOR, AssignmentStore
from petagri_procurement.tender.delivery import DeliveryNoteLog
from petagri_procurement.tender.eligibility import EligibilityProjector
from petagri_procurement.tender.handlers import TenderCommandHandlers
from petagri_procurement.tender.models import (
    Approval,
    AssignmentStatus,
    DeliveryNote,
    EligibilityReport,
    Offering,
    OfferingSummary,
    TenderAssignment,
)
from petagri_procurement.tender.offerings import OfferingRegistry

logger = get_logger(__name__)


class Procurement:
    """
    Tender procurement façade

    Provides:
    - Assignment creation, lookup, listing and line item replacement
    - Offering submission, listing and price summaries
    - Winner approval (one per assignment) and close-marker reconciliation
    - Delivery eligibility and delivery notes

    When ``settings`` is not passed the façade follows the process-wide
    SettingsHolder and picks up later changes to it until ``close`` is
    called; use it as a context manager to scope that subscription.
    """

    def __init__(
        self,
        sqlite_path: str | Path | None = None,
        time_provider: TimeProvider | None = None,
        settings: ProcurementSettings | None = None,
        access_policy: AccessPolicy | None = None,
    ) -> None:
        self._unsubscribe_settings: Callable[[], None] | None = None
        if settings is None:
            settings = SettingsHolder.get()
            self._unsubscribe_settings = SettingsHolder.subscribe(self._on_settings_changed)

        self.settings = settings
        self.sqlite_path = Path(sqlite_path) if sqlite_path is not None else settings.db_path
        self.time_provider = time_provider or RealTimeProvider()
        if access_policy is None:
            access_policy = RoleTablePolicy() if settings.enforce_roles else AllowAllPolicy()
        self.access_policy = access_policy

        self.event_store = SQLiteEventStore(
            self.sqlite_path, timeout_seconds=settings.sqlite_timeout_seconds
        )
        self.bus = InProcessBus()
        self.handlers = TenderCommandHandlers(self.time_provider, settings)

        self.assignments = AssignmentStore(self.event_store, self.handlers, self.bus)
        self.offerings = OfferingRegistry(
            self.event_store, self.assignments, self.handlers, self.bus
        )
        self.approvals = ApprovalResolver(
            self.event_store, self.assignments, self.offerings, self.handlers, self.bus
        )
        self.eligibility = EligibilityProjector(
            self.event_store, self.assignments, self.approvals
        )
        self.delivery_notes = DeliveryNoteLog(
            self.event_store, self.eligibility, self.handlers, self.bus
        )

    def close(self) -> None:
        """Stop following settings changes"""
        if self._unsubscribe_settings is not None:
            self._unsubscribe_settings()
            self._unsubscribe_settings = None

    def __enter__(self) -> "Procurement":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _on_settings_changed(
        self, old: ProcurementSettings, new: ProcurementSettings
    ) -> None:
        self.settings = new
        self.handlers.settings = new
        if old.db_path != new.db_path:
            logger.warning(
                "db_path change ignored by running session",
                current=str(self.sqlite_path),
                requested=str(new.db_path),
            )
        logger.info(
            "Settings updated",
            enforce_offering_deadline=new.enforce_offering_deadline,
            delivery_lead_days=new.delivery_lead_days,
        )

    def _authorize(
        self, action: Action, resource: str, actor_id: str, actor_roles: Iterable[str]
    ) -> None:
        enforce(
            self.access_policy,
            AccessRequest(
                resource=resource,
                action=action,
                actor_id=actor_id,
                actor_roles=frozenset(actor_roles),
            ),
        )

    # ========================================================================
    # Assignments
    # ========================================================================

    @track_command_duration("CreateAssignment")
    def create_assignment(
        self,
        visit_id: str,
        deadline: date | None = None,
        line_items: Iterable[Any] | None = None,
        *,
        message: str | None = None,
        actor_id: str = SYSTEM_ACTOR,
        actor_roles: Iterable[str] = (),
    ) -> TenderAssignment:
        """
        Open a tender assignment from a visit report

        Args:
            visit_id: Visit whose report requests the supply
            deadline: Last day offerings are accepted
            line_items: Dicts or records with product_name, quantity,
                target_price, dosage, note
            message: Note shown to partners
            actor_id: Who assigns the tender
        """
        with LogOperation(logger, "create_assignment", visit_id=visit_id, actor_id=actor_id):
            self._authorize(Action.CREATE_ASSIGNMENT, "assignment", actor_id, actor_roles)
            return self.assignments.create(
                visit_id,
                deadline,
                line_items,
                assigned_by=actor_id,
                message=message,
            )

    def get_assignment(self, assignment_id: str) -> TenderAssignment:
        return self.assignments.get(assignment_id)

    def list_assignments(
        self,
        status: AssignmentStatus | str | None = None,
        visit_id: str | None = None,
    ) -> RestartableQuery[TenderAssignment]:
        return self.assignments.list(status=status, visit_id=visit_id)

    @track_command_duration("ReplaceLineItems")
    def replace_line_items(
        self,
        assignment_id: str,
        items: Iterable[Any] | None,
        *,
        actor_id: str = SYSTEM_ACTOR,
        actor_roles: Iterable[str] = (),
    ) -> TenderAssignment:
        with LogOperation(
            logger, "replace_line_items", assignment_id=assignment_id, actor_id=actor_id
        ):
            self._authorize(Action.REPLACE_LINE_ITEMS, assignment_id, actor_id, actor_roles)
            return self.assignments.replace_line_items(
                assignment_id, items, replaced_by=actor_id
            )

    # ========================================================================
    # Offerings
    # ========================================================================

    @track_command_duration("SubmitOffering")
    def submit_offering(
        self,
        assignment_id: str,
        partner_id: str,
        items: Iterable[Any] | None,
        *,
        actor_id: str | None = None,
        actor_roles: Iterable[str] = (),
    ) -> Offering:
        """
        Submit a partner's offering

        ``actor_id`` defaults to the partner itself; an admin may submit on
        a partner's behalf.
        """
        actor = actor_id or partner_id
        with LogOperation(
            logger,
            "submit_offering",
            assignment_id=assignment_id,
            partner_id=partner_id,
            actor_id=actor,
        ):
            self._authorize(Action.SUBMIT_OFFERING, assignment_id, actor, actor_roles)
            return self.offerings.submit(assignment_id, partner_id, items)

    def list_offerings(
        self, assignment_id: str, partner_id: str | None = None
    ) -> RestartableQuery[Offering]:
        if partner_id is not None:
            return self.offerings.list_for_partner(assignment_id, partner_id)
        return self.offerings.list_for_assignment(assignment_id)

    def get_offering(self, offering_id: str) -> Offering:
        return self.offerings.get(offering_id)

    def summarize_offerings(self, assignment_id: str) -> OfferingSummary:
        return self.offerings.summarize(assignment_id)

    # ========================================================================
    # Approval
    # ========================================================================

    @track_command_duration("ApproveOffering")
    def approve(
        self,
        assignment_id: str,
        offering_id: str,
        *,
        actor_id: str,
        actor_roles: Iterable[str] = (),
        reason: str | None = None,
    ) -> Approval:
        """
        Approve the winning offering; the first approval wins

        Raises:
            ConflictError: ``already_decided`` for every later approval
        """
        with LogOperation(
            logger,
            "approve",
            assignment_id=assignment_id,
            offering_id=offering_id,
            actor_id=actor_id,
        ):
            self._authorize(Action.APPROVE_OFFERING, assignment_id, actor_id, actor_roles)
            return self.approvals.approve(assignment_id, offering_id, actor_id, reason)

    def get_approval(self, assignment_id: str) -> Approval:
        return self.approvals.get_approval(assignment_id)

    def reconcile(self, assignment_id: str, *, actor_id: str = SYSTEM_ACTOR) -> TenderAssignment:
        with LogOperation(logger, "reconcile", assignment_id=assignment_id):
            return self.approvals.reconcile(assignment_id, actor_id=actor_id)

    # ========================================================================
    # Eligibility & Delivery
    # ========================================================================

    def is_eligible(self, assignment_id: str) -> bool:
        return self.eligibility.is_eligible(assignment_id)

    def explain_eligibility(self, assignment_id: str) -> EligibilityReport:
        return self.eligibility.explain(assignment_id)

    def list_eligible_assignments(self) -> RestartableQuery[str]:
        return self.eligibility.list_eligible_assignments()

    @track_command_duration("IssueDeliveryNote")
    def issue_delivery_note(
        self,
        assignment_id: str,
        driver_id: str,
        *,
        actor_id: str,
        actor_roles: Iterable[str] = (),
    ) -> DeliveryNote:
        with LogOperation(
            logger,
            "issue_delivery_note",
            assignment_id=assignment_id,
            driver_id=driver_id,
            actor_id=actor_id,
        ):
            self._authorize(Action.ISSUE_DELIVERY_NOTE, assignment_id, actor_id, actor_roles)
            return self.delivery_notes.issue(assignment_id, driver_id, actor_id)

    def get_delivery_note(self, assignment_id: str) -> DeliveryNote:
        return self.delivery_notes.get(assignment_id)

    # ========================================================================
    # Subscriptions & Health
    # ========================================================================

    def subscribe(self, event_type: str, handler: Callable[[Event], None]) -> Callable[[], None]:
        """
        Call ``handler`` for every committed event of ``event_type``
        ("*" for all). Returns a callable that removes the subscription.
        """
        self.bus.register_event_handler(event_type, handler)

        def unsubscribe() -> None:
            self.bus.unregister_event_handler(event_type, handler)

        return unsubscribe

    def stats(self) -> dict[str, Any]:
        """Counts for health reporting"""
        open_count = 0
        closed_count = 0
        for assignment in self.assignments.list():
            if assignment.status == AssignmentStatus.OPEN:
                open_count += 1
            else:
                closed_count += 1

        return {
            "event_count": self.event_store.count_events(),
            "assignments": {
                "open": open_count,
                "closed": closed_count,
                "eligible": self.list_eligible_assignments().count(),
            },
            "offering_count": self.event_store.count_streams(tender_events.OFFERING_STREAM),
            "delivery_note_count": self.event_store.count_streams(
                tender_events.DELIVERY_STREAM
            ),
        }
