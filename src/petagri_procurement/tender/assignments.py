"""
AssignmentStore - tender assignments and their requested line items

Owns the assignment streams. Status is always derived at read time: an
assignment is CLOSED when its close marker is stored or when an approval
exists for it, whichever is seen first.
"""

from collections.abc import Iterable, Iterator
from datetime import date
from typing import Any

from petagri_procurement.kernel.bus import InProcessBus
from petagri_procurement.kernel.errors import (
    ConflictError,
    NotFoundError,
    StreamVersionConflict,
)
from petagri_procurement.kernel.event_store import SQLiteEventStore
from petagri_procurement.kernel.ids import generate_id
from petagri_procurement.kernel.logging import get_logger
from petagri_procurement.kernel.metrics import assignments_created_total
from petagri_procurement.kernel.query import RestartableQuery
from petagri_procurement.tender import events as tender_events
from petagri_procurement.tender.commands import (
    CreateAssignment,
    ReplaceLineItems,
    as_item_list,
    parse_command,
)
from petagri_procurement.tender.handlers import TenderCommandHandlers
from petagri_procurement.tender.models import AssignmentStatus, TenderAssignment
from petagri_procurement.tender.projections import AssignmentRegistry, fold
from petagri_procurement.tender.streams import commit

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"


class AssignmentStore:
    def __init__(
        self,
        event_store: SQLiteEventStore,
        handlers: TenderCommandHandlers,
        bus: InProcessBus | None = None,
    ) -> None:
        self.event_store = event_store
        self.handlers = handlers
        self.bus = bus

    def create(
        self,
        visit_id: str,
        deadline: date | None = None,
        line_items: Iterable[Any] | None = None,
        *,
        assigned_by: str = SYSTEM_ACTOR,
        message: str | None = None,
        command_id: str | None = None,
    ) -> TenderAssignment:
        """
        Open a new assignment for a visit

        Raises:
            ValidationError: Blank visit id, no line items, a quantity <= 0
                or a negative target price
        """
        command = parse_command(
            CreateAssignment,
            {
                "visit_id": visit_id,
                "deadline": deadline,
                "items": as_item_list(line_items),
                "message": message,
            },
        )
        new_events = self.handlers.handle_create_assignment(
            command, command_id or generate_id(), assigned_by
        )
        stored = commit(self.event_store, new_events, self.bus)
        assignments_created_total.inc()

        assignment_id = stored[0].stream_id
        logger.info(
            "Tender assignment created",
            assignment_id=assignment_id,
            visit_id=command.visit_id,
            line_item_count=len(command.items),
        )
        return self.get(assignment_id)

    def get(self, assignment_id: str) -> TenderAssignment:
        """
        Current assignment with its line items

        Raises:
            NotFoundError: Unknown assignment id
        """
        data = self._load(assignment_id)
        if data is None:
            raise NotFoundError("assignment", assignment_id)
        return self._to_model(data)

    def find(self, assignment_id: str) -> TenderAssignment | None:
        data = self._load(assignment_id)
        return self._to_model(data) if data is not None else None

    def list(
        self,
        status: AssignmentStatus | str | None = None,
        visit_id: str | None = None,
    ) -> RestartableQuery[TenderAssignment]:
        """
        Assignments newest first, optionally filtered

        Nothing is read until iteration starts; every iteration reflects the
        store at that moment.
        """
        wanted = AssignmentStatus(status) if status is not None else None

        def scan() -> Iterator[TenderAssignment]:
            created = self.event_store.iter_events(
                stream_type=tender_events.ASSIGNMENT_STREAM,
                event_types=["TenderAssignmentCreated"],
                payload_equals={"visit_id": visit_id} if visit_id is not None else None,
                descending=True,
            )
            for event in created:
                assignment = self.find(event.stream_id)
                if assignment is None:
                    continue
                if wanted is None or assignment.status == wanted:
                    yield assignment

        return RestartableQuery(scan)

    def replace_line_items(
        self,
        assignment_id: str,
        items: Iterable[Any] | None,
        *,
        replaced_by: str = SYSTEM_ACTOR,
        command_id: str | None = None,
    ) -> TenderAssignment:
        """
        Replace the whole line item set while the assignment is open

        Raises:
            NotFoundError: Unknown assignment id
            ConflictError: Assignment closed (``assignment_closed``) or
                modified concurrently (``concurrent_modification``)
            ValidationError: Same rules as create
        """
        command = parse_command(
            ReplaceLineItems,
            {"assignment_id": assignment_id, "items": as_item_list(items)},
        )
        assignment = self.get(assignment_id)
        new_events = self.handlers.handle_replace_line_items(
            command, command_id or generate_id(), replaced_by, assignment
        )
        try:
            commit(self.event_store, new_events, self.bus)
        except StreamVersionConflict as e:
            current = self.get(assignment_id)
            if not current.is_open:
                raise ConflictError(
                    f"Assignment {assignment_id} is closed; line items are frozen",
                    reason=ConflictError.ASSIGNMENT_CLOSED,
                ) from e
            raise ConflictError(
                f"Assignment {assignment_id} changed concurrently",
                reason=ConflictError.CONCURRENT_MODIFICATION,
            ) from e

        logger.info(
            "Line items replaced",
            assignment_id=assignment_id,
            line_item_count=len(command.items),
        )
        return self.get(assignment_id)

    def close(
        self,
        assignment_id: str,
        approval_id: str,
        *,
        closed_by: str = SYSTEM_ACTOR,
        command_id: str | None = None,
    ) -> TenderAssignment:
        """
        Write the close marker (used by the approval resolver)

        Raises:
            NotFoundError: Unknown assignment id
            ConflictError: Marker already stored (``assignment_already_closed``)
        """
        assignment = self.get(assignment_id)
        new_events = self.handlers.handle_close_assignment(
            assignment, approval_id, command_id or generate_id(), closed_by
        )
        try:
            commit(self.event_store, new_events, self.bus)
        except StreamVersionConflict as e:
            current = self.get(assignment_id)
            if current.closed_at is not None:
                raise ConflictError(
                    f"Assignment {assignment_id} already closed",
                    reason=ConflictError.ASSIGNMENT_ALREADY_CLOSED,
                ) from e
            raise ConflictError(
                f"Assignment {assignment_id} changed concurrently",
                reason=ConflictError.CONCURRENT_MODIFICATION,
            ) from e

        logger.info("Tender assignment closed", assignment_id=assignment_id, approval_id=approval_id)
        return self.get(assignment_id)

    def is_decided(self, assignment_id: str) -> bool:
        """True once an approval has been stored for the assignment"""
        return self.event_store.stream_exists(tender_events.approval_stream_id(assignment_id))

    def _load(self, assignment_id: str) -> dict[str, Any] | None:
        stream = self.event_store.load_stream(assignment_id)
        if not stream or stream[0].stream_type != tender_events.ASSIGNMENT_STREAM:
            return None
        return fold(AssignmentRegistry(), stream).get(assignment_id)

    def _to_model(self, data: dict[str, Any]) -> TenderAssignment:
        status = data["status"]
        if status == AssignmentStatus.OPEN and self.is_decided(data["assignment_id"]):
            status = AssignmentStatus.CLOSED
        return TenderAssignment.model_validate({**data, "status": status})
