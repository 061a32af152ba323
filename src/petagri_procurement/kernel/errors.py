"""
Exception hierarchy for the procurement core

Every failure the core surfaces is typed. Domain errors carry a stable
``reason`` code so clients can explain *why* an action is unavailable
("already decided") instead of showing a generic "try again".
"""


class ProcurementError(Exception):
    """Base exception for all procurement errors"""

    reason: str = "procurement_error"

    def __init__(self, message: str = "", reason: str | None = None) -> None:
        if reason is not None:
            self.reason = reason
        super().__init__(message or self.reason.replace("_", " "))


# ============================================================================
# Event store errors
# ============================================================================


class EventStoreError(ProcurementError):
    """Base class for event store errors"""

    reason = "event_store_error"


class StreamVersionConflict(EventStoreError):
    """
    Raised when a stream's version doesn't match the expected one

    This is the store's conditional-write primitive: two writers racing for
    the same (stream_id, version) slot cannot both succeed.
    """

    reason = "stream_version_conflict"

    def __init__(
        self, stream_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream {stream_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}"
        )


class StreamPreconditionFailed(EventStoreError):
    """
    Raised when an append was made conditional on another stream being
    absent, and that stream exists

    Checked under the same write lock as the insert, so no writer can slip
    the guarding stream in between.
    """

    reason = "stream_precondition_failed"

    def __init__(self, stream_id: str, guard_stream_id: str) -> None:
        self.stream_id = stream_id
        self.guard_stream_id = guard_stream_id
        super().__init__(f"Stream {stream_id} not appended: {guard_stream_id} exists")


# ============================================================================
# Domain errors
# ============================================================================


class ValidationError(ProcurementError, ValueError):
    """Malformed or out-of-range input (empty line items, negative price...)"""

    reason = "invalid_input"


class NotFoundError(ProcurementError, LookupError):
    """Referenced assignment, offering, approval or delivery note is absent"""

    reason = "not_found"

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found", reason=f"{entity}_not_found")


class ConflictError(ProcurementError):
    """
    A state transition was refused

    ``reason`` is one of the constants below and never changes between
    releases; clients switch on it.
    """

    reason = "conflict"

    ASSIGNMENT_NOT_ACCEPTING_OFFERINGS = "assignment_not_accepting_offerings"
    ALREADY_DECIDED = "already_decided"
    ASSIGNMENT_CLOSED = "assignment_closed"
    ASSIGNMENT_ALREADY_CLOSED = "assignment_already_closed"
    DEADLINE_PASSED = "deadline_passed"
    NOT_ELIGIBLE = "not_eligible"
    DELIVERY_NOTE_EXISTS = "delivery_note_exists"
    CONCURRENT_MODIFICATION = "concurrent_modification"


class PermissionDenied(ProcurementError):
    """The access policy refused the actor for this action"""

    reason = "permission_denied"

    def __init__(self, actor_id: str, action: str, detail: str | None = None) -> None:
        self.actor_id = actor_id
        self.action = action
        message = f"Actor {actor_id} may not perform {action}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
