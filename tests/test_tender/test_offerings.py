"""
OfferingRegistry Tests

Competing offerings: many partners, many offerings each, none mutating the
assignment, all refused once a winner is approved.
"""

from datetime import date
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from petagri_procurement.kernel.errors import ConflictError, NotFoundError, ValidationError
from petagri_procurement.kernel.settings import ProcurementSettings
from petagri_procurement.kernel.time import TestTimeProvider
from petagri_procurement.procurement import Procurement
from petagri_procurement.tender import offerings as offerings_module
from petagri_procurement.tender.models import OfferingOutcome, TenderAssignment
from tests.helpers import offer, requested


def test_submit_records_priced_items(
    procurement: Procurement, open_assignment: TenderAssignment, test_time: TestTimeProvider
) -> None:
    offering = procurement.submit_offering(
        open_assignment.assignment_id,
        "toko-makmur",
        [
            {"product_name": "Urea 50kg", "quantity": "10", "unit_price": "95.50"},
            {"product_name": "Fungisida Mankozeb", "quantity": "4", "unit_price": "30", "dosage": "2 ml/l"},
        ],
    )

    assert offering.assignment_id == open_assignment.assignment_id
    assert offering.partner_id == "toko-makmur"
    assert offering.submitted_at == test_time.now()
    assert offering.total_price == Decimal("1075.00")
    assert offering.line_items[1].line_total == Decimal("120")
    assert procurement.get_offering(offering.offering_id) == offering


def test_many_partners_many_offerings(
    procurement: Procurement, open_assignment: TenderAssignment
) -> None:
    submitted = []
    for partner in ("toko-a", "toko-b", "toko-c"):
        for price in ("90", "85"):
            submitted.append(
                procurement.submit_offering(open_assignment.assignment_id, partner, offer(price))
            )

    listed = list(procurement.list_offerings(open_assignment.assignment_id))
    assert [o.offering_id for o in listed] == [o.offering_id for o in submitted]

    only_b = list(procurement.list_offerings(open_assignment.assignment_id, partner_id="toko-b"))
    assert [o.partner_id for o in only_b] == ["toko-b", "toko-b"]


def test_offerings_do_not_touch_assignment(
    procurement: Procurement, open_assignment: TenderAssignment
) -> None:
    procurement.submit_offering(open_assignment.assignment_id, "toko-a", offer("90"))
    assert procurement.get_assignment(open_assignment.assignment_id) == open_assignment


def test_offerings_of_other_assignments_are_not_listed(
    procurement: Procurement, open_assignment: TenderAssignment
) -> None:
    other = procurement.create_assignment("visit-002", None, requested("NPK"))
    procurement.submit_offering(other.assignment_id, "toko-a", offer("10", product_name="NPK"))

    assert list(procurement.list_offerings(open_assignment.assignment_id)) == []
    assert list(procurement.list_offerings("unknown-assignment")) == []


@pytest.mark.parametrize(
    "items",
    [
        [],
        None,
        [{"product_name": "Urea", "quantity": "0", "unit_price": "90"}],
        [{"product_name": "Urea", "quantity": "1", "unit_price": "-90"}],
        [{"product_name": "Urea", "quantity": "1"}],
    ],
)
def test_invalid_offering_writes_nothing(
    procurement: Procurement, open_assignment: TenderAssignment, items
) -> None:
    before = procurement.event_store.count_events()

    with pytest.raises(ValidationError):
        procurement.submit_offering(open_assignment.assignment_id, "toko-a", items)

    assert procurement.event_store.count_events() == before
    assert list(procurement.list_offerings(open_assignment.assignment_id)) == []


def test_zero_unit_price_is_allowed(
    procurement: Procurement, open_assignment: TenderAssignment
) -> None:
    offering = procurement.submit_offering(open_assignment.assignment_id, "toko-a", offer("0"))
    assert offering.total_price == Decimal("0")


def test_unknown_assignment(procurement: Procurement) -> None:
    with pytest.raises(NotFoundError):
        procurement.submit_offering("unknown", "toko-a", offer("90"))


def test_unknown_offering(procurement: Procurement) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        procurement.get_offering("unknown")
    assert exc_info.value.reason == "offering_not_found"


def test_closed_assignment_refuses_offerings(
    procurement: Procurement, open_assignment: TenderAssignment
) -> None:
    winner = procurement.submit_offering(open_assignment.assignment_id, "toko-a", offer("90"))
    procurement.approve(open_assignment.assignment_id, winner.offering_id, actor_id="admin-1")

    with pytest.raises(ConflictError) as exc_info:
        procurement.submit_offering(open_assignment.assignment_id, "toko-b", offer("80"))

    assert exc_info.value.reason == ConflictError.ASSIGNMENT_NOT_ACCEPTING_OFFERINGS
    assert str(exc_info.value) == "assignment not accepting offerings"
    assert procurement.list_offerings(open_assignment.assignment_id).count() == 1


def test_approval_between_check_and_write_refuses_offering(
    procurement: Procurement, open_assignment: TenderAssignment, monkeypatch: pytest.MonkeyPatch
) -> None:
    """An approval stored after the open check but before the append still wins"""
    winner = procurement.submit_offering(open_assignment.assignment_id, "toko-a", offer("90"))
    build_events = procurement.handlers.handle_submit_offering

    def approve_after_checks(*args, **kwargs):
        new_events = build_events(*args, **kwargs)
        procurement.approve(open_assignment.assignment_id, winner.offering_id, actor_id="admin-1")
        return new_events

    monkeypatch.setattr(procurement.handlers, "handle_submit_offering", approve_after_checks)

    with pytest.raises(ConflictError) as exc_info:
        procurement.submit_offering(open_assignment.assignment_id, "toko-b", offer("80"))

    assert exc_info.value.reason == ConflictError.ASSIGNMENT_NOT_ACCEPTING_OFFERINGS
    assert [o.offering_id for o in procurement.list_offerings(open_assignment.assignment_id)] == [
        winner.offering_id
    ]
    assert procurement.get_approval(open_assignment.assignment_id).offering_id == winner.offering_id


def test_partner_offerings_newest_first(
    procurement: Procurement, open_assignment: TenderAssignment, test_time: TestTimeProvider
) -> None:
    first = procurement.submit_offering(open_assignment.assignment_id, "toko-a", offer("95"))
    test_time.advance(hours=1)
    procurement.submit_offering(open_assignment.assignment_id, "toko-b", offer("93"))
    second = procurement.submit_offering(open_assignment.assignment_id, "toko-a", offer("90"))

    mine = procurement.list_offerings(open_assignment.assignment_id, partner_id="toko-a")
    assert [o.offering_id for o in mine] == [second.offering_id, first.offering_id]


def test_submit_log_omits_partner(
    procurement: Procurement, open_assignment: TenderAssignment, monkeypatch: pytest.MonkeyPatch
) -> None:
    logger = MagicMock()
    monkeypatch.setattr(offerings_module, "logger", logger)

    offering = procurement.submit_offering(open_assignment.assignment_id, "toko-a", offer("90"))

    logger.info.assert_called_once()
    fields = logger.info.call_args.kwargs
    assert fields["offering_id"] == offering.offering_id
    assert "partner_id" not in fields


# =============================================================================
# Outcome
# =============================================================================


def test_outcome_pending_until_approval(
    procurement: Procurement, open_assignment: TenderAssignment
) -> None:
    offering = procurement.submit_offering(open_assignment.assignment_id, "toko-a", offer("90"))

    assert offering.outcome == OfferingOutcome.PENDING
    assert procurement.get_offering(offering.offering_id).outcome == OfferingOutcome.PENDING
    assert [o.outcome for o in procurement.list_offerings(open_assignment.assignment_id)] == [
        OfferingOutcome.PENDING
    ]


def test_outcome_after_approval(procurement: Procurement, open_assignment: TenderAssignment) -> None:
    loser = procurement.submit_offering(open_assignment.assignment_id, "toko-a", offer("95"))
    winner = procurement.submit_offering(open_assignment.assignment_id, "toko-b", offer("90"))
    other = procurement.submit_offering(open_assignment.assignment_id, "toko-b", offer("99"))
    procurement.approve(open_assignment.assignment_id, winner.offering_id, actor_id="admin-1")

    listed = {o.offering_id: o.outcome for o in procurement.list_offerings(open_assignment.assignment_id)}
    assert listed == {
        loser.offering_id: OfferingOutcome.REJECTED,
        winner.offering_id: OfferingOutcome.ACCEPTED,
        other.offering_id: OfferingOutcome.REJECTED,
    }
    assert procurement.get_offering(winner.offering_id).outcome == OfferingOutcome.ACCEPTED
    assert procurement.get_offering(loser.offering_id).outcome == OfferingOutcome.REJECTED
    assert [
        o.outcome
        for o in procurement.list_offerings(open_assignment.assignment_id, partner_id="toko-b")
    ] == [OfferingOutcome.REJECTED, OfferingOutcome.ACCEPTED]

    # The stored offering itself is untouched
    (event,) = procurement.event_store.load_stream(winner.offering_id)
    assert "outcome" not in event.payload


def test_outcome_does_not_leak_across_assignments(
    procurement: Procurement, open_assignment: TenderAssignment
) -> None:
    other = procurement.create_assignment("visit-002", None, requested("Urea 50kg"))
    elsewhere = procurement.submit_offering(other.assignment_id, "toko-a", offer("90"))
    winner = procurement.submit_offering(open_assignment.assignment_id, "toko-a", offer("90"))
    procurement.approve(open_assignment.assignment_id, winner.offering_id, actor_id="admin-1")

    assert procurement.get_offering(elsewhere.offering_id).outcome == OfferingOutcome.PENDING


# =============================================================================
# Deadline
# =============================================================================


@pytest.fixture
def deadline_procurement(temp_db: Path, test_time: TestTimeProvider) -> Procurement:
    return Procurement(
        temp_db,
        time_provider=test_time,
        settings=ProcurementSettings(db_path=temp_db, enforce_offering_deadline=True),
    )


def test_open_assignment_past_deadline_accepts_by_default(procurement: Procurement) -> None:
    assignment = procurement.create_assignment("visit-d", date(2025, 1, 1), requested("Urea"))
    assert procurement.get_assignment(assignment.assignment_id).is_open

    offering = procurement.submit_offering(assignment.assignment_id, "toko-a", offer("1"))
    assert offering.assignment_id == assignment.assignment_id


def test_deadline_day_still_accepts(deadline_procurement: Procurement) -> None:
    assignment = deadline_procurement.create_assignment(
        "visit-d", date(2025, 1, 15), requested("Urea")
    )
    deadline_procurement.submit_offering(
        assignment.assignment_id, "toko-a", offer("1", product_name="Urea")
    )


def test_after_deadline_refused_when_enforced(
    deadline_procurement: Procurement, test_time: TestTimeProvider
) -> None:
    assignment = deadline_procurement.create_assignment(
        "visit-d", date(2025, 1, 15), requested("Urea")
    )
    test_time.advance(days=1)

    with pytest.raises(ConflictError) as exc_info:
        deadline_procurement.submit_offering(assignment.assignment_id, "toko-a", offer("1"))
    assert exc_info.value.reason == ConflictError.DEADLINE_PASSED


# =============================================================================
# Summary
# =============================================================================


def test_summary(procurement: Procurement, open_assignment: TenderAssignment) -> None:
    procurement.submit_offering(open_assignment.assignment_id, "toko-a", offer("90"))
    procurement.submit_offering(open_assignment.assignment_id, "toko-a", offer("85"))
    procurement.submit_offering(open_assignment.assignment_id, "toko-b", offer("100.01"))

    summary = procurement.summarize_offerings(open_assignment.assignment_id)

    assert summary.offering_count == 3
    assert summary.partner_count == 2
    assert summary.lowest_total == Decimal("850")
    assert summary.highest_total == Decimal("1000.10")
    # (900 + 850 + 1000.10) / 3 = 916.7
    assert summary.average_total == Decimal("916.70")


def test_summary_without_offerings(
    procurement: Procurement, open_assignment: TenderAssignment
) -> None:
    summary = procurement.summarize_offerings(open_assignment.assignment_id)
    assert summary.offering_count == 0
    assert summary.lowest_total is None
    assert summary.average_total is None


def test_summary_unknown_assignment(procurement: Procurement) -> None:
    with pytest.raises(NotFoundError):
        procurement.summarize_offerings("unknown")
