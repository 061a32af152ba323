"""
Procurement Façade Tests

Access policy at the write boundary, event subscriptions, live settings and
the stats used by the health endpoint.
"""

from datetime import date
from pathlib import Path

import pytest

from petagri_procurement import Procurement
from petagri_procurement.kernel.access_policy import RoleTablePolicy
from petagri_procurement.kernel.errors import ConflictError, PermissionDenied
from petagri_procurement.kernel.events import Event
from petagri_procurement.kernel.settings import ProcurementSettings, SettingsHolder
from petagri_procurement.kernel.time import TestTimeProvider
from petagri_procurement.tender.models import TenderAssignment
from tests.helpers import OPEN_DEADLINE, offer, requested


class TestAccessPolicy:
    @pytest.fixture
    def guarded(self, temp_db: Path, test_time: TestTimeProvider, settings) -> Procurement:
        return Procurement(
            temp_db, time_provider=test_time, settings=settings, access_policy=RoleTablePolicy()
        )

    def test_partner_cannot_create_or_approve(self, guarded: Procurement) -> None:
        with pytest.raises(PermissionDenied):
            guarded.create_assignment(
                "visit-1", None, requested("Urea"), actor_id="toko-a", actor_roles=["mitra_toko"]
            )
        assert guarded.event_store.count_events() == 0

        assignment = guarded.create_assignment(
            "visit-1", None, requested("Urea"), actor_id="admin-1", actor_roles=["admin_platform"]
        )
        offering = guarded.submit_offering(
            assignment.assignment_id, "toko-a", offer("9"), actor_roles=["mitra_toko"]
        )

        with pytest.raises(PermissionDenied) as exc_info:
            guarded.approve(
                assignment.assignment_id,
                offering.offering_id,
                actor_id="toko-a",
                actor_roles=["mitra_toko"],
            )
        assert exc_info.value.actor_id == "toko-a"
        assert guarded.get_assignment(assignment.assignment_id).is_open

    def test_denied_before_any_other_check(self, guarded: Procurement) -> None:
        # Unknown assignment, but the refusal comes from the policy
        with pytest.raises(PermissionDenied):
            guarded.issue_delivery_note("unknown", "driver-1", actor_id="toko-a")

    def test_enforce_roles_setting_selects_role_table(
        self, temp_db: Path, test_time: TestTimeProvider
    ) -> None:
        proc = Procurement(
            temp_db,
            time_provider=test_time,
            settings=ProcurementSettings(db_path=temp_db, enforce_roles=True),
        )
        assert isinstance(proc.access_policy, RoleTablePolicy)
        with pytest.raises(PermissionDenied):
            proc.create_assignment("visit-1", None, requested("Urea"))

    def test_allow_all_by_default(self, procurement: Procurement) -> None:
        assignment = procurement.create_assignment("visit-1", None, requested("Urea"))
        assert assignment.assigned_by == "system"


class TestSubscriptions:
    def test_committed_events_are_published(
        self, procurement: Procurement, open_assignment: TenderAssignment
    ) -> None:
        approved: list[Event] = []
        everything: list[str] = []
        procurement.subscribe("OfferingApproved", approved.append)
        procurement.subscribe("*", lambda e: everything.append(e.event_type))

        offering = procurement.submit_offering(open_assignment.assignment_id, "toko-a", offer("9"))
        procurement.approve(open_assignment.assignment_id, offering.offering_id, actor_id="admin-1")

        assert [e.payload["offering_id"] for e in approved] == [offering.offering_id]
        assert everything == ["OfferingSubmitted", "OfferingApproved", "TenderAssignmentClosed"]

    def test_refused_operations_publish_nothing(
        self, procurement: Procurement, open_assignment: TenderAssignment
    ) -> None:
        seen: list[Event] = []
        procurement.subscribe("*", seen.append)

        offering = procurement.submit_offering(open_assignment.assignment_id, "toko-a", offer("9"))
        procurement.approve(open_assignment.assignment_id, offering.offering_id, actor_id="admin-1")
        seen.clear()

        with pytest.raises(ConflictError):
            procurement.approve(open_assignment.assignment_id, offering.offering_id, actor_id="x")
        assert seen == []

    def test_unsubscribe(self, procurement: Procurement) -> None:
        seen: list[Event] = []
        unsubscribe = procurement.subscribe("TenderAssignmentCreated", seen.append)
        unsubscribe()

        procurement.create_assignment("visit-1", None, requested("Urea"))
        assert seen == []


class TestLiveSettings:
    def test_session_follows_settings_holder(
        self, temp_db: Path, test_time: TestTimeProvider
    ) -> None:
        SettingsHolder.init(ProcurementSettings(db_path=temp_db, enforce_offering_deadline=True))
        proc = Procurement(time_provider=test_time)
        assert proc.sqlite_path == temp_db

        late = proc.create_assignment("visit-1", date(2025, 1, 10), requested("Urea"))
        with pytest.raises(ConflictError):
            proc.submit_offering(late.assignment_id, "toko-a", offer("9"))

        SettingsHolder.set(enforce_offering_deadline=False, delivery_lead_days=1)

        assert proc.settings.delivery_lead_days == 1
        offering = proc.submit_offering(late.assignment_id, "toko-a", offer("9"))
        proc.approve(late.assignment_id, offering.offering_id, actor_id="admin-1")
        note = proc.issue_delivery_note(late.assignment_id, "driver-1", actor_id="admin-1")
        assert note.scheduled_for == date(2025, 1, 16)

    def test_closed_session_stops_following(
        self, temp_db: Path, test_time: TestTimeProvider
    ) -> None:
        SettingsHolder.init(ProcurementSettings(db_path=temp_db))
        proc = Procurement(time_provider=test_time)
        proc.close()

        SettingsHolder.set(delivery_lead_days=9)
        assert proc.settings.delivery_lead_days == 3

    def test_context_manager_releases_subscription(
        self, temp_db: Path, test_time: TestTimeProvider
    ) -> None:
        SettingsHolder.init(ProcurementSettings(db_path=temp_db))
        for _ in range(3):
            with Procurement(time_provider=test_time) as proc:
                proc.create_assignment("visit-1", None, requested("Urea"))
        assert SettingsHolder._listeners == []

        SettingsHolder.set(delivery_lead_days=9)
        assert proc.settings.delivery_lead_days == 3

    def test_explicit_settings_are_pinned(self, procurement: Procurement) -> None:
        SettingsHolder.set(delivery_lead_days=9)
        assert procurement.settings.delivery_lead_days == 3


def test_stats(procurement: Procurement, urea_request: list[dict]) -> None:
    open_one = procurement.create_assignment("visit-1", OPEN_DEADLINE, urea_request)
    closed_one = procurement.create_assignment("visit-2", OPEN_DEADLINE, urea_request)
    offering = procurement.submit_offering(closed_one.assignment_id, "toko-a", offer("9"))
    procurement.submit_offering(open_one.assignment_id, "toko-b", offer("9"))
    procurement.approve(closed_one.assignment_id, offering.offering_id, actor_id="admin-1")
    procurement.issue_delivery_note(closed_one.assignment_id, "driver-1", actor_id="admin-1")

    stats = procurement.stats()

    assert stats["assignments"] == {"open": 1, "closed": 1, "eligible": 1}
    assert stats["offering_count"] == 2
    assert stats["delivery_note_count"] == 1
    # 2 created + 2 offerings + approval + close marker + delivery note
    assert stats["event_count"] == 7
