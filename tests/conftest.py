"""
Pytest configuration and shared fixtures

Every test gets its own database file and a manually driven clock set to
2025-01-15 12:00 UTC, so deadlines and delivery dates are deterministic.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest

from petagri_procurement.kernel.event_store import SQLiteEventStore
from petagri_procurement.kernel.settings import ProcurementSettings, SettingsHolder
from petagri_procurement.kernel.time import TestTimeProvider
from petagri_procurement.procurement import Procurement
from petagri_procurement.tender.handlers import TenderCommandHandlers
from petagri_procurement.tender.models import TenderAssignment
from tests.helpers import OPEN_DEADLINE


@pytest.fixture(autouse=True)
def reset_settings_holder() -> Iterator[None]:
    """Process-wide settings must not leak between tests"""
    SettingsHolder.reset()
    yield
    SettingsHolder.reset()


@pytest.fixture
def temp_db(tmp_path: Path) -> Path:
    """Database path inside the test's temporary directory (WAL files included)"""
    return tmp_path / "procurement.db"


@pytest.fixture
def event_store(temp_db: Path) -> SQLiteEventStore:
    return SQLiteEventStore(temp_db)


@pytest.fixture
def test_time() -> TestTimeProvider:
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings(temp_db: Path) -> ProcurementSettings:
    return ProcurementSettings(db_path=temp_db, environment="test")


@pytest.fixture
def handlers(test_time: TestTimeProvider, settings: ProcurementSettings) -> TenderCommandHandlers:
    return TenderCommandHandlers(test_time, settings)


@pytest.fixture
def procurement(
    temp_db: Path, test_time: TestTimeProvider, settings: ProcurementSettings
) -> Procurement:
    """Façade over a fresh database with the test clock"""
    return Procurement(temp_db, time_provider=test_time, settings=settings)


# =============================================================================
# Tender Fixtures
# =============================================================================


@pytest.fixture
def urea_request() -> list[dict]:
    """Visit report asking for 10 sacks of urea and 4 litres of fungicide"""
    return [
        {"product_name": "Urea 50kg", "quantity": "10", "target_price": "100"},
        {"product_name": "Fungisida Mankozeb", "quantity": "4", "dosage": "2 ml/l"},
    ]


@pytest.fixture
def open_assignment(procurement: Procurement, urea_request: list[dict]) -> TenderAssignment:
    return procurement.create_assignment(
        "visit-001", OPEN_DEADLINE, urea_request, actor_id="admin-1"
    )
