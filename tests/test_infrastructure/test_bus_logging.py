"""
Test the in-process bus and the logging helpers around it.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from petagri_procurement.kernel.bus import ALL_EVENTS, InProcessBus
from petagri_procurement.kernel.errors import ConflictError
from petagri_procurement.kernel.events import Event
from petagri_procurement.kernel.logging import (
    LogOperation,
    configure_logging,
    get_correlation_id,
    redact_context,
    set_correlation_id,
)


def make_event(event_type: str = "OfferingSubmitted") -> Event:
    return Event(
        event_id="e-1",
        stream_id="o-1",
        stream_type="Offering",
        version=1,
        command_id="c-1",
        event_type=event_type,
        occurred_at=datetime(2025, 1, 15, tzinfo=timezone.utc),
        actor_id="toko-a",
        payload={},
    )


class TestInProcessBus:
    def setup_method(self) -> None:
        configure_logging(json_output=False, log_level="DEBUG")

    def test_handlers_called_in_registration_order(self) -> None:
        bus = InProcessBus()
        calls: list[str] = []
        bus.register_event_handler("OfferingSubmitted", lambda e: calls.append("first"))
        bus.register_event_handler("OfferingSubmitted", lambda e: calls.append("second"))
        bus.register_event_handler("OfferingApproved", lambda e: calls.append("other"))

        bus.publish_event(make_event())

        assert calls == ["first", "second"]
        assert set(bus.get_event_types()) == {"OfferingSubmitted", "OfferingApproved"}

    def test_wildcard_receives_everything(self) -> None:
        bus = InProcessBus()
        seen: list[str] = []
        bus.register_event_handler(ALL_EVENTS, lambda e: seen.append(e.event_type))

        bus.publish_events([make_event("A"), make_event("B")])

        assert seen == ["A", "B"]

    def test_failing_handler_does_not_stop_others(self) -> None:
        bus = InProcessBus()
        seen: list[str] = []

        def broken(event: Event) -> None:
            raise RuntimeError("notification service down")

        bus.register_event_handler("OfferingSubmitted", broken)
        bus.register_event_handler("OfferingSubmitted", lambda e: seen.append(e.event_id))

        bus.publish_event(make_event())

        assert seen == ["e-1"]

    def test_unregister(self) -> None:
        bus = InProcessBus()
        seen: list[str] = []

        def handler(event: Event) -> None:
            seen.append(event.event_id)

        bus.register_event_handler("OfferingSubmitted", handler)
        bus.unregister_event_handler("OfferingSubmitted", handler)
        bus.unregister_event_handler("Unknown", handler)
        bus.publish_event(make_event())

        assert seen == []

    def test_clear(self) -> None:
        bus = InProcessBus()
        bus.register_event_handler("X", lambda e: None)
        bus.clear()
        assert bus.get_event_types() == []


class TestLoggingHelpers:
    def test_redact_context(self) -> None:
        redacted = redact_context(
            {"partner_id": "toko-a", "actor_id": "u-1", "assignment_id": "a-1"}
        )
        assert redacted == {
            "partner_id": "***REDACTED***",
            "actor_id": "***REDACTED***",
            "assignment_id": "a-1",
        }

    def test_correlation_id(self) -> None:
        set_correlation_id("req-123")
        assert get_correlation_id() == "req-123"

    def test_log_operation_success(self) -> None:
        logger = MagicMock()

        with LogOperation(logger, "submit_offering", partner_id="toko-a", assignment_id="a-1"):
            pass

        started, completed = logger.info.call_args_list
        assert started.args == ("submit_offering started",)
        assert completed.args == ("submit_offering completed",)
        assert completed.kwargs["partner_id"] == "***REDACTED***"
        assert completed.kwargs["assignment_id"] == "a-1"
        assert "duration_ms" in completed.kwargs

    def test_log_operation_domain_refusal_is_warning(self) -> None:
        logger = MagicMock()

        with pytest.raises(ConflictError):
            with LogOperation(logger, "approve", assignment_id="a-1"):
                raise ConflictError("already decided", reason=ConflictError.ALREADY_DECIDED)

        logger.error.assert_not_called()
        (call,) = logger.warning.call_args_list
        assert call.args == ("approve rejected",)
        assert call.kwargs["reason"] == "already_decided"

    def test_log_operation_fault_is_error(self) -> None:
        logger = MagicMock()

        with pytest.raises(RuntimeError):
            with LogOperation(logger, "approve"):
                raise RuntimeError("disk full")

        logger.warning.assert_not_called()
        assert logger.error.call_args.args == ("approve failed",)
