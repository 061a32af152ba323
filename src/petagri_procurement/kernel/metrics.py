"""
Prometheus metrics for the procurement core

Event store traffic, per-operation latency and the tender workflow's
outcomes (offerings, approval wins and losses, eligibility, delivery notes).
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# ============================================================================
# Event Store Metrics
# ============================================================================

events_appended_total = Counter(
    "petagri_events_appended_total",
    "Total number of events appended to the event store",
    ["stream_type", "event_type"],
)

stream_version_conflicts_total = Counter(
    "petagri_stream_version_conflicts_total",
    "Appends refused because another writer took the stream version first",
    ["stream_type"],
)

sqlite_lock_retries_total = Counter(
    "petagri_sqlite_lock_retries_total",
    "Appends retried after SQLite reported the database as locked",
)

# ============================================================================
# Operation Metrics
# ============================================================================

command_duration_seconds = Histogram(
    "petagri_command_duration_seconds",
    "Duration of procurement operations in seconds",
    ["command_type"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

commands_processed_total = Counter(
    "petagri_commands_processed_total",
    "Total number of procurement operations processed",
    ["command_type", "status"],  # status: success, failure
)

# ============================================================================
# Tender Workflow Metrics
# ============================================================================

assignments_created_total = Counter(
    "petagri_assignments_created_total",
    "Tender assignments created from visit reports",
)

offerings_submitted_total = Counter(
    "petagri_offerings_submitted_total",
    "Offerings accepted from partners",
)

approvals_total = Counter(
    "petagri_approvals_total",
    "Approval attempts by outcome",
    ["outcome"],  # outcome: approved, already_decided
)

eligibility_checks_total = Counter(
    "petagri_eligibility_checks_total",
    "Delivery eligibility evaluations",
    ["eligible"],
)

delivery_notes_issued_total = Counter(
    "petagri_delivery_notes_issued_total",
    "Delivery notes issued for approved assignments",
)

assignments_by_status = Gauge(
    "petagri_assignments_by_status",
    "Number of tender assignments by status at last health check",
    ["status"],
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_command_duration(command_type: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator recording duration and success/failure of an operation

    Args:
        command_type: Label value, e.g. "SubmitOffering"
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                command_duration_seconds.labels(command_type=command_type).observe(
                    time.perf_counter() - start
                )
                commands_processed_total.labels(
                    command_type=command_type, status=status
                ).inc()

        return wrapper

    return decorator


def start_metrics_server(port: int = 9090) -> None:
    """Expose /metrics on the given port (background thread)"""
    start_http_server(port)


def update_assignment_status_metrics(open_count: int, closed_count: int) -> None:
    assignments_by_status.labels(status="OPEN").set(open_count)
    assignments_by_status.labels(status="CLOSED").set(closed_count)
