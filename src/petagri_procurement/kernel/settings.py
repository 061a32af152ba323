"""
Process-wide settings

ProcurementSettings is an immutable snapshot; SettingsHolder owns the single
current snapshot for the process. Components read it through the holder and
may subscribe to be told when it is replaced.
"""

import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from petagri_procurement.kernel.errors import ValidationError

ENV_PREFIX = "PETAGRI_"


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValidationError(f"{name} must be an integer, got {value!r}") from e


def _float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValidationError(f"{name} must be a number, got {value!r}") from e


class ProcurementSettings(BaseModel):
    """Configuration snapshot for one process"""

    db_path: Path = Field(
        default=Path("petagri_procurement.db"),
        description="SQLite database file holding the event log",
    )
    environment: Literal["development", "test", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_logs: bool = False
    sqlite_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How long a connection waits on a locked database before failing",
    )
    enforce_offering_deadline: bool = Field(
        default=False,
        description="Reject offerings submitted after the assignment's deadline day",
    )
    delivery_lead_days: int = Field(
        default=3,
        ge=0,
        le=60,
        description="Days between delivery note issue and scheduled delivery",
    )
    metrics_port: int = Field(default=9090, ge=1, le=65535)
    health_port: int = Field(default=8080, ge=1, le=65535)
    enforce_roles: bool = Field(
        default=False,
        description="Check actor roles against the role table instead of trusting callers",
    )

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls, **overrides: Any) -> "ProcurementSettings":
        """
        Build settings from PETAGRI_* environment variables

        Unset variables fall back to the defaults; keyword overrides win
        over the environment.

        Raises:
            ValidationError: A variable is unparsable or out of range
        """
        defaults = cls()
        values: dict[str, Any] = {
            "db_path": os.environ.get(f"{ENV_PREFIX}DB_PATH", str(defaults.db_path)),
            "environment": os.environ.get(
                f"{ENV_PREFIX}ENVIRONMENT", defaults.environment
            ).lower(),
            "log_level": os.environ.get(f"{ENV_PREFIX}LOG_LEVEL", defaults.log_level).upper(),
            "json_logs": _bool_env(f"{ENV_PREFIX}JSON_LOGS", defaults.json_logs),
            "sqlite_timeout_seconds": _float_env(
                f"{ENV_PREFIX}SQLITE_TIMEOUT_SECONDS", defaults.sqlite_timeout_seconds
            ),
            "enforce_offering_deadline": _bool_env(
                f"{ENV_PREFIX}ENFORCE_OFFERING_DEADLINE", defaults.enforce_offering_deadline
            ),
            "delivery_lead_days": _int_env(
                f"{ENV_PREFIX}DELIVERY_LEAD_DAYS", defaults.delivery_lead_days
            ),
            "metrics_port": _int_env(f"{ENV_PREFIX}METRICS_PORT", defaults.metrics_port),
            "health_port": _int_env(f"{ENV_PREFIX}HEALTH_PORT", defaults.health_port),
            "enforce_roles": _bool_env(f"{ENV_PREFIX}ENFORCE_ROLES", defaults.enforce_roles),
        }
        values.update(overrides)
        try:
            return cls(**values)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid settings: {e}") from e


SettingsListener = Callable[[ProcurementSettings, ProcurementSettings], None]


class SettingsHolder:
    """
    Single owner of the current ProcurementSettings

    ``init`` is first-call-wins; later calls return the existing snapshot.
    ``set`` validates the change, swaps the snapshot and notifies every
    listener with ``(old, new)``.
    """

    _lock = threading.Lock()
    _current: ProcurementSettings | None = None
    _listeners: list[SettingsListener] = []

    @classmethod
    def init(cls, settings: ProcurementSettings | None = None) -> ProcurementSettings:
        with cls._lock:
            if cls._current is None:
                cls._current = settings if settings is not None else ProcurementSettings.from_env()
            return cls._current

    @classmethod
    def get(cls) -> ProcurementSettings:
        current = cls._current
        if current is None:
            return cls.init()
        return current

    @classmethod
    def set(cls, **changes: Any) -> ProcurementSettings:
        """Replace the snapshot with a validated copy carrying ``changes``"""
        old = cls.get()
        data = old.model_dump()
        data.update(changes)
        try:
            new = ProcurementSettings(**data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid settings: {e}") from e

        with cls._lock:
            cls._current = new
            listeners = list(cls._listeners)

        for listener in listeners:
            listener(old, new)
        return new

    @classmethod
    def subscribe(cls, listener: SettingsListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unregisters it"""
        with cls._lock:
            cls._listeners.append(listener)

        def unsubscribe() -> None:
            with cls._lock:
                if listener in cls._listeners:
                    cls._listeners.remove(listener)

        return unsubscribe

    @classmethod
    def reset(cls) -> None:
        """Forget the snapshot and all listeners (tests only)"""
        with cls._lock:
            cls._current = None
            cls._listeners = []
