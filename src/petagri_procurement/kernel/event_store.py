"""
SQLite event store - append-only log shared by every client session

The store is the source of truth for the tender workflow. It provides:
- Append-only semantics (events are never modified or deleted)
- Idempotency via command_id
- Optimistic locking via UNIQUE(stream_id, version)
- Lazy, ordered scans with payload filters for the read side

The uniqueness constraint is the only mutual exclusion in the system:
two sessions racing to write version N of the same stream cannot both win,
whichever process they live in.
"""

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from petagri_procurement.kernel.errors import (
    EventStoreError,
    StreamPreconditionFailed,
    StreamVersionConflict,
)
from petagri_procurement.kernel.events import Event
from petagri_procurement.kernel.logging import get_logger
from petagri_procurement.kernel.metrics import (
    events_appended_total,
    stream_version_conflicts_total,
)
from petagri_procurement.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

_COLUMNS = (
    "rowid AS position, event_id, stream_id, stream_type, version, "
    "command_id, event_type, occurred_at, actor_id, payload_json"
)


class SQLiteEventStore:
    """
    SQLite-based event store in WAL mode

    Schema:
    - events table, UNIQUE(stream_id, version)
    - indices on stream, event type, stream type and command id

    Scans are ordered by (occurred_at, rowid): the timestamp first, with
    insertion order breaking ties between events recorded in the same instant.
    """

    def __init__(self, db_path: str | Path, timeout_seconds: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self.timeout_seconds = timeout_seconds
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                    event_id TEXT PRIMARY KEY,
                    stream_id TEXT NOT NULL,
                    stream_type TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    command_id TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    occurred_at TEXT NOT NULL,
                    actor_id TEXT,
                    payload_json TEXT NOT NULL,

                    UNIQUE(stream_id, version)
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type, occurred_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_stream_type "
                "ON events(stream_type, occurred_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_command ON events(command_id)"
            )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """
        Autocommit connection; writers open their own BEGIN IMMEDIATE
        transaction so the version check and the insert happen under
        one write lock.
        """
        conn = sqlite3.connect(
            str(self.db_path), timeout=self.timeout_seconds, isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA synchronous=NORMAL")
            yield conn
        finally:
            conn.close()

    @retry_on_sqlite_lock()
    def append(
        self,
        stream_id: str,
        expected_version: int,
        events: list[Event],
        *,
        unless_stream_exists: str | None = None,
    ) -> list[Event]:
        """
        Append events to a stream with optimistic locking

        Args:
            stream_id: Aggregate identifier
            expected_version: Version the caller observed (0 for a new stream)
            events: Events carrying versions expected_version+1, +2, ...
            unless_stream_exists: Refuse the append if this other stream has
                any events, checked in the same transaction as the insert

        Returns:
            The appended events, or the previously stored ones when the same
            command_id was already applied to this stream

        Raises:
            StreamVersionConflict: another writer already holds the version
            StreamPreconditionFailed: the unless_stream_exists stream exists
            EventStoreError: any other database failure
        """
        if not events:
            return []

        first_command_id = events[0].command_id
        existing = [
            e
            for e in self._get_events_by_command_id(first_command_id)
            if e.stream_id == stream_id
        ]
        if existing:
            return existing

        with self._connect() as conn:
            # "database is locked" surfaces here and is retried by the decorator
            conn.execute("BEGIN IMMEDIATE")
            try:
                current_version = self._get_stream_version(conn, stream_id)
                if current_version != expected_version:
                    raise StreamVersionConflict(stream_id, expected_version, current_version)
                if unless_stream_exists and self._get_stream_version(conn, unless_stream_exists):
                    raise StreamPreconditionFailed(stream_id, unless_stream_exists)

                conn.executemany(
                    """
                    INSERT INTO events (
                        event_id, stream_id, stream_type, version,
                        command_id, event_type, occurred_at, actor_id, payload_json
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            event.event_id,
                            event.stream_id,
                            event.stream_type,
                            event.version,
                            event.command_id,
                            event.event_type,
                            event.occurred_at.isoformat(),
                            event.actor_id,
                            json.dumps(event.payload),
                        )
                        for event in events
                    ],
                )
                conn.execute("COMMIT")

            except StreamVersionConflict:
                conn.execute("ROLLBACK")
                stream_version_conflicts_total.labels(stream_type=events[0].stream_type).inc()
                raise

            except StreamPreconditionFailed:
                conn.execute("ROLLBACK")
                raise

            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                message = str(e).lower()
                if "stream_id" in message and "version" in message:
                    stream_version_conflicts_total.labels(
                        stream_type=events[0].stream_type
                    ).inc()
                    raise StreamVersionConflict(
                        stream_id, expected_version, self._get_stream_version(conn, stream_id)
                    ) from e
                raise EventStoreError(f"Failed to append events: {e}") from e

            except sqlite3.OperationalError:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

            except Exception as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise EventStoreError(f"Unexpected error appending events: {e}") from e

        for event in events:
            events_appended_total.labels(
                stream_type=event.stream_type, event_type=event.event_type
            ).inc()
        logger.debug(
            "Events appended",
            stream_id=stream_id,
            version=events[-1].version,
            event_types=[e.event_type for e in events],
        )
        return events

    def load_stream(self, stream_id: str) -> list[Event]:
        """All events of a stream in version order (empty if absent)"""
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_COLUMNS} FROM events WHERE stream_id = ? ORDER BY version ASC",
                (stream_id,),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def get_stream_version(self, stream_id: str) -> int:
        """Current version of a stream, 0 if it does not exist"""
        with self._connect() as conn:
            return self._get_stream_version(conn, stream_id)

    def stream_exists(self, stream_id: str) -> bool:
        return self.get_stream_version(stream_id) > 0

    def iter_events(
        self,
        *,
        stream_type: str | None = None,
        event_types: tuple[str, ...] | list[str] | None = None,
        payload_equals: dict[str, Any] | None = None,
        descending: bool = False,
        batch_size: int = 200,
    ) -> Iterator[Event]:
        """
        Lazily scan events matching the filters, in (occurred_at, rowid) order

        Rows are fetched in keyset-paginated batches, each on its own short
        connection, so a consumer that stops early holds no database handle
        and events appended mid-scan after the cursor are still seen.

        Args:
            stream_type: Only events of this aggregate type
            event_types: Only these event types
            payload_equals: Top-level payload keys that must equal the given values
            descending: Newest first
            batch_size: Rows per round trip
        """
        conditions: list[str] = []
        params: list[Any] = []

        if stream_type:
            conditions.append("stream_type = ?")
            params.append(stream_type)
        if event_types:
            conditions.append(f"event_type IN ({', '.join('?' for _ in event_types)})")
            params.extend(event_types)
        for key, value in (payload_equals or {}).items():
            conditions.append("json_extract(payload_json, ?) = ?")
            params.extend([f"$.{key}", value])

        direction = "DESC" if descending else "ASC"
        comparator = "<" if descending else ">"
        cursor_key: tuple[str, int] | None = None

        while True:
            where = list(conditions)
            page_params = list(params)
            if cursor_key is not None:
                where.append(f"(occurred_at, rowid) {comparator} (?, ?)")
                page_params.extend(cursor_key)
            where_clause = " AND ".join(where) if where else "1=1"

            with self._connect() as conn:
                rows = conn.execute(
                    f"""
                    SELECT {_COLUMNS} FROM events
                    WHERE {where_clause}
                    ORDER BY occurred_at {direction}, rowid {direction}
                    LIMIT ?
                    """,
                    (*page_params, batch_size),
                ).fetchall()

            for row in rows:
                yield self._row_to_event(row)

            if len(rows) < batch_size:
                return
            last = rows[-1]
            cursor_key = (last["occurred_at"], last["position"])

    def query_events(
        self,
        *,
        stream_type: str | None = None,
        event_type: str | None = None,
        payload_equals: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """Eager variant of iter_events for small result sets"""
        result: list[Event] = []
        for event in self.iter_events(
            stream_type=stream_type,
            event_types=[event_type] if event_type else None,
            payload_equals=payload_equals,
        ):
            result.append(event)
            if limit is not None and len(result) >= limit:
                break
        return result

    def count_events(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    def count_streams(self, stream_type: str | None = None) -> int:
        with self._connect() as conn:
            if stream_type:
                row = conn.execute(
                    "SELECT COUNT(DISTINCT stream_id) FROM events WHERE stream_type = ?",
                    (stream_type,),
                ).fetchone()
            else:
                row = conn.execute("SELECT COUNT(DISTINCT stream_id) FROM events").fetchone()
            return row[0]

    def _get_stream_version(self, conn: sqlite3.Connection, stream_id: str) -> int:
        row = conn.execute(
            "SELECT MAX(version) FROM events WHERE stream_id = ?",
            (stream_id,),
        ).fetchone()
        return row[0] if row[0] is not None else 0

    def _get_events_by_command_id(self, command_id: str) -> list[Event]:
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_COLUMNS} FROM events WHERE command_id = ? ORDER BY version ASC",
                (command_id,),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        return Event(
            event_id=row["event_id"],
            stream_id=row["stream_id"],
            stream_type=row["stream_type"],
            version=row["version"],
            command_id=row["command_id"],
            event_type=row["event_type"],
            occurred_at=datetime.fromisoformat(row["occurred_at"]),
            actor_id=row["actor_id"],
            payload=json.loads(row["payload_json"]),
        )
