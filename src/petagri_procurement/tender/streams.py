"""Commit handler output to the event store and publish it"""

from petagri_procurement.kernel.bus import InProcessBus
from petagri_procurement.kernel.event_store import SQLiteEventStore
from petagri_procurement.kernel.events import Event


def commit(
    event_store: SQLiteEventStore,
    events: list[Event],
    bus: InProcessBus | None = None,
    *,
    unless_stream_exists: str | None = None,
) -> list[Event]:
    """
    Append one handler's events to their stream, then publish them

    The expected stream version is the one the handler built on, so a
    concurrent writer that got there first makes this raise
    StreamVersionConflict and nothing is published. ``unless_stream_exists``
    is passed through to the store as an atomic guard.
    """
    if not events:
        return []
    stream_id = events[0].stream_id
    stored = event_store.append(
        stream_id, events[0].version - 1, events, unless_stream_exists=unless_stream_exists
    )
    if bus is not None:
        bus.publish_events(stored)
    return stored
