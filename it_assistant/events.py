"""Event log for diagnostic runs, fixes and cleaning operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
import os
import sqlite3
import threading
from typing import List, Optional, Protocol

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS system_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp REAL NOT NULL,
    event_type TEXT NOT NULL,
    description TEXT,
    severity TEXT
)
"""


@dataclass(frozen=True)
class Event:
    event_type: str
    description: str
    severity: str = "info"
    timestamp: datetime = field(default_factory=datetime.now)


class EventSink(Protocol):
    def record(self, event: Event) -> None: ...


class MemoryEventSink:
    """Keeps events in a list. Used by tests and one-shot CLI runs."""

    def __init__(self) -> None:
        self.events: List[Event] = []
        self._lock = threading.Lock()

    def record(self, event: Event) -> None:
        with self._lock:
            self.events.append(event)

    def recent(self, limit: int = 50) -> List[Event]:
        with self._lock:
            return list(reversed(self.events[-limit:])) if limit > 0 else []


class SqliteEventSink:
    """Durable event log in a local SQLite database."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()
        if path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        with self._conn:
            self._conn.execute(_SCHEMA)

    def record(self, event: Event) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO system_events (timestamp, event_type, description, severity) VALUES (?, ?, ?, ?)",
                (event.timestamp.timestamp(), event.event_type, event.description, event.severity),
            )

    def recent(self, limit: int = 50) -> List[Event]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT timestamp, event_type, description, severity FROM system_events "
                "ORDER BY timestamp DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [_row_to_event(row) for row in rows]

    def between(self, start: datetime, end: datetime, event_type: Optional[str] = None) -> List[Event]:
        query = "SELECT timestamp, event_type, description, severity FROM system_events WHERE timestamp BETWEEN ? AND ?"
        params: list = [start.timestamp(), end.timestamp()]
        if event_type:
            query += " AND event_type = ?"
            params.append(event_type)
        query += " ORDER BY timestamp ASC, id ASC"
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [_row_to_event(row) for row in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def record_event(sink: Optional[EventSink], event: Event) -> None:
    """Record ``event``; a failing sink is logged and never propagates."""
    if sink is None:
        return
    try:
        sink.record(event)
    except Exception:
        logger.exception("Failed to record %s event", event.event_type)


def _row_to_event(row) -> Event:
    timestamp, event_type, description, severity = row
    return Event(
        event_type=event_type,
        description=description or "",
        severity=severity or "info",
        timestamp=datetime.fromtimestamp(timestamp),
    )


class SerializedEventSink:
    """Wraps any sink so that concurrent callers never interleave writes."""

    def __init__(self, sink: EventSink) -> None:
        self.sink = sink
        self._lock = threading.Lock()

    def record(self, event: Event) -> None:
        with self._lock:
            self.sink.record(event)
