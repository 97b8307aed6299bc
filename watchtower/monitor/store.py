"""Persistence gateway for status history and emergency log.

PersistenceGateway is the interface the tracker writes through. SQLiteGateway
is the shipped implementation: two append-only tables, newest-first queries.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from .models import EmergencyEvent, EmergencyKind, ServiceStatus, StatusRecord


class PersistError(Exception):
    """Raised when storage is unavailable or rejects a write."""


class PersistenceGateway(ABC):
    """Append-only storage for status records and emergency events."""

    @abstractmethod
    def append_status(self, record: StatusRecord) -> None:
        ...

    @abstractmethod
    def append_emergency(self, event: EmergencyEvent) -> None:
        ...

    @abstractmethod
    def query_recent_status(self, limit: int = 100) -> list[StatusRecord]:
        """Newest first."""

    @abstractmethod
    def query_recent_emergencies(self, limit: int = 50) -> list[EmergencyEvent]:
        """Newest first."""

    @abstractmethod
    def find_latest_status(self, service: str) -> StatusRecord | None:
        ...

    def ping(self) -> bool:
        """True when the backing store is reachable."""
        return True

    def close(self) -> None:
        pass


# ── SQLite ───────────────────────────────────────────────────────────────────


def _parse_ts(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _row_to_status(row: sqlite3.Row) -> StatusRecord:
    return StatusRecord(
        service=row["service"],
        status=ServiceStatus(row["status"]),
        observed_at=_parse_ts(row["observed_at"]),
        response_time_ms=row["response_time_ms"],
        error=row["error"],
    )


def _row_to_emergency(row: sqlite3.Row) -> EmergencyEvent:
    return EmergencyEvent(
        kind=EmergencyKind(row["kind"]),
        message=row["message"],
        payload=json.loads(row["payload"]) if row["payload"] else {},
        occurred_at=_parse_ts(row["occurred_at"]),
    )


class SQLiteGateway(PersistenceGateway):
    """SQLite-backed gateway.

    One connection is shared between the persistence worker thread and API
    request threads, so every statement runs under a lock.
    """

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            raise PersistError(f"Cannot open database {self._db_path}: {e}") from e

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS service_status (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                service TEXT NOT NULL,
                status TEXT NOT NULL,
                observed_at TEXT NOT NULL,
                response_time_ms INTEGER,
                error TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_status_observed
                ON service_status (observed_at DESC);

            CREATE TABLE IF NOT EXISTS emergency_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                kind TEXT NOT NULL,
                message TEXT NOT NULL,
                payload TEXT,
                occurred_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_emergency_occurred
                ON emergency_log (occurred_at DESC);
        """)
        conn.commit()

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        try:
            with self._lock:
                return self._get_conn().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistError(str(e)) from e

    def _write(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        """Execute + commit, returning the affected row count."""
        try:
            with self._lock:
                conn = self._get_conn()
                cursor = conn.execute(sql, params)
                conn.commit()
                return cursor.rowcount
        except sqlite3.Error as e:
            raise PersistError(str(e)) from e

    def append_status(self, record: StatusRecord) -> None:
        self._write(
            "INSERT INTO service_status "
            "(service, status, observed_at, response_time_ms, error) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                record.service, record.status.value, record.observed_at.isoformat(),
                record.response_time_ms, record.error,
            ),
        )

    def append_emergency(self, event: EmergencyEvent) -> None:
        try:
            payload = json.dumps(event.payload, default=str)
        except (TypeError, ValueError) as e:
            raise PersistError(f"Payload is not serialisable: {e}") from e
        self._write(
            "INSERT INTO emergency_log (kind, message, payload, occurred_at) "
            "VALUES (?, ?, ?, ?)",
            (event.kind.value, event.message, payload, event.occurred_at.isoformat()),
        )

    def query_recent_status(self, limit: int = 100) -> list[StatusRecord]:
        rows = self._query(
            "SELECT * FROM service_status ORDER BY observed_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [_row_to_status(r) for r in rows]

    def query_recent_emergencies(self, limit: int = 50) -> list[EmergencyEvent]:
        rows = self._query(
            "SELECT * FROM emergency_log ORDER BY occurred_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [_row_to_emergency(r) for r in rows]

    def find_latest_status(self, service: str) -> StatusRecord | None:
        rows = self._query(
            "SELECT * FROM service_status WHERE service = ? "
            "ORDER BY observed_at DESC, id DESC LIMIT 1",
            (service,),
        )
        return _row_to_status(rows[0]) if rows else None

    def cleanup_old(self, days: int = 30) -> int:
        """Remove status rows older than N days."""
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        return self._write("DELETE FROM service_status WHERE observed_at < ?", (cutoff,))

    def ping(self) -> bool:
        try:
            self._query("SELECT 1")
        except PersistError:
            return False
        return True

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
