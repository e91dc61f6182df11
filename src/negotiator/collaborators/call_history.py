"""SQLite-backed call-history store.

Every finished vendor contact attempt is persisted as a ``CallRecord``.
Accepts a sqlite3.Connection, uses parameterized queries exclusively, and
commits synchronously after writes.  Records are never deleted by the
workflow; only an explicit ``delete`` removes them.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from negotiator.domain.errors import CallRecordNotFoundError
from negotiator.domain.models import CallRecord, CallRecordUpdate

_COLUMNS: tuple[str, ...] = (
    "call_id",
    "session_id",
    "vendor_name",
    "vendor_phone",
    "started_at",
    "ended_at",
    "duration_seconds",
    "status",
    "ended_reason",
    "requirements_json",
    "quoted_price",
    "negotiated_price",
    "transcript",
    "recording_url",
    "notes",
    "created_at",
)


class CallHistory(Protocol):
    """Call-record persistence the workflow and HTTP layer depend on."""

    def create(self, record: CallRecord) -> CallRecord: ...

    def get(self, call_id: str) -> CallRecord: ...

    def update(self, call_id: str, changes: CallRecordUpdate) -> CallRecord: ...

    def delete(self, call_id: str) -> bool: ...

    def list_recent(self, limit: int = 50) -> list[CallRecord]: ...


def init_call_history_db(db_path: Path | str) -> sqlite3.Connection:
    """Create and initialize the call-history database with WAL mode and indexes.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.

    Returns:
        An open sqlite3.Connection usable from worker threads.
    """
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS call_history (
            call_id TEXT PRIMARY KEY,
            session_id TEXT,
            vendor_name TEXT NOT NULL,
            vendor_phone TEXT NOT NULL DEFAULT '',
            started_at TEXT,
            ended_at TEXT,
            duration_seconds INTEGER,
            status TEXT NOT NULL,
            ended_reason TEXT,
            requirements_json TEXT,
            quoted_price REAL,
            negotiated_price REAL,
            transcript TEXT,
            recording_url TEXT,
            notes TEXT,
            created_at TEXT NOT NULL
        )
    """)

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_call_history_session ON call_history (session_id)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_call_history_created ON call_history (created_at)"
    )

    conn.commit()
    return conn


def close_call_history_db(conn: sqlite3.Connection) -> None:
    """Close the call-history database connection.

    Args:
        conn: The database connection to close.
    """
    conn.close()


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class CallHistoryStore:
    """Persist and query ``CallRecord`` rows."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialize with an open database connection.

        Args:
            conn: Connection whose database already has the ``call_history``
                  table (see ``init_call_history_db``).
        """
        self._conn = conn
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def create(self, record: CallRecord) -> CallRecord:
        """Insert *record*, replacing any row with the same ``call_id``.

        Returns:
            The stored record.
        """
        values = (
            record.call_id,
            record.session_id,
            record.vendor_name,
            record.vendor_phone,
            _iso(record.started_at),
            _iso(record.ended_at),
            record.duration_seconds,
            record.status,
            record.ended_reason,
            json.dumps(record.requirements) if record.requirements is not None else None,
            record.quoted_price,
            record.negotiated_price,
            record.transcript,
            record.recording_url,
            record.notes,
            _iso(record.created_at),
        )
        placeholders = ", ".join("?" for _ in _COLUMNS)
        with self._lock:
            self._conn.execute(
                f"INSERT OR REPLACE INTO call_history ({', '.join(_COLUMNS)}) "
                f"VALUES ({placeholders})",
                values,
            )
            self._conn.commit()
        return record

    def update(self, call_id: str, changes: CallRecordUpdate) -> CallRecord:
        """Apply the fields set on *changes* to an existing record.

        Raises:
            CallRecordNotFoundError: If no record has *call_id*.
        """
        fields = changes.model_dump(exclude_unset=True)
        if fields:
            assignments = ", ".join(f"{name} = ?" for name in fields)
            params = [
                _iso(v) if isinstance(v, datetime) else v for v in fields.values()
            ]
            with self._lock:
                cursor = self._conn.execute(
                    f"UPDATE call_history SET {assignments} WHERE call_id = ?",
                    (*params, call_id),
                )
                self._conn.commit()
            if cursor.rowcount == 0:
                raise CallRecordNotFoundError(call_id)
        return self.get(call_id)

    def delete(self, call_id: str) -> bool:
        """Delete a record; returns False when it did not exist."""
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM call_history WHERE call_id = ?", (call_id,)
            )
            self._conn.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get(self, call_id: str) -> CallRecord:
        """Fetch one record.

        Raises:
            CallRecordNotFoundError: If no record has *call_id*.
        """
        rows = self._select("SELECT * FROM call_history WHERE call_id = ?", (call_id,))
        if not rows:
            raise CallRecordNotFoundError(call_id)
        return rows[0]

    def list_recent(self, limit: int = 50) -> list[CallRecord]:
        """Return up to *limit* records, newest first."""
        return self._select(
            "SELECT * FROM call_history ORDER BY created_at DESC LIMIT ?", (limit,)
        )

    def list_by_session(self, session_id: str) -> list[CallRecord]:
        """Return every record for *session_id* in call order."""
        return self._select(
            "SELECT * FROM call_history WHERE session_id = ? ORDER BY created_at ASC",
            (session_id,),
        )

    def _select(self, sql: str, params: tuple[Any, ...]) -> list[CallRecord]:
        with self._lock:
            prev_factory = self._conn.row_factory
            self._conn.row_factory = sqlite3.Row
            try:
                rows = self._conn.execute(sql, params).fetchall()
            finally:
                self._conn.row_factory = prev_factory
        return [_row_to_record(dict(row)) for row in rows]


def _row_to_record(row: dict[str, Any]) -> CallRecord:
    requirements_json = row.pop("requirements_json")
    row["requirements"] = json.loads(requirements_json) if requirements_json else None
    return CallRecord.model_validate(row)
