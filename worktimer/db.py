from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from .errors import ConflictError, DependencyError
from .models import SESSION_ACTIVE, Profile, Segment, Session

logger = logging.getLogger(__name__)

# Reported by SQLite when the one-open-segment-per-user index rejects a write.
OPEN_SEGMENT_CONSTRAINT = "work_segments.user_id"

_SESSION_COLUMNS = "id, user_id, local_date, note, project_id, status, created_at"
_SEGMENT_COLUMNS = "id, user_id, session_id, start_at, end_at"
_EDITABLE_SESSION_COLUMNS = frozenset({"note", "project_id"})


class Database:
    """Thin SQLite access layer for profiles, work sessions and their segments.

    The connection runs in autocommit mode; multi-statement writes go through
    ``transaction()`` which takes the write lock up front (BEGIN IMMEDIATE) so
    read-validate-write sequences from separate connections are serialized.
    """

    def __init__(self, db_path: str | Path, *, timeout: float = 5.0) -> None:
        try:
            self._conn = sqlite3.connect(str(db_path), timeout=timeout, isolation_level=None)
        except sqlite3.Error as exc:
            raise DependencyError(f"Cannot open database {db_path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._closed = False
        self._in_transaction = False

    def close(self) -> None:
        if self._closed:
            return
        self._conn.close()
        self._closed = True

    def initialize(self) -> None:
        # profiles: per-user settings, created lazily.
        # work_sessions: one row per day-scoped work session.
        # work_segments: contiguous timing spans; end_at NULL means running.
        # Segments reference sessions without ON DELETE CASCADE, so a session
        # can only be deleted after its segments are removed explicitly.
        try:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS profiles (
                  user_id TEXT PRIMARY KEY,
                  timezone TEXT NOT NULL DEFAULT 'UTC'
                );

                CREATE TABLE IF NOT EXISTS work_sessions (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  local_date TEXT NOT NULL,
                  note TEXT,
                  project_id TEXT,
                  status TEXT NOT NULL CHECK (status IN ('active', 'stopped')),
                  created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_work_sessions_user_date
                  ON work_sessions (user_id, local_date);

                CREATE TABLE IF NOT EXISTS work_segments (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  session_id TEXT NOT NULL REFERENCES work_sessions (id),
                  start_at TEXT NOT NULL,
                  end_at TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_work_segments_session
                  ON work_segments (session_id, start_at);

                CREATE UNIQUE INDEX IF NOT EXISTS uq_work_segments_one_open
                  ON work_segments (user_id) WHERE end_at IS NULL;
                """
            )
        except sqlite3.Error as exc:
            raise DependencyError(f"Failed to initialize schema: {exc}") from exc

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed calls atomically. Nested use joins the outer transaction."""
        if self._in_transaction:
            yield
            return

        self._run("BEGIN IMMEDIATE")
        self._in_transaction = True
        try:
            yield
            self._run("COMMIT")
        except BaseException:
            if self._conn.in_transaction:
                try:
                    self._conn.execute("ROLLBACK")
                except sqlite3.Error:
                    # Re-raise the original failure, not the rollback error.
                    logger.exception("Rollback failed")
            raise
        finally:
            self._in_transaction = False

    # Profiles

    def ensure_profile(self, user_id: str, default_timezone: str = "UTC") -> Profile:
        # Insert-if-absent is safe when two requests create the profile at once.
        self._run(
            "INSERT INTO profiles (user_id, timezone) VALUES (?, ?) ON CONFLICT(user_id) DO NOTHING",
            (user_id, default_timezone),
        )
        row = self._fetchone("SELECT user_id, timezone FROM profiles WHERE user_id = ?", (user_id,))
        return Profile(user_id=row["user_id"], timezone=row["timezone"])

    def set_profile_timezone(self, user_id: str, timezone_name: str) -> Profile:
        self._run(
            """
            INSERT INTO profiles (user_id, timezone)
            VALUES (?, ?)
            ON CONFLICT(user_id)
            DO UPDATE SET timezone=excluded.timezone
            """,
            (user_id, timezone_name),
        )
        return Profile(user_id=user_id, timezone=timezone_name)

    # Sessions

    def insert_session(
        self,
        user_id: str,
        local_date: str,
        *,
        status: str = SESSION_ACTIVE,
        created_at: datetime,
        note: str | None = None,
        project_id: str | None = None,
    ) -> Session:
        session = Session(
            id=uuid.uuid4().hex,
            user_id=user_id,
            local_date=local_date,
            status=status,
            created_at=_to_utc(created_at),
            note=note,
            project_id=project_id,
        )
        self._run(
            f"INSERT INTO work_sessions ({_SESSION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                session.id,
                user_id,
                local_date,
                note,
                project_id,
                status,
                _format_ts(session.created_at),
            ),
        )
        return session

    def get_session(self, session_id: str, user_id: str) -> Session | None:
        row = self._fetchone(
            f"SELECT {_SESSION_COLUMNS} FROM work_sessions WHERE id = ? AND user_id = ?",
            (session_id, user_id),
        )
        return _session_from_row(row) if row is not None else None

    def find_active_session(self, user_id: str) -> Session | None:
        row = self._fetchone(
            f"""
            SELECT {_SESSION_COLUMNS}
            FROM work_sessions
            WHERE user_id = ? AND status = ?
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            (user_id, SESSION_ACTIVE),
        )
        return _session_from_row(row) if row is not None else None

    def list_sessions(self, user_id: str, start_date: str, end_date: str) -> list[Session]:
        rows = self._fetchall(
            f"""
            SELECT {_SESSION_COLUMNS}
            FROM work_sessions
            WHERE user_id = ? AND local_date >= ? AND local_date <= ?
            ORDER BY local_date ASC, created_at ASC, id ASC
            """,
            (user_id, start_date, end_date),
        )
        return [_session_from_row(row) for row in rows]

    def set_session_status(self, session_id: str, user_id: str, status: str) -> None:
        self._run(
            "UPDATE work_sessions SET status = ? WHERE id = ? AND user_id = ?",
            (status, session_id, user_id),
        )

    def update_session_columns(self, session_id: str, user_id: str, values: dict[str, str | None]) -> None:
        unknown = set(values) - _EDITABLE_SESSION_COLUMNS
        if unknown:
            raise ValueError(f"Columns not editable: {sorted(unknown)}")
        if not values:
            return

        assignments = ", ".join(f"{column} = ?" for column in values)
        self._run(
            f"UPDATE work_sessions SET {assignments} WHERE id = ? AND user_id = ?",
            (*values.values(), session_id, user_id),
        )

    def delete_session(self, session_id: str, user_id: str) -> int:
        cursor = self._run(
            "DELETE FROM work_sessions WHERE id = ? AND user_id = ?",
            (session_id, user_id),
        )
        return cursor.rowcount

    # Segments

    def insert_segment(
        self,
        user_id: str,
        session_id: str,
        start_at: datetime,
        end_at: datetime | None = None,
    ) -> Segment:
        segment = Segment(
            id=uuid.uuid4().hex,
            user_id=user_id,
            session_id=session_id,
            start_at=_to_utc(start_at),
            end_at=_to_utc(end_at) if end_at is not None else None,
        )
        self._run(
            f"INSERT INTO work_segments ({_SEGMENT_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
            (
                segment.id,
                user_id,
                session_id,
                _format_ts(segment.start_at),
                _format_ts(segment.end_at) if segment.end_at is not None else None,
            ),
        )
        return segment

    def get_open_segment(self, user_id: str) -> Segment | None:
        row = self._fetchone(
            f"SELECT {_SEGMENT_COLUMNS} FROM work_segments WHERE user_id = ? AND end_at IS NULL",
            (user_id,),
        )
        return _segment_from_row(row) if row is not None else None

    def close_segment(self, segment_id: str, user_id: str, end_at: datetime) -> bool:
        # Conditional write: only an open segment can be closed, and only once.
        cursor = self._run(
            "UPDATE work_segments SET end_at = ? WHERE id = ? AND user_id = ? AND end_at IS NULL",
            (_format_ts(_to_utc(end_at)), segment_id, user_id),
        )
        return cursor.rowcount == 1

    def retime_segment(
        self,
        segment_id: str,
        user_id: str,
        start_at: datetime,
        end_at: datetime | None,
    ) -> None:
        self._run(
            "UPDATE work_segments SET start_at = ?, end_at = ? WHERE id = ? AND user_id = ?",
            (
                _format_ts(_to_utc(start_at)),
                _format_ts(_to_utc(end_at)) if end_at is not None else None,
                segment_id,
                user_id,
            ),
        )

    def list_segments(self, user_id: str, session_ids: Sequence[str]) -> list[Segment]:
        if not session_ids:
            return []

        placeholders = ", ".join("?" for _ in session_ids)
        rows = self._fetchall(
            f"""
            SELECT {_SEGMENT_COLUMNS}
            FROM work_segments
            WHERE user_id = ? AND session_id IN ({placeholders})
            ORDER BY start_at ASC, id ASC
            """,
            (user_id, *session_ids),
        )
        return [_segment_from_row(row) for row in rows]

    def delete_segments_for_session(self, session_id: str, user_id: str) -> int:
        cursor = self._run(
            "DELETE FROM work_segments WHERE session_id = ? AND user_id = ?",
            (session_id, user_id),
        )
        return cursor.rowcount

    def _run(self, sql: str, params: Sequence[object] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.IntegrityError as exc:
            if OPEN_SEGMENT_CONSTRAINT in str(exc):
                raise ConflictError("Timer is already running") from exc
            raise DependencyError(f"Storage constraint failed: {exc}") from exc
        except sqlite3.Error as exc:
            raise DependencyError(f"Storage error: {exc}") from exc

    def _fetchone(self, sql: str, params: Sequence[object] = ()) -> sqlite3.Row | None:
        cursor = self._run(sql, params)
        try:
            return cursor.fetchone()
        except sqlite3.Error as exc:
            raise DependencyError(f"Storage error: {exc}") from exc

    def _fetchall(self, sql: str, params: Sequence[object] = ()) -> list[sqlite3.Row]:
        cursor = self._run(sql, params)
        try:
            return cursor.fetchall()
        except sqlite3.Error as exc:
            raise DependencyError(f"Storage error: {exc}") from exc


def _session_from_row(row: sqlite3.Row) -> Session:
    return Session(
        id=row["id"],
        user_id=row["user_id"],
        local_date=row["local_date"],
        note=row["note"],
        project_id=row["project_id"],
        status=row["status"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _segment_from_row(row: sqlite3.Row) -> Segment:
    return Segment(
        id=row["id"],
        user_id=row["user_id"],
        session_id=row["session_id"],
        start_at=datetime.fromisoformat(row["start_at"]),
        end_at=datetime.fromisoformat(row["end_at"]) if row["end_at"] is not None else None,
    )


def _format_ts(value: datetime) -> str:
    # Fixed-width text keeps lexical ORDER BY consistent with time order.
    return value.isoformat(timespec="microseconds")


def _to_utc(value: datetime) -> datetime:
    """Normalize a timezone-aware datetime to UTC for storage."""
    if value.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware")
    return value.astimezone(timezone.utc)
