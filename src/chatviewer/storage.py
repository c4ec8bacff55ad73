"""SQLite storage for chat session rows and their change log."""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .models import SessionDetail


class StoreError(Exception):
    """A query against the session store failed."""


class SessionLookupError(StoreError):
    pass


class SessionNotFoundError(SessionLookupError):
    pass


class AmbiguousSessionError(SessionLookupError):
    pass


class SessionStore:
    """SQLite-backed chat_sessions table.

    ``messages`` and ``user_ip`` hold JSON-encoded JSON values, so a structured
    transcript comes back as a list and a legacy transcript as a string.
    Every insert or update appends to ``session_changes`` through triggers,
    which is what the change feed polls.
    """

    def __init__(self, db_path: Path):
        db_path.parent.mkdir(parents=True, exist_ok=True)
        # The change feed reads from a worker thread; access is serialized by _lock
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._lock = threading.Lock()
        self._migrate()

    def _migrate(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS chat_sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                user_ip TEXT,
                messages TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_chat_sessions_session
                ON chat_sessions(session_id);

            CREATE INDEX IF NOT EXISTS idx_chat_sessions_updated
                ON chat_sessions(updated_at);

            CREATE TABLE IF NOT EXISTS session_changes (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                row_id INTEGER NOT NULL,
                event_type TEXT NOT NULL
            );

            CREATE TRIGGER IF NOT EXISTS chat_sessions_ai
                AFTER INSERT ON chat_sessions BEGIN
                    INSERT INTO session_changes(row_id, event_type)
                    VALUES (new.id, 'INSERT');
                END;

            CREATE TRIGGER IF NOT EXISTS chat_sessions_au
                AFTER UPDATE ON chat_sessions BEGIN
                    INSERT INTO session_changes(row_id, event_type)
                    VALUES (new.id, 'UPDATE');
                END;
        """)
        self.conn.commit()

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            with self._lock:
                return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Session query failed: {exc}") from exc

    def fetch_sessions(self) -> list[dict]:
        """All session rows, most recently updated first.

        Rows are returned unvalidated; the registry skips the ones it cannot use.
        """
        rows = self._query(
            """SELECT session_id, messages, updated_at
               FROM chat_sessions
               ORDER BY updated_at DESC, id DESC"""
        )
        return [
            {
                "session_id": r["session_id"],
                "messages": _decode_json(r["messages"]),
                "updated_at": r["updated_at"],
            }
            for r in rows
        ]

    def fetch_session(self, session_id: str) -> SessionDetail:
        """The one row for ``session_id``; zero or several matches is an error."""
        rows = self._query(
            "SELECT session_id, messages, user_ip FROM chat_sessions WHERE session_id = ?",
            (session_id,),
        )
        if not rows:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        if len(rows) > 1:
            raise AmbiguousSessionError(
                f"Expected one row for session {session_id}, found {len(rows)}"
            )

        row = rows[0]
        return SessionDetail(
            session_id=row["session_id"],
            messages=_decode_json(row["messages"]),
            origin_info=_decode_json(row["user_ip"]),
        )

    def put_session(
        self,
        session_id: str,
        messages: Any,
        user_ip: Any = None,
        updated_at: datetime | None = None,
    ):
        """Insert or update the row for a session (store-side seeding only)."""
        stamp = _to_utc(updated_at or datetime.now(timezone.utc)).isoformat()
        encoded_messages = json.dumps(messages)
        encoded_ip = json.dumps(user_ip) if user_ip is not None else None

        try:
            with self._lock:
                cur = self.conn.execute(
                    """UPDATE chat_sessions SET messages = ?, user_ip = COALESCE(?, user_ip),
                       updated_at = ? WHERE session_id = ?""",
                    (encoded_messages, encoded_ip, stamp, session_id),
                )
                if cur.rowcount == 0:
                    self.conn.execute(
                        """INSERT INTO chat_sessions (session_id, user_ip, messages,
                           created_at, updated_at) VALUES (?, ?, ?, ?, ?)""",
                        (session_id, encoded_ip, encoded_messages, stamp, stamp),
                    )
                self.conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to write session {session_id}: {exc}") from exc

    def latest_change_seq(self) -> int:
        row = self._query("SELECT MAX(seq) FROM session_changes")[0]
        return row[0] or 0

    def changes_since(self, seq: int) -> list[tuple[int, str, dict]]:
        """Change log entries after ``seq`` joined with the row's current state."""
        rows = self._query(
            """SELECT ch.seq, ch.event_type, s.session_id, s.messages, s.updated_at
               FROM session_changes ch
               JOIN chat_sessions s ON s.id = ch.row_id
               WHERE ch.seq > ?
               ORDER BY ch.seq""",
            (seq,),
        )
        return [
            (
                r["seq"],
                r["event_type"],
                {
                    "session_id": r["session_id"],
                    "messages": _decode_json(r["messages"]),
                    "updated_at": r["updated_at"],
                },
            )
            for r in rows
        ]

    def get_stats(self) -> dict:
        """Get overall store statistics."""
        row = self._query(
            """SELECT COUNT(DISTINCT session_id), COUNT(*), MIN(updated_at), MAX(updated_at)
               FROM chat_sessions"""
        )[0]
        return {
            "total_sessions": row[0],
            "total_rows": row[1],
            "oldest_update": _format_ts(row[2]),
            "newest_update": _format_ts(row[3]),
        }

    def close(self):
        self.conn.close()


def _decode_json(value: str | None) -> Any:
    # Undecodable column text is passed through for the transcript parser to judge
    if value is None:
        return None
    try:
        return json.loads(value)
    except ValueError:
        return value


def _to_utc(ts: datetime) -> datetime:
    # updated_at is ordered as text, so every stamp is written in UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _format_ts(ts: str | None) -> str | None:
    if ts is None:
        return None
    try:
        parsed = datetime.fromisoformat(ts)
    except ValueError:
        return ts
    return _to_utc(parsed).strftime("%Y-%m-%d %H:%M")
