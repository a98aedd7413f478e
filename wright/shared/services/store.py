"""SQLite persistence for sessions and messages."""
from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from wright.engine.errors import StoreError
from wright.shared.models.message import (
    Message,
    MessageRole,
    TokenUsage,
    ToolCall,
    ToolResult,
)
from wright.shared.models.session import DEFAULT_SESSION_TITLE, Session

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso_utc(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(raw: str) -> datetime:
    ts = datetime.fromisoformat(raw)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        id=row["id"],
        title=row["title"],
        summary=row["summary"],
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    try:
        calls = [ToolCall.from_dict(c) for c in json.loads(row["tool_calls"] or "[]")]
        results = [ToolResult.from_dict(r) for r in json.loads(row["tool_results"] or "[]")]
    except (json.JSONDecodeError, TypeError, AttributeError) as exc:
        raise StoreError(f"corrupt tool data on message {row['id']}: {exc}") from exc
    return Message(
        id=row["id"],
        session_id=row["session_id"],
        role=MessageRole(row["role"]),
        content=row["content"],
        tool_calls=calls,
        tool_results=results,
        usage=TokenUsage(
            input_tokens=row["input_tokens"],
            output_tokens=row["output_tokens"],
            total_tokens=row["total_tokens"],
        ),
        created_at=_parse_ts(row["created_at"]),
    )


class MessageStore:
    """Durable session and message log."""

    def __init__(self, db_path: Path):
        self._db_path = Path(db_path)
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError(f"cannot create {self._db_path.parent}: {exc}") from exc
        self._ensure_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            raise StoreError(f"database error: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StoreError(f"database error: {exc}") from exc
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL DEFAULT '',
                    summary TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL DEFAULT '',
                    tool_calls TEXT NOT NULL DEFAULT '[]',
                    tool_results TEXT NOT NULL DEFAULT '[]',
                    input_tokens INTEGER NOT NULL DEFAULT 0,
                    output_tokens INTEGER NOT NULL DEFAULT 0,
                    total_tokens INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id, created_at)"
            )

    # ── sessions ──

    def create_session(self, title: str = DEFAULT_SESSION_TITLE, session_id: str | None = None) -> Session:
        session = Session(title=title or DEFAULT_SESSION_TITLE)
        if session_id:
            session.id = session_id
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO sessions(id, title, summary, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    session.id,
                    session.title,
                    session.summary,
                    _iso_utc(session.created_at),
                    _iso_utc(session.updated_at),
                ),
            )
        logger.info("Created session %s", session.id)
        return session

    def get_session(self, session_id: str) -> Session:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE id = ?", (session_id,),
            ).fetchone()
        if row is None:
            raise StoreError(f"session not found: {session_id}")
        return _row_to_session(row)

    def list_sessions(self) -> list[Session]:
        """All sessions, most recently updated first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM sessions ORDER BY updated_at DESC, rowid DESC"
            ).fetchall()
        return [_row_to_session(row) for row in rows]

    def update_session_title(self, session_id: str, title: str) -> None:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE sessions SET title = ?, updated_at = ? WHERE id = ?",
                (title, _iso_utc(_utc_now()), session_id),
            )
            if cur.rowcount == 0:
                raise StoreError(f"session not found: {session_id}")

    def delete_session(self, session_id: str) -> None:
        """Delete a session and all of its messages in one transaction."""
        with self._connect() as conn:
            conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
            conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        logger.info("Deleted session %s", session_id)

    # ── messages ──

    def add_message(self, message: Message) -> None:
        """Append a message and bump the session's updated_at."""
        if not message.session_id:
            raise StoreError("message has no session id")
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO messages(
                    id, session_id, role, content, tool_calls, tool_results,
                    input_tokens, output_tokens, total_tokens, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    message.id,
                    message.session_id,
                    message.role.value,
                    message.content,
                    json.dumps([c.to_dict() for c in message.tool_calls]),
                    json.dumps([r.to_dict() for r in message.tool_results]),
                    message.usage.input_tokens,
                    message.usage.output_tokens,
                    message.usage.total_tokens,
                    _iso_utc(message.created_at),
                ),
            )
            conn.execute(
                "UPDATE sessions SET updated_at = ? WHERE id = ?",
                (_iso_utc(_utc_now()), message.session_id),
            )

    def get_messages(self, session_id: str) -> list[Message]:
        """Messages of a session in chronological order."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                WHERE session_id = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (session_id,),
            ).fetchall()
        return [_row_to_message(row) for row in rows]

    def message_count(self, session_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM messages WHERE session_id = ?", (session_id,),
            ).fetchone()
        return int(row["n"]) if row is not None else 0

    def session_token_total(self, session_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT COALESCE(SUM(total_tokens), 0) AS total
                FROM messages
                WHERE session_id = ?
                """,
                (session_id,),
            ).fetchone()
        return int(row["total"]) if row is not None else 0
