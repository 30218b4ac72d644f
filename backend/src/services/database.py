"""SQLite database helpers for notes, agent tokens and audit logging."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import sqlite3
from typing import Iterable

DDL_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS notes (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        content TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        last_ai_edits_applied TEXT,
        last_ai_edit_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_notes_user ON notes(user_id, updated_at DESC)",
    """
    CREATE TABLE IF NOT EXISTS agent_tokens (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        token_hash TEXT NOT NULL UNIQUE,
        token_prefix TEXT NOT NULL,
        name TEXT,
        created_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        revoked_at TEXT,
        last_used_at TEXT,
        requests_count INTEGER NOT NULL DEFAULT 0,
        rate_limit_reset_at TEXT NOT NULL,
        failed_attempts INTEGER NOT NULL DEFAULT 0,
        last_failed_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_agent_tokens_user ON agent_tokens(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_agent_tokens_prefix ON agent_tokens(token_prefix)",
    """
    CREATE INDEX IF NOT EXISTS idx_agent_tokens_active
        ON agent_tokens(expires_at) WHERE revoked_at IS NULL
    """,
    """
    CREATE TABLE IF NOT EXISTS agent_write_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        token_id TEXT NOT NULL REFERENCES agent_tokens(id) ON DELETE CASCADE,
        note_id TEXT NOT NULL,
        content_hash TEXT NOT NULL,
        content_length INTEGER NOT NULL,
        operation_type TEXT NOT NULL CHECK (operation_type IN ('replace', 'append')),
        written_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_write_log_note ON agent_write_log(note_id, written_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_write_log_token ON agent_write_log(token_id, written_at DESC)",
    """
    CREATE TABLE IF NOT EXISTS user_ai_keys (
        user_id TEXT PRIMARY KEY,
        anthropic_key TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_timestamp(value: datetime) -> str:
    """Serialize a timestamp in the one format stored everywhere.

    A fixed-width UTC representation keeps lexical and chronological order
    identical, which the conditional UPDATE statements rely on.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_timestamp(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class DatabaseService:
    """Manage SQLite connections and schema initialization."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            from .config import get_config

            db_path = get_config().database_path
        self.db_path = Path(db_path)

    def _ensure_directory(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def connect(self) -> sqlite3.Connection:
        """Return a sqlite3 connection with the proper data directory created."""
        self._ensure_directory()
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self, statements: Iterable[str] | None = None) -> Path:
        """Create all schema artifacts."""
        conn = self.connect()
        try:
            with conn:  # Transactional apply of DDL
                for statement in statements or DDL_STATEMENTS:
                    conn.execute(statement)
        finally:
            conn.close()
        return self.db_path


def init_database(db_path: str | Path | None = None) -> Path:
    """Convenience wrapper used at application startup."""
    return DatabaseService(db_path).initialize()


__all__ = [
    "DatabaseService",
    "init_database",
    "utcnow",
    "to_db_timestamp",
    "from_db_timestamp",
]
