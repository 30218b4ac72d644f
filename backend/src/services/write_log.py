"""Append-only audit trail of agent writes."""

from __future__ import annotations

import hashlib
import logging
import sqlite3
from datetime import datetime
from typing import Callable, Literal, Optional

from pydantic import ValidationError

from ..models.agent import AgentWriteLogEntry
from .database import DatabaseService, to_db_timestamp, utcnow

logger = logging.getLogger(__name__)


def content_hash(content: str) -> str:
    return "sha256:" + hashlib.sha256(content.encode("utf-8")).hexdigest()


class AgentWriteLog:
    """Record and query ``agent_write_log`` entries."""

    def __init__(
        self,
        db_service: Optional[DatabaseService] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db_service or DatabaseService()
        self.clock = clock

    def record_write(
        self,
        token_id: str,
        note_id: str,
        content: str,
        operation_type: Literal["replace", "append"],
    ) -> Optional[AgentWriteLogEntry]:
        """Best-effort insert; failures are logged and return None."""
        try:
            entry = AgentWriteLogEntry(
                token_id=token_id,
                note_id=note_id,
                content_hash=content_hash(content),
                content_length=len(content),
                written_at=self.clock(),
                operation_type=operation_type,
            )
            conn = self.db.connect()
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO agent_write_log (
                            token_id, note_id, content_hash, content_length,
                            operation_type, written_at
                        ) VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (
                            entry.token_id,
                            entry.note_id,
                            entry.content_hash,
                            entry.content_length,
                            entry.operation_type,
                            to_db_timestamp(entry.written_at),
                        ),
                    )
            finally:
                conn.close()
        except (sqlite3.Error, ValidationError) as e:
            logger.warning(f"Failed to write agent audit log for note {note_id}: {e}")
            return None
        return entry

    def entries_for_note(self, note_id: str) -> list[AgentWriteLogEntry]:
        conn = self.db.connect()
        try:
            rows = conn.execute(
                """
                SELECT token_id, note_id, content_hash, content_length,
                       operation_type, written_at
                FROM agent_write_log
                WHERE note_id = ?
                ORDER BY written_at DESC, id DESC
                """,
                (note_id,),
            ).fetchall()
        finally:
            conn.close()
        return [AgentWriteLogEntry(**dict(row)) for row in rows]


__all__ = ["AgentWriteLog", "content_hash"]
