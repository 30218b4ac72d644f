"""Note persistence with optimistic concurrency on ``updated_at``."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..models.edits import EditType
from ..models.note import Note
from .database import DatabaseService, from_db_timestamp, to_db_timestamp, utcnow

logger = logging.getLogger(__name__)


def versions_match(current: str, expected: str) -> bool:
    """Whether ``expected`` names the same instant as ``current``.

    Looser than string equality on purpose: ``+00:00`` and ``Z`` spellings
    of the stored stamp both match. Unparseable stamps never match.
    """
    if current == expected:
        return True
    try:
        return from_db_timestamp(current) == from_db_timestamp(expected)
    except ValueError:
        return False


def _row_to_note(row) -> Note:
    data = dict(row)
    raw_edits = data.get("last_ai_edits_applied")
    data["last_ai_edits_applied"] = json.loads(raw_edits) if raw_edits else None
    return Note(**data)


class NoteService:
    """Read and conditionally update notes."""

    def __init__(
        self,
        db_service: Optional[DatabaseService] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db_service or DatabaseService()
        self.clock = clock

    def create_note(
        self,
        user_id: str,
        title: str,
        content: str = "",
        *,
        note_id: Optional[str] = None,
    ) -> Note:
        now = to_db_timestamp(self.clock())
        note_id = note_id or str(uuid.uuid4())
        conn = self.db.connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO notes (id, user_id, title, content, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (note_id, user_id, title, content, now, now),
                )
        finally:
            conn.close()
        return Note(
            id=note_id,
            user_id=user_id,
            title=title,
            content=content,
            created_at=now,
            updated_at=now,
        )

    def get_note(self, note_id: str) -> Optional[Note]:
        conn = self.db.connect()
        try:
            row = conn.execute("SELECT * FROM notes WHERE id = ?", (note_id,)).fetchone()
        finally:
            conn.close()
        return _row_to_note(row) if row else None

    def _next_version(self, current: str) -> str:
        now = self.clock()
        current_dt = from_db_timestamp(current)
        if current_dt is not None and now <= current_dt:
            # Versions must move forward even when the clock has not.
            now = current_dt + timedelta(microseconds=1)
        return to_db_timestamp(now)

    def update_content(
        self,
        note_id: str,
        content: str,
        current_version: str,
        *,
        applied_edits: Optional[list[EditType]] = None,
    ) -> Optional[str]:
        """
        Replace the content if the note is still at ``current_version``.

        Args:
            note_id: Note to update
            content: New content
            current_version: The ``updated_at`` value the caller last read
            applied_edits: When set, also records the AI edits that produced ``content``

        Returns:
            The new ``updated_at``, or None if another writer got there first
        """
        new_version = self._next_version(current_version)
        conn = self.db.connect()
        try:
            with conn:
                if applied_edits is None:
                    cursor = conn.execute(
                        """
                        UPDATE notes SET content = ?, updated_at = ?
                        WHERE id = ? AND updated_at = ?
                        """,
                        (content, new_version, note_id, current_version),
                    )
                else:
                    cursor = conn.execute(
                        """
                        UPDATE notes SET
                            content = ?, updated_at = ?,
                            last_ai_edits_applied = ?, last_ai_edit_at = ?
                        WHERE id = ? AND updated_at = ?
                        """,
                        (
                            content,
                            new_version,
                            json.dumps([edit.value for edit in applied_edits]),
                            new_version,
                            note_id,
                            current_version,
                        ),
                    )
        finally:
            conn.close()

        if cursor.rowcount != 1:
            logger.warning(
                "Concurrent note update lost the version race",
                extra={"note_id": note_id, "expected": current_version},
            )
            return None
        return new_version


__all__ = ["NoteService", "versions_match"]
