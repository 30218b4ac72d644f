"""Gate note reads and writes made with agent tokens.

Every request passes, in order: bearer authentication, the per-token rate
limit, request shape checks, content screening (writes), note lookup, the
ownership check and, for writes, the optimistic concurrency check on
``updated_at``. The first failing check raises :class:`AgentAccessError`.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from fastapi import status

from ..models.agent import (
    AgentErrorCode,
    AgentNoteResponse,
    AgentToken,
    AgentWriteRequest,
    AgentWriteResponse,
    RateLimitDecision,
)
from ..models.note import Note
from .agent_tokens import AgentAccessError, AgentTokenService
from .content_validation import MAX_AGENT_CONTENT_BYTES, validate_agent_content
from .database import DatabaseService
from .notes import NoteService, versions_match
from .rate_limiter import RateLimiter
from .write_log import AgentWriteLog, content_hash

logger = logging.getLogger(__name__)

APPEND_SEPARATOR = "\n\n"


class AgentNoteGuard:
    """Authenticated, rate-limited note access for automated clients."""

    def __init__(
        self,
        db_service: Optional[DatabaseService] = None,
        *,
        tokens: Optional[AgentTokenService] = None,
        rate_limiter: Optional[RateLimiter] = None,
        notes: Optional[NoteService] = None,
        write_log: Optional[AgentWriteLog] = None,
    ):
        db = db_service or DatabaseService()
        self.tokens = tokens or AgentTokenService(db)
        self.rate_limiter = rate_limiter or RateLimiter(db)
        self.notes = notes or NoteService(db)
        self.write_log = write_log or AgentWriteLog(db)

    def _admit(self, authorization: Optional[str]) -> tuple[AgentToken, RateLimitDecision]:
        token = self.tokens.authenticate(authorization)
        decision = self.rate_limiter.enforce(token.id)
        return token, decision

    def _load_owned_note(self, token: AgentToken, note_id: str) -> Note:
        try:
            note = self.notes.get_note(note_id)
        except sqlite3.Error as e:
            logger.error(f"Failed to load note {note_id}: {e}")
            raise AgentAccessError(
                AgentErrorCode.DATABASE_ERROR,
                "Failed to load note",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            ) from e

        if note is None:
            raise AgentAccessError(
                AgentErrorCode.NOTE_NOT_FOUND,
                "Note not found",
                status_code=status.HTTP_404_NOT_FOUND,
            )
        if note.user_id != token.user_id:
            logger.warning(
                "Agent token used on a note it does not own",
                extra={"token_id": token.id, "note_id": note_id},
            )
            raise AgentAccessError(
                AgentErrorCode.UNAUTHORIZED_NOTE,
                "Token does not have access to this note",
                status_code=status.HTTP_403_FORBIDDEN,
            )
        return note

    def read_note(
        self, authorization: Optional[str], note_id: Optional[str]
    ) -> tuple[AgentNoteResponse, RateLimitDecision]:
        token, decision = self._admit(authorization)
        if not note_id:
            raise AgentAccessError(
                AgentErrorCode.MISSING_NOTE_ID,
                "note_id query parameter is required",
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        note = self._load_owned_note(token, note_id)
        return (
            AgentNoteResponse(
                note_id=note.id,
                title=note.title,
                content=note.content,
                created_at=note.created_at,
                updated_at=note.updated_at,
            ),
            decision,
        )

    def write_note(
        self, authorization: Optional[str], request: AgentWriteRequest
    ) -> tuple[AgentWriteResponse, RateLimitDecision]:
        token, decision = self._admit(authorization)

        if not request.note_id:
            raise AgentAccessError(
                AgentErrorCode.MISSING_NOTE_ID,
                "note_id is required",
                status_code=status.HTTP_400_BAD_REQUEST,
            )
        if request.content is None:
            raise AgentAccessError(
                AgentErrorCode.MISSING_CONTENT,
                "content is required",
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        violation = validate_agent_content(request.content)
        if violation is not None:
            logger.warning(
                "Rejected agent content",
                extra={"token_id": token.id, "category": violation.category},
            )
            raise AgentAccessError(
                AgentErrorCode.CONTENT_TOO_LARGE,
                violation.message,
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail={
                    "category": violation.category,
                    "size_bytes": violation.size_bytes,
                    "max_size_bytes": MAX_AGENT_CONTENT_BYTES,
                },
            )

        note = self._load_owned_note(token, request.note_id)

        if request.append and not request.expected_version:
            raise AgentAccessError(
                AgentErrorCode.MISSING_EXPECTED_VERSION,
                "expected_version is required for append operations",
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"current_version": note.updated_at},
            )
        if request.expected_version and not versions_match(
            note.updated_at, request.expected_version
        ):
            raise self._conflict(token, note.id, note.updated_at)

        if request.append:
            new_content = f"{note.content}{APPEND_SEPARATOR}{request.content}"
        else:
            new_content = request.content

        try:
            updated_at = self.notes.update_content(note.id, new_content, note.updated_at)
        except sqlite3.Error as e:
            logger.error(f"Failed to update note {note.id}: {e}")
            raise AgentAccessError(
                AgentErrorCode.DATABASE_ERROR,
                "Failed to update note",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            ) from e

        if updated_at is None:
            latest = self.notes.get_note(note.id)
            raise self._conflict(
                token, note.id, latest.updated_at if latest else note.updated_at
            )

        operation = "append" if request.append else "replace"
        self.write_log.record_write(token.id, note.id, new_content, operation)
        logger.info(
            "Agent wrote note",
            extra={"token_id": token.id, "note_id": note.id, "operation": operation},
        )

        return (
            AgentWriteResponse(
                note_id=note.id,
                updated_at=updated_at,
                content_hash=content_hash(new_content),
            ),
            decision,
        )

    @staticmethod
    def _conflict(token: AgentToken, note_id: str, current_version: str) -> AgentAccessError:
        logger.warning(
            "Agent write version conflict",
            extra={"token_id": token.id, "note_id": note_id},
        )
        return AgentAccessError(
            AgentErrorCode.VERSION_CONFLICT,
            "Note was modified since the expected version",
            status_code=status.HTTP_409_CONFLICT,
            detail={"current_version": current_version},
        )


__all__ = ["AgentNoteGuard", "APPEND_SEPARATOR"]
