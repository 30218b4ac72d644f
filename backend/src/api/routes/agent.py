"""Agent-facing note endpoints authenticated with agent bearer tokens.

Failures raise ``AgentAccessError`` and are rendered by the shared handler.
Handlers are plain ``def`` so token hashing and SQLite calls run in the
threadpool instead of on the event loop.
"""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, Query, Response

from ...models.agent import AgentNoteResponse, AgentWriteRequest, AgentWriteResponse
from ...services.agent_notes import AgentNoteGuard

router = APIRouter(prefix="/api/agent", tags=["agent"])

RATE_LIMIT_HEADER = "X-RateLimit-Remaining"


def get_agent_note_guard() -> AgentNoteGuard:
    return AgentNoteGuard()


@router.get("/notes", response_model=AgentNoteResponse)
def agent_read_note(
    response: Response,
    note_id: Optional[str] = Query(None, description="Note to read"),
    authorization: Annotated[Optional[str], Header(alias="Authorization")] = None,
    guard: AgentNoteGuard = Depends(get_agent_note_guard),
):
    """Read one note owned by the token's user."""
    note, decision = guard.read_note(authorization, note_id)
    response.headers[RATE_LIMIT_HEADER] = str(decision.remaining)
    return note


@router.post("/notes", response_model=AgentWriteResponse)
def agent_write_note(
    request: AgentWriteRequest,
    response: Response,
    authorization: Annotated[Optional[str], Header(alias="Authorization")] = None,
    guard: AgentNoteGuard = Depends(get_agent_note_guard),
):
    """Replace or append to a note owned by the token's user."""
    result, decision = guard.write_note(authorization, request)
    response.headers[RATE_LIMIT_HEADER] = str(decision.remaining)
    return result
