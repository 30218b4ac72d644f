"""API routes for running AI edits and saving their results."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..middleware import AuthContext, get_auth_context
from ...models.edits import ApplyEditsRequest, ApplyEditsResponse, EditRequest, EditResult
from ...services.config import get_config
from ...services.content_validation import validate_edit_request
from ...services.edit_orchestrator import EditOrchestrator
from ...services.edit_steps import CancellationToken
from ...services.notes import NoteService, versions_match
from ...services.text_generation import TextGenerator, build_generation_client
from ...services.user_settings import UserSettingsService, get_user_settings_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["ai-edits"])

GeneratorFactory = Callable[[str], TextGenerator]


def get_generator_factory() -> GeneratorFactory:
    """Build a text generator for a resolved API key."""
    return build_generation_client


def get_note_service() -> NoteService:
    return NoteService()


DISCONNECT_POLL_SECONDS = 0.5


async def cancel_on_disconnect(
    http_request: Request,
    cancel_token: CancellationToken,
    interval: float = DISCONNECT_POLL_SECONDS,
) -> None:
    """Cancel the run once the client goes away."""
    while not cancel_token.cancelled:
        if await http_request.is_disconnected():
            logger.info("Client disconnected, cancelling AI edit run")
            cancel_token.cancel()
            return
        await asyncio.sleep(interval)


@router.post("/ai-edits", response_model=EditResult)
async def run_ai_edits(
    request: EditRequest,
    http_request: Request,
    auth: AuthContext = Depends(get_auth_context),
    settings_service: UserSettingsService = Depends(get_user_settings_service),
    generator_factory: GeneratorFactory = Depends(get_generator_factory),
):
    """
    Apply the selected edits to ``content`` and return the result for review.

    Nothing is persisted; the client saves accepted output via
    ``POST /api/ai-edits/apply``.
    """
    preflight = validate_edit_request(request.content, request.options)
    if preflight is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": preflight.message,
                "code": preflight.code.value,
                "user_message": preflight.user_message,
                "retryable": preflight.retryable,
            },
        )

    api_key = settings_service.resolve_api_key(auth.user_id)
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "No Anthropic API key configured",
                "code": "NO_API_KEY_CONFIGURED",
            },
        )

    orchestrator = EditOrchestrator(
        generator_factory(api_key),
        step_timeout=get_config().edit_step_timeout_seconds,
    )
    cancel_token = CancellationToken()
    watcher = asyncio.create_task(cancel_on_disconnect(http_request, cancel_token))
    try:
        result = await orchestrator.apply(
            request.content, request.options, cancel_token=cancel_token
        )
    finally:
        watcher.cancel()
    logger.info(
        f"AI edits for user {auth.user_id}: success={result.success} "
        f"applied={len(result.applied_edits)} failed={len(result.failed_edits)}"
    )
    return result


@router.post("/ai-edits/apply", response_model=ApplyEditsResponse)
async def apply_edit_result(
    request: ApplyEditsRequest,
    auth: AuthContext = Depends(get_auth_context),
    note_service: NoteService = Depends(get_note_service),
):
    """Save reviewed edit output into a note the caller owns."""
    note = note_service.get_note(request.note_id)
    if note is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Note not found", "code": "NOTE_NOT_FOUND"},
        )
    if note.user_id != auth.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "You do not have access to this note", "code": "UNAUTHORIZED_NOTE"},
        )

    conflict = HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "error": "Note was modified since the expected version",
            "code": "VERSION_CONFLICT",
            "current_version": note.updated_at,
        },
    )
    if request.expected_version and not versions_match(
        note.updated_at, request.expected_version
    ):
        raise conflict

    updated_at = note_service.update_content(
        note.id,
        request.content,
        note.updated_at,
        applied_edits=request.applied_edits,
    )
    if updated_at is None:
        raise conflict

    logger.info(f"Applied AI edits to note {note.id} for user {auth.user_id}")
    return ApplyEditsResponse(
        note_id=note.id,
        updated_at=updated_at,
        last_ai_edits_applied=request.applied_edits,
    )
