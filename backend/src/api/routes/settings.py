"""API routes for per-user AI settings."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ..middleware import AuthContext, get_auth_context
from ...models.settings import AIKeyStatus, AIKeyUpdateRequest
from ...services.user_settings import UserSettingsService, get_user_settings_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("/ai-key", response_model=AIKeyStatus)
async def get_ai_key_status(
    auth: AuthContext = Depends(get_auth_context),
    settings_service: UserSettingsService = Depends(get_user_settings_service),
):
    """Whether the user has stored a key and whether a server key exists."""
    return settings_service.get_status(auth.user_id)


@router.put("/ai-key", response_model=AIKeyStatus)
async def set_ai_key(
    request: AIKeyUpdateRequest,
    auth: AuthContext = Depends(get_auth_context),
    settings_service: UserSettingsService = Depends(get_user_settings_service),
):
    """Store the user's own Anthropic key. The key is never echoed back."""
    return settings_service.set_anthropic_key(auth.user_id, request.anthropic_key)


@router.delete("/ai-key", response_model=AIKeyStatus)
async def delete_ai_key(
    auth: AuthContext = Depends(get_auth_context),
    settings_service: UserSettingsService = Depends(get_user_settings_service),
):
    return settings_service.delete_anthropic_key(auth.user_id)
