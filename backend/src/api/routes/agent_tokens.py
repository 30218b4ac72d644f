"""Token management for the signed-in user."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status

from ..middleware import AuthContext, get_auth_context
from ...models.agent import (
    AgentTokenCreateRequest,
    AgentTokenCreateResponse,
    AgentTokenRevokeResponse,
    AgentTokenSummary,
)
from ...services.agent_tokens import AgentTokenService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agent-tokens", tags=["agent-tokens"])


def get_agent_token_service() -> AgentTokenService:
    return AgentTokenService()


@router.post(
    "",
    response_model=AgentTokenCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_agent_token(
    response: Response,
    request: Optional[AgentTokenCreateRequest] = None,
    auth: AuthContext = Depends(get_auth_context),
    token_service: AgentTokenService = Depends(get_agent_token_service),
):
    """
    Issue a new agent token.

    The plaintext token appears in this response only, so it must not be cached.
    """
    created = token_service.create_token(auth.user_id, request.name if request else None)
    response.headers["Cache-Control"] = "no-store"
    response.headers["X-Content-Type-Options"] = "nosniff"
    return created


@router.get("", response_model=List[AgentTokenSummary])
def list_agent_tokens(
    auth: AuthContext = Depends(get_auth_context),
    token_service: AgentTokenService = Depends(get_agent_token_service),
):
    """List the caller's tokens without their hashes."""
    return token_service.list_tokens(auth.user_id)


@router.post("/{token_id}/revoke", response_model=AgentTokenRevokeResponse)
def revoke_agent_token(
    token_id: str,
    auth: AuthContext = Depends(get_auth_context),
    token_service: AgentTokenService = Depends(get_agent_token_service),
):
    """Revoke a token. Already revoked tokens return 200 unchanged."""
    return token_service.revoke_token(auth.user_id, token_id)
