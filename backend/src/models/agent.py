"""Agent token, rate limit and agent note access models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field


class AgentErrorCode(str, Enum):
    """Error codes returned by agent-facing and token management endpoints."""

    MISSING_AUTH_HEADER = "MISSING_AUTH_HEADER"
    INVALID_TOKEN_FORMAT = "INVALID_TOKEN_FORMAT"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_AUTO_REVOKED = "TOKEN_AUTO_REVOKED"
    TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
    UNAUTHORIZED_TOKEN = "UNAUTHORIZED_TOKEN"
    UNAUTHORIZED_NOTE = "UNAUTHORIZED_NOTE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    MISSING_NOTE_ID = "MISSING_NOTE_ID"
    MISSING_CONTENT = "MISSING_CONTENT"
    CONTENT_TOO_LARGE = "CONTENT_TOO_LARGE"
    NOTE_NOT_FOUND = "NOTE_NOT_FOUND"
    MISSING_EXPECTED_VERSION = "MISSING_EXPECTED_VERSION"
    VERSION_CONFLICT = "VERSION_CONFLICT"
    DATABASE_ERROR = "DATABASE_ERROR"


class AgentToken(BaseModel):
    """Persisted agent token row. ``token_hash`` never leaves the service layer."""

    id: str
    user_id: str
    token_hash: str
    token_prefix: str
    name: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    revoked_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    requests_count: int = 0
    rate_limit_reset_at: datetime
    failed_attempts: int = 0
    last_failed_at: Optional[datetime] = None


class AgentTokenSummary(BaseModel):
    """Token metadata shown to its owner."""

    id: str
    token_prefix: str
    name: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    revoked_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    requests_count: int
    failed_attempts: int
    active: bool


class AgentTokenCreateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=100, description="Optional label")


class AgentTokenCreateResponse(BaseModel):
    token: str = Field(..., description="Plaintext token, shown only once")
    token_id: str
    token_prefix: str
    expires_at: datetime
    warning: str = "Save this token securely. It will not be shown again."


class AgentTokenRevokeResponse(BaseModel):
    message: str
    token_id: str
    revoked_at: datetime


class RateLimitDecision(BaseModel):
    allowed: bool
    remaining: int = 0
    retry_after: Optional[int] = Field(None, description="Seconds until the window resets")


class AgentNoteResponse(BaseModel):
    note_id: str
    title: str
    content: str
    created_at: str
    updated_at: str


class AgentWriteRequest(BaseModel):
    note_id: Optional[str] = None
    content: Optional[str] = None
    append: bool = False
    expected_version: Optional[str] = Field(
        None, description="The note's last-known updated_at"
    )


class AgentWriteResponse(BaseModel):
    note_id: str
    updated_at: str
    content_hash: str
    message: str = "Note updated successfully"


class AgentWriteLogEntry(BaseModel):
    token_id: str
    note_id: str
    content_hash: str
    content_length: int
    written_at: datetime
    operation_type: Literal["replace", "append"]


__all__ = [
    "AgentErrorCode",
    "AgentToken",
    "AgentTokenSummary",
    "AgentTokenCreateRequest",
    "AgentTokenCreateResponse",
    "AgentTokenRevokeResponse",
    "RateLimitDecision",
    "AgentNoteResponse",
    "AgentWriteRequest",
    "AgentWriteResponse",
    "AgentWriteLogEntry",
]
