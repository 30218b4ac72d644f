"""Pydantic models for data validation and serialization."""

from .agent import (
    AgentErrorCode,
    AgentNoteResponse,
    AgentToken,
    AgentTokenCreateRequest,
    AgentTokenCreateResponse,
    AgentTokenRevokeResponse,
    AgentTokenSummary,
    AgentWriteLogEntry,
    AgentWriteRequest,
    AgentWriteResponse,
    RateLimitDecision,
)
from .auth import JWTPayload
from .edits import (
    AppliedEdit,
    ApplyEditsRequest,
    ApplyEditsResponse,
    EditError,
    EditErrorCode,
    EditOptions,
    EditRequest,
    EditResult,
    EditType,
    FailedEdit,
    LengthAdjustment,
    ProgressStatus,
)
from .markdown import MarkdownFinding, MarkdownValidationRequest, MarkdownValidationResponse
from .note import Note
from .settings import AIKeyStatus, AIKeyUpdateRequest

__all__ = [
    "AgentErrorCode",
    "AgentNoteResponse",
    "AgentToken",
    "AgentTokenCreateRequest",
    "AgentTokenCreateResponse",
    "AgentTokenRevokeResponse",
    "AgentTokenSummary",
    "AgentWriteLogEntry",
    "AgentWriteRequest",
    "AgentWriteResponse",
    "RateLimitDecision",
    "JWTPayload",
    "AppliedEdit",
    "ApplyEditsRequest",
    "ApplyEditsResponse",
    "EditError",
    "EditErrorCode",
    "EditOptions",
    "EditRequest",
    "EditResult",
    "EditType",
    "FailedEdit",
    "LengthAdjustment",
    "ProgressStatus",
    "MarkdownFinding",
    "MarkdownValidationRequest",
    "MarkdownValidationResponse",
    "Note",
    "AIKeyStatus",
    "AIKeyUpdateRequest",
]
