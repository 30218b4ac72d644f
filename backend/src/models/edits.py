"""Pydantic models for AI edit options and results.

Edit records serialize with camelCase aliases because the note editor client
consumes them directly (``appliedEdits``, ``durationMs``, ...).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EditType(str, Enum):
    """All edit kinds a run can report."""

    FORMAT_MARKDOWN = "formatMarkdown"
    FIX_GRAMMAR = "fixGrammar"
    ADD_HEADINGS = "addHeadings"
    IMPROVE_STRUCTURE = "improveStructure"
    MAKE_CONCISE = "makeConcise"
    EXPAND_CONTENT = "expandContent"
    CHANGE_TONE = "changeTone"


class LengthAdjustment(str, Enum):
    KEEP = "keep"
    CONCISE = "concise"
    EXPAND = "expand"


class EditErrorCode(str, Enum):
    """Stable error codes surfaced in ``EditResult.error``."""

    API_FAILURE = "API_FAILURE"
    NETWORK_ERROR = "NETWORK_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    CONTENT_TOO_SHORT = "CONTENT_TOO_SHORT"
    CONTENT_TOO_LONG = "CONTENT_TOO_LONG"
    NO_OPTIONS_SELECTED = "NO_OPTIONS_SELECTED"
    USER_CANCELLED = "USER_CANCELLED"


class ProgressStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class _EditModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        use_enum_values=False,
    )


class EditOptions(_EditModel):
    """User-selected edits for one run."""

    format_markdown: bool = Field(False, description="Format markdown structure and spacing")
    fix_grammar: bool = Field(False, description="Fix grammar, spelling and punctuation")
    add_headings: bool = Field(False, description="Insert section headings")
    improve_structure: bool = Field(False, description="Reorganize for logical flow")
    length_adjustment: LengthAdjustment = Field(
        LengthAdjustment.KEEP, description="Keep, shorten or expand the content"
    )
    tone: Optional[Literal["professional", "technical", "clear"]] = Field(
        None, description="Reserved; not applied by any step yet"
    )

    def has_selection(self) -> bool:
        return (
            self.format_markdown
            or self.fix_grammar
            or self.add_headings
            or self.improve_structure
            or self.length_adjustment != LengthAdjustment.KEEP
        )


class AppliedEdit(_EditModel):
    type: EditType
    status: Literal["success"] = "success"
    duration_ms: int = Field(..., ge=0)
    changes_made: bool
    character_delta: int


class FailedEdit(_EditModel):
    type: EditType
    status: Literal["failed"] = "failed"
    error: str
    recoverable: bool


class EditError(_EditModel):
    code: EditErrorCode
    message: str
    user_message: str
    retryable: bool
    context: Optional[dict[str, Any]] = None


class EditResult(_EditModel):
    """Terminal output of a single step or of a whole orchestrated run."""

    success: bool
    content: str
    applied_edits: list[AppliedEdit] = Field(default_factory=list)
    failed_edits: list[FailedEdit] = Field(default_factory=list)
    original_content: str
    change_percentage: float = Field(0.0, ge=0, le=100)
    processing_time_ms: int = Field(0, ge=0)
    error: Optional[EditError] = None


class EditRequest(_EditModel):
    """Request payload for ``POST /api/ai-edits``."""

    content: str
    options: EditOptions


class ApplyEditsRequest(BaseModel):
    """Persist reviewed edit output into a note."""

    note_id: str = Field(..., min_length=1)
    content: str
    applied_edits: list[EditType] = Field(default_factory=list)
    expected_version: Optional[str] = Field(
        None, description="The note's last-known updated_at"
    )


class ApplyEditsResponse(BaseModel):
    note_id: str
    updated_at: str
    last_ai_edits_applied: list[EditType]


__all__ = [
    "EditType",
    "LengthAdjustment",
    "EditErrorCode",
    "ProgressStatus",
    "EditOptions",
    "AppliedEdit",
    "FailedEdit",
    "EditError",
    "EditResult",
    "EditRequest",
    "ApplyEditsRequest",
    "ApplyEditsResponse",
]
