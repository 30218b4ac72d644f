"""Pre-flight checks applied to note content before edits or agent writes.

Two trust boundaries share this module:

* AI edits from the signed-in user: at least 10 non-whitespace-trimmed
  characters, at most 50,000 characters, and at least one edit selected.
* Agent writes from bearer-token clients: at most 10,240 UTF-8 bytes,
  non-empty, and free of script-injection patterns.

Every function is pure and returns ``None`` when the input is acceptable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, Optional

from ..models.edits import EditError, EditErrorCode, EditOptions

MIN_EDIT_CONTENT_CHARS = 10
MAX_EDIT_CONTENT_CHARS = 50_000
MAX_AGENT_CONTENT_BYTES = 10_240

DANGEROUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"<script[\s\S]*?>", re.IGNORECASE),
    re.compile(r"<iframe[\s\S]*?>", re.IGNORECASE),
    re.compile(r"<object[\s\S]*?>", re.IGNORECASE),
    re.compile(r"<embed[\s\S]*?>", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
)


@dataclass(frozen=True)
class ContentViolation:
    """Why agent-submitted content was refused."""

    category: Literal["size", "empty", "dangerous_content"]
    message: str
    size_bytes: int


def validate_edit_content(content: str) -> Optional[EditError]:
    """Check content length bounds for an AI edit run."""
    if not content or len(content.strip()) < MIN_EDIT_CONTENT_CHARS:
        return EditError(
            code=EditErrorCode.CONTENT_TOO_SHORT,
            message=f"Content must be at least {MIN_EDIT_CONTENT_CHARS} characters",
            user_message=f"Note must have at least {MIN_EDIT_CONTENT_CHARS} characters to edit",
            retryable=False,
        )
    if len(content) > MAX_EDIT_CONTENT_CHARS:
        return EditError(
            code=EditErrorCode.CONTENT_TOO_LONG,
            message="Content exceeds 50,000 character limit",
            user_message="Note too long for AI editing (max 50,000 characters)",
            retryable=False,
        )
    return None


def validate_edit_options(options: EditOptions) -> Optional[EditError]:
    if not options.has_selection():
        return EditError(
            code=EditErrorCode.NO_OPTIONS_SELECTED,
            message="No edit options selected",
            user_message="Please select at least one edit option",
            retryable=False,
        )
    return None


def validate_edit_request(content: str, options: EditOptions) -> Optional[EditError]:
    """Run the content check first, then the option check."""
    return validate_edit_content(content) or validate_edit_options(options)


def find_dangerous_pattern(content: str) -> Optional[str]:
    """Return the first matched script-injection pattern, if any."""
    for pattern in DANGEROUS_PATTERNS:
        if pattern.search(content):
            return pattern.pattern
    return None


def validate_agent_content(content: str) -> Optional[ContentViolation]:
    """Size, emptiness and XSS checks for content written by an agent."""
    size_bytes = len(content.encode("utf-8"))
    if size_bytes > MAX_AGENT_CONTENT_BYTES:
        return ContentViolation(
            category="size",
            message=(
                f"Content exceeds {MAX_AGENT_CONTENT_BYTES:,} bytes limit "
                f"(current: {size_bytes} bytes)"
            ),
            size_bytes=size_bytes,
        )
    if not content.strip():
        return ContentViolation(
            category="empty", message="Content cannot be empty", size_bytes=size_bytes
        )
    if find_dangerous_pattern(content) is not None:
        return ContentViolation(
            category="dangerous_content",
            message="Content contains potentially dangerous patterns (XSS prevention)",
            size_bytes=size_bytes,
        )
    return None


__all__ = [
    "MIN_EDIT_CONTENT_CHARS",
    "MAX_EDIT_CONTENT_CHARS",
    "MAX_AGENT_CONTENT_BYTES",
    "ContentViolation",
    "validate_edit_content",
    "validate_edit_options",
    "validate_edit_request",
    "validate_agent_content",
    "find_dangerous_pattern",
]
