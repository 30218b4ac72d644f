"""Markdown structural validation models."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class MarkdownFinding(BaseModel):
    kind: Literal["heading_hierarchy", "unclosed_code_fence"]
    line: int = Field(..., ge=1, description="1-based line number")
    message: str
    previous_level: Optional[int] = None
    actual_level: Optional[int] = None
    expected_level: Optional[int] = None


class MarkdownValidationRequest(BaseModel):
    content: str


class MarkdownValidationResponse(BaseModel):
    valid: bool
    findings: list[MarkdownFinding] = Field(default_factory=list)
    fixed_content: Optional[str] = Field(
        None, description="Present only when every finding can be fixed automatically"
    )


__all__ = ["MarkdownFinding", "MarkdownValidationRequest", "MarkdownValidationResponse"]
