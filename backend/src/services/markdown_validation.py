"""Structural checks for markdown produced by AI edits."""

from __future__ import annotations

import re

from ..models.markdown import MarkdownFinding, MarkdownValidationResponse

HEADING_PATTERN = re.compile(r"^(#{1,6})\s+")
FENCE_MARKER = "```"


def _is_fence(line: str) -> bool:
    return line.strip().startswith(FENCE_MARKER)


def check_heading_hierarchy(content: str) -> list[MarkdownFinding]:
    """Flag headings that go more than one level deeper than the previous one.

    Lines inside fenced code blocks are ignored so shell comments are not
    mistaken for headings.
    """
    findings: list[MarkdownFinding] = []
    previous_level = 0
    in_fence = False

    for index, line in enumerate(content.split("\n"), start=1):
        if _is_fence(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue

        match = HEADING_PATTERN.match(line)
        if not match:
            continue

        level = len(match.group(1))
        if previous_level > 0 and level > previous_level + 1:
            expected = previous_level + 1
            findings.append(
                MarkdownFinding(
                    kind="heading_hierarchy",
                    line=index,
                    message=(
                        f"Heading level {level} skips level {expected}. "
                        f"Proper hierarchy: {previous_level} -> {expected} -> {level}"
                    ),
                    previous_level=previous_level,
                    actual_level=level,
                    expected_level=expected,
                )
            )
        previous_level = level

    return findings


def _unclosed_fence_line(content: str) -> int | None:
    open_line: int | None = None
    for index, line in enumerate(content.split("\n"), start=1):
        if _is_fence(line):
            open_line = index if open_line is None else None
    return open_line


def check_code_fences(content: str) -> list[MarkdownFinding]:
    start = _unclosed_fence_line(content)
    if start is None:
        return []
    return [
        MarkdownFinding(
            kind="unclosed_code_fence",
            line=start,
            message=f"Unclosed code block starting at line {start}. Missing closing {FENCE_MARKER}",
        )
    ]


def validate_markdown(content: str) -> list[MarkdownFinding]:
    """Return every structural finding, heading problems first."""
    return check_heading_hierarchy(content) + check_code_fences(content)


def fix_unclosed_code_fence(content: str) -> str:
    """Append a closing fence when the document ends inside a code block."""
    if _unclosed_fence_line(content) is None:
        return content
    return f"{content}\n{FENCE_MARKER}"


def build_validation_report(content: str) -> MarkdownValidationResponse:
    findings = validate_markdown(content)
    fixed_content = None
    if findings and all(f.kind == "unclosed_code_fence" for f in findings):
        fixed_content = fix_unclosed_code_fence(content)
    return MarkdownValidationResponse(
        valid=not findings, findings=findings, fixed_content=fixed_content
    )


__all__ = [
    "check_heading_hierarchy",
    "check_code_fences",
    "validate_markdown",
    "fix_unclosed_code_fence",
    "build_validation_report",
]
