"""Single AI edit steps.

Each step owns one prompt template and one temperature, calls the text
generator once, and reports the outcome as an ``EditResult`` holding exactly
one applied or failed edit so the orchestrator can merge results uniformly.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..models.edits import (
    AppliedEdit,
    EditError,
    EditErrorCode,
    EditResult,
    EditType,
    FailedEdit,
    LengthAdjustment,
)
from .prompt_loader import PromptLoader
from .text_generation import DEFAULT_MAX_TOKENS, GenerationError, TextGenerator

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Operation cancelled"

_prompt_loader: Optional[PromptLoader] = None


def _get_prompt_loader() -> PromptLoader:
    """Get PromptLoader instance lazily."""
    global _prompt_loader
    if _prompt_loader is None:
        _prompt_loader = PromptLoader()
    return _prompt_loader


class CancellationToken:
    """Cooperative cancellation flag shared by an edit run and its steps."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class _Cancelled(Exception):
    pass


def change_percentage(original: str, edited: str) -> float:
    """Net character change relative to ``original``, capped at 100."""
    if not original:
        return 0.0
    delta = abs(len(edited) - len(original))
    return min(delta / len(original) * 100, 100.0)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


@dataclass(frozen=True)
class EditStep:
    """One prompt template bound to one edit type and temperature."""

    edit_type: EditType
    template: str
    temperature: float
    action: str

    async def run(
        self,
        content: str,
        generator: TextGenerator,
        cancel_token: Optional[CancellationToken] = None,
        *,
        timeout: Optional[float] = None,
        prompt_loader: Optional[PromptLoader] = None,
    ) -> EditResult:
        """Apply this edit to ``content``.

        The generation call itself is never interrupted; a cancellation
        observed after it returns discards the output.
        """
        started = time.monotonic()
        loader = prompt_loader or _get_prompt_loader()

        try:
            if cancel_token is not None and cancel_token.cancelled:
                raise _Cancelled()

            prompt = loader.load(self.template, {"content": content})
            call = generator.generate(
                prompt, max_tokens=DEFAULT_MAX_TOKENS, temperature=self.temperature
            )
            output = await (asyncio.wait_for(call, timeout) if timeout else call)

            if cancel_token is not None and cancel_token.cancelled:
                raise _Cancelled()
        except _Cancelled:
            return self._cancelled(content, _elapsed_ms(started))
        except asyncio.TimeoutError:
            logger.warning(
                "Edit step timed out",
                extra={"edit_type": self.edit_type.value, "timeout": timeout},
            )
            return self._failed(
                content, f"Timed out after {timeout:g} seconds", _elapsed_ms(started)
            )
        except GenerationError as e:
            logger.warning(
                "Edit step generation failed",
                extra={"edit_type": self.edit_type.value, "code": e.code},
            )
            return self._failed(content, e.message, _elapsed_ms(started))
        except Exception as e:
            logger.exception(f"Edit step {self.edit_type.value} failed: {e}")
            return self._failed(content, str(e) or "Unknown error", _elapsed_ms(started))

        if not isinstance(output, str):
            return self._failed(content, "Malformed response from model", _elapsed_ms(started))
        if not output.strip():
            logger.warning(
                "Edit step returned empty content", extra={"edit_type": self.edit_type.value}
            )
            return self._failed(content, "Empty response from model", _elapsed_ms(started))

        duration_ms = _elapsed_ms(started)
        changes_made = output != content
        return EditResult(
            success=True,
            content=output,
            applied_edits=[
                AppliedEdit(
                    type=self.edit_type,
                    duration_ms=duration_ms,
                    changes_made=changes_made,
                    character_delta=len(output) - len(content),
                )
            ],
            original_content=content,
            change_percentage=change_percentage(content, output) if changes_made else 0.0,
            processing_time_ms=duration_ms,
        )

    def _cancelled(self, content: str, duration_ms: int) -> EditResult:
        return EditResult(
            success=False,
            content=content,
            failed_edits=[
                FailedEdit(type=self.edit_type, error=CANCELLED_MESSAGE, recoverable=False)
            ],
            original_content=content,
            processing_time_ms=duration_ms,
            error=EditError(
                code=EditErrorCode.USER_CANCELLED,
                message="User cancelled the operation",
                user_message=CANCELLED_MESSAGE,
                retryable=False,
            ),
        )

    def _failed(self, content: str, message: str, duration_ms: int) -> EditResult:
        return EditResult(
            success=False,
            content=content,
            failed_edits=[FailedEdit(type=self.edit_type, error=message, recoverable=True)],
            original_content=content,
            processing_time_ms=duration_ms,
            error=EditError(
                code=EditErrorCode.API_FAILURE,
                message=message,
                user_message=f"Failed to {self.action}. Please try again.",
                retryable=True,
            ),
        )


FORMAT_MARKDOWN = EditStep(
    EditType.FORMAT_MARKDOWN, "edits/format_markdown.md", 0.1, "format markdown"
)
FIX_GRAMMAR = EditStep(EditType.FIX_GRAMMAR, "edits/fix_grammar.md", 0.1, "fix grammar")
ADD_HEADINGS = EditStep(EditType.ADD_HEADINGS, "edits/add_headings.md", 0.3, "add headings")
IMPROVE_STRUCTURE = EditStep(
    EditType.IMPROVE_STRUCTURE, "edits/improve_structure.md", 0.4, "improve structure"
)
MAKE_CONCISE = EditStep(
    EditType.MAKE_CONCISE, "edits/make_concise.md", 0.2, "make content concise"
)
EXPAND_CONTENT = EditStep(
    EditType.EXPAND_CONTENT, "edits/expand_content.md", 0.5, "expand content"
)


def adjust_length_step(adjustment: LengthAdjustment) -> Optional[EditStep]:
    """Pick the single length step for ``adjustment`` (none for ``keep``)."""
    if adjustment == LengthAdjustment.CONCISE:
        return MAKE_CONCISE
    if adjustment == LengthAdjustment.EXPAND:
        return EXPAND_CONTENT
    return None


__all__ = [
    "CancellationToken",
    "EditStep",
    "change_percentage",
    "adjust_length_step",
    "FORMAT_MARKDOWN",
    "FIX_GRAMMAR",
    "ADD_HEADINGS",
    "IMPROVE_STRUCTURE",
    "MAKE_CONCISE",
    "EXPAND_CONTENT",
    "CANCELLED_MESSAGE",
]
