"""Run the selected AI edits over a note in a fixed order.

The run is a left fold over the planned steps: a successful step hands its
output to the next one, a failed step is recorded and the content it received
is passed on unchanged. ``apply_ai_edits`` never raises; every failure is
reported through ``EditResult.error``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..models.edits import (
    AppliedEdit,
    EditError,
    EditErrorCode,
    EditOptions,
    EditResult,
    EditType,
    FailedEdit,
    ProgressStatus,
)
from .content_validation import validate_edit_request
from .edit_steps import (
    ADD_HEADINGS,
    CANCELLED_MESSAGE,
    FIX_GRAMMAR,
    FORMAT_MARKDOWN,
    IMPROVE_STRUCTURE,
    CancellationToken,
    EditStep,
    adjust_length_step,
    change_percentage,
)
from .prompt_loader import PromptLoader
from .text_generation import TextGenerator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[EditType, ProgressStatus, Optional[int]], None]


def plan_steps(options: EditOptions) -> list[EditStep]:
    """Selected steps in execution order: format, grammar, headings, structure, length."""
    steps: list[EditStep] = []
    if options.format_markdown:
        steps.append(FORMAT_MARKDOWN)
    if options.fix_grammar:
        steps.append(FIX_GRAMMAR)
    if options.add_headings:
        steps.append(ADD_HEADINGS)
    if options.improve_structure:
        steps.append(IMPROVE_STRUCTURE)
    length_step = adjust_length_step(options.length_adjustment)
    if length_step is not None:
        steps.append(length_step)
    return steps


@dataclass
class _RunState:
    content: str
    applied: list[AppliedEdit] = field(default_factory=list)
    failed: list[FailedEdit] = field(default_factory=list)


def _cancelled_error() -> EditError:
    return EditError(
        code=EditErrorCode.USER_CANCELLED,
        message="User cancelled the operation",
        user_message=CANCELLED_MESSAGE,
        retryable=False,
    )


class EditOrchestrator:
    """Apply a user's edit selection using one text generator."""

    def __init__(
        self,
        generator: TextGenerator,
        *,
        step_timeout: Optional[float] = None,
        prompt_loader: Optional[PromptLoader] = None,
    ):
        self.generator = generator
        self.step_timeout = step_timeout
        self.prompt_loader = prompt_loader

    async def apply(
        self,
        content: str,
        options: EditOptions,
        *,
        cancel_token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> EditResult:
        started = time.monotonic()

        validation_error = validate_edit_request(content, options)
        if validation_error is not None:
            return EditResult(
                success=False,
                content=content,
                original_content=content,
                processing_time_ms=self._elapsed(started),
                error=validation_error,
            )

        steps = plan_steps(options)
        state = _RunState(content=content)

        try:
            for step in steps:
                self._notify(on_progress, step.edit_type, ProgressStatus.PENDING, None)

            for step in steps:
                if cancel_token is not None and cancel_token.cancelled:
                    return self._finish_cancelled(content, state, started)

                self._notify(on_progress, step.edit_type, ProgressStatus.IN_PROGRESS, None)
                result = await step.run(
                    state.content,
                    self.generator,
                    cancel_token,
                    timeout=self.step_timeout,
                    prompt_loader=self.prompt_loader,
                )

                if result.success:
                    state.content = result.content
                    state.applied.extend(result.applied_edits)
                    duration = result.applied_edits[0].duration_ms
                    self._notify(
                        on_progress, step.edit_type, ProgressStatus.COMPLETED, duration
                    )
                    continue

                state.failed.extend(result.failed_edits)
                self._notify(
                    on_progress,
                    step.edit_type,
                    ProgressStatus.FAILED,
                    result.processing_time_ms,
                )
                if result.error is not None and result.error.code == EditErrorCode.USER_CANCELLED:
                    return self._finish_cancelled(content, state, started)

            success = len(state.applied) > 0
            final_content = state.content if success else content
            percentage = change_percentage(content, final_content)
        except Exception as e:
            logger.exception(f"AI edit run failed unexpectedly: {e}")
            return EditResult(
                success=False,
                content=content,
                applied_edits=state.applied,
                failed_edits=state.failed,
                original_content=content,
                processing_time_ms=self._elapsed(started),
                error=EditError(
                    code=EditErrorCode.API_FAILURE,
                    message=str(e) or "Unknown error",
                    user_message="AI editing failed. Please try again.",
                    retryable=True,
                ),
            )

        logger.info(
            "AI edit run finished",
            extra={
                "applied": [edit.type.value for edit in state.applied],
                "failed": [edit.type.value for edit in state.failed],
            },
        )
        return EditResult(
            success=success,
            content=final_content,
            applied_edits=state.applied,
            failed_edits=state.failed,
            original_content=content,
            change_percentage=percentage,
            processing_time_ms=self._elapsed(started),
        )

    def _finish_cancelled(self, original: str, state: _RunState, started: float) -> EditResult:
        logger.info(
            "AI edit run cancelled",
            extra={"applied": len(state.applied), "failed": len(state.failed)},
        )
        return EditResult(
            success=False,
            content=original,
            applied_edits=state.applied,
            failed_edits=state.failed,
            original_content=original,
            processing_time_ms=self._elapsed(started),
            error=_cancelled_error(),
        )

    @staticmethod
    def _notify(
        callback: Optional[ProgressCallback],
        edit_type: EditType,
        status: ProgressStatus,
        duration_ms: Optional[int],
    ) -> None:
        if callback is None:
            return
        try:
            callback(edit_type, status, duration_ms)
        except Exception as e:
            logger.warning(f"Progress callback failed for {edit_type.value}: {e}")

    @staticmethod
    def _elapsed(started: float) -> int:
        return int((time.monotonic() - started) * 1000)


async def apply_ai_edits(
    content: str,
    options: EditOptions,
    generator: TextGenerator,
    *,
    cancel_token: Optional[CancellationToken] = None,
    on_progress: Optional[ProgressCallback] = None,
    step_timeout: Optional[float] = None,
) -> EditResult:
    """Functional entry point around :class:`EditOrchestrator`."""
    orchestrator = EditOrchestrator(generator, step_timeout=step_timeout)
    return await orchestrator.apply(
        content, options, cancel_token=cancel_token, on_progress=on_progress
    )


__all__ = ["EditOrchestrator", "ProgressCallback", "apply_ai_edits", "plan_steps"]
