"""Jinja2-based prompt template loader for AI edit steps.

Templates live in ``backend/prompts/`` (e.g. ``edits/fix_grammar.md``) and are
rendered with the note content. Templates are reloaded on every call so prompt
wording can be tuned without restarting the server.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import jinja2

logger = logging.getLogger(__name__)

# backend/src/services/prompt_loader.py -> backend/prompts/
DEFAULT_PROMPTS_DIR = Path(__file__).resolve().parent.parent.parent / "prompts"


class PromptLoaderError(Exception):
    """Raised when a prompt cannot be loaded."""

    pass


class PromptLoader:
    """Load and render Jinja2 prompt templates.

    Example:
        >>> loader = PromptLoader()
        >>> prompt = loader.load("edits/fix_grammar.md", {"content": "teh note"})
    """

    def __init__(self, prompts_dir: Optional[Path] = None) -> None:
        """Initialize the prompt loader.

        Args:
            prompts_dir: Directory containing prompt templates.
                        Defaults to backend/prompts/ relative to this file.
        """
        self.prompts_dir = prompts_dir or DEFAULT_PROMPTS_DIR
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(self.prompts_dir)),
            autoescape=False,  # Prompts are markdown, not HTML
            auto_reload=True,
            keep_trailing_newline=True,
            undefined=jinja2.StrictUndefined,
        )
        if not self.prompts_dir.is_dir():
            logger.warning(
                "Prompts directory not found",
                extra={"prompts_dir": str(self.prompts_dir)},
            )

    def load(self, path: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Load and render a prompt template.

        Args:
            path: Relative path to the template file (e.g., "edits/fix_grammar.md").
            context: Dictionary of variables to render into the template.

        Returns:
            The rendered prompt string.

        Raises:
            PromptLoaderError: If the template cannot be loaded or rendered.
        """
        context = context or {}
        try:
            template = self.env.get_template(path)
            rendered = template.render(**context)
        except jinja2.TemplateNotFound as e:
            raise PromptLoaderError(f"Prompt not found: {path}") from e
        except jinja2.TemplateError as e:
            logger.error(
                "Failed to render template",
                extra={"path": path, "error": str(e)},
            )
            raise PromptLoaderError(f"Failed to render template {path}: {e}") from e

        logger.debug(
            "Loaded prompt from filesystem",
            extra={"path": path, "context_keys": list(context.keys())},
        )
        return rendered

    def list_available(self) -> list[str]:
        """List template paths relative to the prompts directory."""
        if not self.prompts_dir.is_dir():
            return []
        return sorted(
            md_file.relative_to(self.prompts_dir).as_posix()
            for md_file in self.prompts_dir.rglob("*.md")
        )


__all__ = ["PromptLoader", "PromptLoaderError", "DEFAULT_PROMPTS_DIR"]
