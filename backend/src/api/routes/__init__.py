"""HTTP API route handlers."""

from . import agent, agent_tokens, ai_edits, markdown, settings, system

__all__ = ["agent", "agent_tokens", "ai_edits", "markdown", "settings", "system"]
