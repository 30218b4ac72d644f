"""Service layer for business logic and external integrations."""

from .agent_notes import AgentNoteGuard
from .agent_tokens import AgentAccessError, AgentTokenService
from .auth import AuthError, AuthService
from .config import AppConfig, get_config, reload_config
from .database import DatabaseService, init_database
from .edit_orchestrator import EditOrchestrator, apply_ai_edits, plan_steps
from .edit_steps import CancellationToken, EditStep
from .notes import NoteService
from .prompt_loader import PromptLoader, PromptLoaderError
from .rate_limiter import RateLimiter
from .text_generation import AnthropicGenerationClient, GenerationError
from .user_settings import UserSettingsService, get_user_settings_service
from .write_log import AgentWriteLog

__all__ = [
    "AppConfig",
    "get_config",
    "reload_config",
    "DatabaseService",
    "init_database",
    "AuthService",
    "AuthError",
    "AgentAccessError",
    "AgentTokenService",
    "RateLimiter",
    "NoteService",
    "AgentNoteGuard",
    "AgentWriteLog",
    "EditOrchestrator",
    "apply_ai_edits",
    "plan_steps",
    "CancellationToken",
    "EditStep",
    "PromptLoader",
    "PromptLoaderError",
    "AnthropicGenerationClient",
    "GenerationError",
    "UserSettingsService",
    "get_user_settings_service",
]
