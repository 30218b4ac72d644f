"""Application configuration helpers."""

from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_DATABASE_PATH = PROJECT_ROOT / "data" / "notes.db"
DEFAULT_EDIT_MODEL = "claude-3-5-haiku-20241022"
DEFAULT_CORS_ORIGINS = "http://localhost:8081,http://localhost:19006"


class AppConfig(BaseModel):
    """Runtime configuration loaded from environment variables."""

    model_config = ConfigDict(frozen=True)

    jwt_secret_key: Optional[str] = Field(
        default=None,
        description="HMAC secret for end-user JWT signing",
    )
    enable_local_mode: bool = Field(
        default=True,
        description="Allow local-dev token bypass when running locally",
    )
    local_dev_token: Optional[str] = Field(
        default="local-dev-token",
        description="Static token accepted in local mode for development",
    )
    database_path: Path = Field(
        default=DEFAULT_DATABASE_PATH, description="SQLite database file"
    )
    anthropic_api_key: Optional[str] = Field(
        default=None,
        description="Server-wide Anthropic key used when a user has none configured",
    )
    anthropic_base_url: str = Field(
        default="https://api.anthropic.com",
        description="Base URL of the Anthropic Messages API",
    )
    edit_model: str = Field(
        default=DEFAULT_EDIT_MODEL, description="Model identifier used by every edit step"
    )
    edit_step_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Deadline for a single edit step's generation call"
    )
    agent_token_hash_iterations: int = Field(
        default=120_000, ge=1_000, description="PBKDF2 iterations for new agent tokens"
    )
    cors_origins: list[str] = Field(default_factory=list)

    @field_validator("database_path", mode="before")
    @classmethod
    def _normalize_database_path(cls, value: str | Path | None) -> Path:
        if value is None or value == "":
            raise ValueError("DATABASE_PATH cannot be empty")
        path = value if isinstance(value, Path) else Path(value)
        return path.expanduser().resolve()

    @field_validator("jwt_secret_key", mode="before")
    @classmethod
    def _ensure_secret(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        if not cleaned:
            raise ValueError(
                "JWT_SECRET_KEY cannot be empty; unset the variable to disable JWT auth in local mode"
            )
        if len(cleaned) < 16:
            raise ValueError("JWT_SECRET_KEY must be at least 16 characters")
        return cleaned

    @field_validator("anthropic_api_key", mode="before")
    @classmethod
    def _blank_key_is_unset(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


def _read_env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load and cache application configuration."""
    enable_local_mode = _read_env("ENABLE_LOCAL_MODE", "true").lower() not in {
        "0",
        "false",
        "no",
    }
    cors_origins = [
        origin.strip()
        for origin in _read_env("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
        if origin.strip()
    ]

    config = AppConfig(
        jwt_secret_key=_read_env("JWT_SECRET_KEY"),
        enable_local_mode=enable_local_mode,
        local_dev_token=_read_env("LOCAL_DEV_TOKEN", "local-dev-token"),
        database_path=_read_env("DATABASE_PATH", str(DEFAULT_DATABASE_PATH)),
        anthropic_api_key=_read_env("ANTHROPIC_API_KEY"),
        anthropic_base_url=_read_env("ANTHROPIC_BASE_URL", "https://api.anthropic.com"),
        edit_model=_read_env("AI_EDIT_MODEL", DEFAULT_EDIT_MODEL),
        edit_step_timeout_seconds=_read_env("AI_EDIT_STEP_TIMEOUT", "30"),
        agent_token_hash_iterations=_read_env("AGENT_TOKEN_HASH_ITERATIONS", "120000"),
        cors_origins=cors_origins,
    )
    # Ensure the database directory exists for downstream services.
    config.database_path.parent.mkdir(parents=True, exist_ok=True)
    return config


def reload_config() -> AppConfig:
    """Clear cached config (useful for tests) and reload."""
    get_config.cache_clear()
    return get_config()


__all__ = [
    "AppConfig",
    "get_config",
    "reload_config",
    "PROJECT_ROOT",
    "DEFAULT_DATABASE_PATH",
    "DEFAULT_EDIT_MODEL",
]
