"""Pydantic models for per-user AI settings."""

from pydantic import BaseModel, Field


class AIKeyUpdateRequest(BaseModel):
    """Request to store the user's own Anthropic key."""
    anthropic_key: str = Field(..., min_length=20, description="Anthropic API key")


class AIKeyStatus(BaseModel):
    """Whether a key is configured; the key itself is never returned."""
    anthropic_key_set: bool = Field(default=False)
    server_key_available: bool = Field(
        default=False,
        description="Whether a server-wide key would be used as a fallback"
    )
