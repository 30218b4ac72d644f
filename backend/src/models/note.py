"""Note-related Pydantic models."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Note(BaseModel):
    """Stored note as seen by the edit and agent layers."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "5d0c7b8e-2f5a-4f7e-9a55-0f3c1f2a9b11",
                "user_id": "alice",
                "title": "Standup",
                "content": "# Standup\n\n- shipped the importer",
                "created_at": "2025-01-10T09:00:00.000000+00:00",
                "updated_at": "2025-01-15T14:30:00.123456+00:00",
            }
        }
    )

    id: str = Field(..., description="Note identifier")
    user_id: str = Field(..., description="Owner user ID")
    title: str = Field(..., description="Display title")
    content: str = Field("", description="Markdown content")
    created_at: str = Field(..., description="Creation timestamp")
    updated_at: str = Field(
        ..., description="Last update timestamp; doubles as the optimistic concurrency version"
    )
    last_ai_edits_applied: Optional[list[str]] = Field(
        None, description="Edit types applied by the most recent AI edit"
    )
    last_ai_edit_at: Optional[str] = None


__all__ = ["Note"]
