"""Service for managing per-user AI settings in the database."""

from __future__ import annotations

import logging
from typing import Optional

from ..models.settings import AIKeyStatus
from .config import AppConfig, get_config
from .database import DatabaseService, to_db_timestamp, utcnow

logger = logging.getLogger(__name__)


class UserSettingsService:
    """Service for reading and writing a user's own Anthropic key."""

    def __init__(
        self,
        db_service: Optional[DatabaseService] = None,
        config: Optional[AppConfig] = None,
    ):
        """Initialize with optional database service and config."""
        self.config = config or get_config()
        self.db = db_service or DatabaseService(self.config.database_path)

    def get_anthropic_key(self, user_id: str) -> Optional[str]:
        """
        Get user's Anthropic API key (for internal use only).

        Args:
            user_id: User identifier

        Returns:
            The API key or None if not set
        """
        conn = self.db.connect()
        try:
            row = conn.execute(
                "SELECT anthropic_key FROM user_ai_keys WHERE user_id = ?",
                (user_id,),
            ).fetchone()
            if row and row["anthropic_key"]:
                return row["anthropic_key"]
            return None
        finally:
            conn.close()

    def get_status(self, user_id: str) -> AIKeyStatus:
        """Report whether a key is stored, never the key itself."""
        return AIKeyStatus(
            anthropic_key_set=self.get_anthropic_key(user_id) is not None,
            server_key_available=self.config.anthropic_api_key is not None,
        )

    def set_anthropic_key(self, user_id: str, api_key: str) -> AIKeyStatus:
        """
        Store or replace the user's key.

        Args:
            user_id: User identifier
            api_key: Anthropic API key
        """
        now = to_db_timestamp(utcnow())
        conn = self.db.connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO user_ai_keys (user_id, anthropic_key, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET
                        anthropic_key = excluded.anthropic_key,
                        updated_at = excluded.updated_at
                    """,
                    (user_id, api_key.strip(), now),
                )
        finally:
            conn.close()

        logger.info(f"Updated AI key for user {user_id}")
        return self.get_status(user_id)

    def delete_anthropic_key(self, user_id: str) -> AIKeyStatus:
        conn = self.db.connect()
        try:
            with conn:
                conn.execute("DELETE FROM user_ai_keys WHERE user_id = ?", (user_id,))
        finally:
            conn.close()

        logger.info(f"Removed AI key for user {user_id}")
        return self.get_status(user_id)

    def resolve_api_key(self, user_id: str) -> Optional[str]:
        """The user's own key, else the server-wide key, else None."""
        return self.get_anthropic_key(user_id) or self.config.anthropic_api_key


def get_user_settings_service() -> UserSettingsService:
    """Get instance of UserSettingsService."""
    return UserSettingsService()


__all__ = ["UserSettingsService", "get_user_settings_service"]
