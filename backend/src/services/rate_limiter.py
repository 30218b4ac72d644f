"""Per-token rolling request quota backed by the ``agent_tokens`` row."""

from __future__ import annotations

import logging
import math
import sqlite3
from datetime import datetime, timedelta
from typing import Callable, Optional

from fastapi import status

from ..models.agent import AgentErrorCode, RateLimitDecision
from .agent_tokens import AgentAccessError
from .database import DatabaseService, from_db_timestamp, to_db_timestamp, utcnow

logger = logging.getLogger(__name__)

RATE_LIMIT_REQUESTS = 100
RATE_LIMIT_WINDOW = timedelta(hours=1)

# Reset-or-increment in one statement. The WHERE clause performs the limit
# check, so a request that would exceed the quota changes nothing.
_CONSUME_SQL = """
UPDATE agent_tokens SET
    requests_count = CASE
        WHEN rate_limit_reset_at <= :window_start THEN 1
        ELSE requests_count + 1
    END,
    rate_limit_reset_at = CASE
        WHEN rate_limit_reset_at <= :window_start THEN :now
        ELSE rate_limit_reset_at
    END
WHERE id = :token_id
  AND (rate_limit_reset_at <= :window_start OR requests_count < :limit)
"""


class RateLimiter:
    """100 requests per rolling hour, counted on the token row."""

    def __init__(
        self,
        db_service: Optional[DatabaseService] = None,
        *,
        limit: int = RATE_LIMIT_REQUESTS,
        window: timedelta = RATE_LIMIT_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db_service or DatabaseService()
        self.limit = limit
        self.window = window
        self.clock = clock

    def check_and_consume(
        self, token_id: str, now: Optional[datetime] = None
    ) -> RateLimitDecision:
        """Admit and count one request, or report how long to wait."""
        now = now or self.clock()
        params = {
            "token_id": token_id,
            "now": to_db_timestamp(now),
            "window_start": to_db_timestamp(now - self.window),
            "limit": self.limit,
        }

        conn = self.db.connect()
        try:
            with conn:
                admitted = conn.execute(_CONSUME_SQL, params).rowcount == 1
                row = conn.execute(
                    "SELECT requests_count, rate_limit_reset_at FROM agent_tokens WHERE id = ?",
                    (token_id,),
                ).fetchone()
        finally:
            conn.close()

        if admitted:
            count = row["requests_count"] if row else self.limit
            return RateLimitDecision(allowed=True, remaining=max(self.limit - count, 0))

        retry_after = int(self.window.total_seconds())
        if row is not None:
            reset_at = from_db_timestamp(row["rate_limit_reset_at"])
            elapsed = (now - reset_at).total_seconds()
            retry_after = max(math.ceil(self.window.total_seconds() - elapsed), 1)
        return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)

    def enforce(self, token_id: str) -> RateLimitDecision:
        """Like :meth:`check_and_consume` but raises when the quota is exhausted."""
        try:
            decision = self.check_and_consume(token_id)
        except sqlite3.Error as e:
            logger.error(f"Rate limit check failed for token {token_id}: {e}")
            raise AgentAccessError(
                AgentErrorCode.DATABASE_ERROR,
                "Failed to check rate limit",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            ) from e

        if not decision.allowed:
            logger.warning(
                "Agent rate limit exceeded",
                extra={"token_id": token_id, "retry_after": decision.retry_after},
            )
            raise AgentAccessError(
                AgentErrorCode.RATE_LIMIT_EXCEEDED,
                f"Rate limit exceeded. Maximum {self.limit} requests per hour.",
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={"retry_after": decision.retry_after},
            )
        return decision


__all__ = ["RateLimiter", "RATE_LIMIT_REQUESTS", "RATE_LIMIT_WINDOW"]
