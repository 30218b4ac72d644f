"""Agent token issuance, revocation and bearer authentication.

Tokens look like ``agent_<12 chars>_<45 chars>`` (64 characters, lowercase
alphanumerics from ``secrets``). Only a salted PBKDF2-SHA256 hash is stored,
so authentication compares the presented token against every active hash in
constant time instead of looking the hash up directly. The first 17
characters (``token_prefix``) are stored in clear to correlate failed
attempts with a token; they are not enough to authenticate.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import sqlite3
import string
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from fastapi import status

from ..models.agent import (
    AgentErrorCode,
    AgentToken,
    AgentTokenCreateResponse,
    AgentTokenRevokeResponse,
    AgentTokenSummary,
)
from .config import AppConfig, get_config
from .database import DatabaseService, to_db_timestamp, utcnow

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "agent_"
TOKEN_ALPHABET = string.ascii_lowercase + string.digits
TOKEN_LENGTH = 64
TOKEN_PREFIX_LENGTH = 17
TOKEN_TTL = timedelta(days=90)
MAX_FAILED_ATTEMPTS = 10
HASH_SCHEME = "pbkdf2_sha256"
SALT_BYTES = 16


class AgentAccessError(Exception):
    """Structured failure raised by the agent token, rate limit and note layers."""

    def __init__(
        self,
        code: AgentErrorCode,
        message: str,
        *,
        status_code: int = status.HTTP_401_UNAUTHORIZED,
        detail: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.detail = detail or {}


def generate_token() -> str:
    """Return a fresh plaintext token."""
    head = "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(12))
    tail = "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(45))
    return f"{TOKEN_PREFIX}{head}_{tail}"


def hash_token(token: str, *, iterations: int, salt: Optional[bytes] = None) -> str:
    """Hash ``token`` as ``pbkdf2_sha256$<iterations>$<salt_hex>$<hash_hex>``."""
    salt = salt if salt is not None else secrets.token_bytes(SALT_BYTES)
    digest = hashlib.pbkdf2_hmac("sha256", token.encode("utf-8"), salt, iterations)
    return f"{HASH_SCHEME}${iterations}${salt.hex()}${digest.hex()}"


def verify_token(token: str, stored_hash: str) -> bool:
    """Constant-time check of ``token`` against a stored hash string."""
    try:
        scheme, iterations, salt_hex, hash_hex = stored_hash.split("$")
        if scheme != HASH_SCHEME:
            return False
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(hash_hex)
        rounds = int(iterations)
    except ValueError:
        return False
    actual = hashlib.pbkdf2_hmac("sha256", token.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(actual, expected)


def is_well_formed(token: str) -> bool:
    return len(token) == TOKEN_LENGTH and token.startswith(TOKEN_PREFIX)


def _database_error(exc: Exception) -> AgentAccessError:
    logger.error(f"Agent token database error: {exc}")
    return AgentAccessError(
        AgentErrorCode.DATABASE_ERROR,
        "Failed to validate token",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


class AgentTokenService:
    """Create, list, revoke and authenticate agent tokens."""

    def __init__(
        self,
        db_service: Optional[DatabaseService] = None,
        config: Optional[AppConfig] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config or get_config()
        self.db = db_service or DatabaseService(self.config.database_path)
        self.clock = clock

    # ------------------------------------------------------------------
    # Owner-facing management
    # ------------------------------------------------------------------

    def create_token(
        self, user_id: str, name: Optional[str] = None
    ) -> AgentTokenCreateResponse:
        """Issue a token for ``user_id``. The plaintext is only returned here."""
        token = generate_token()
        token_id = str(uuid.uuid4())
        now = self.clock()
        expires_at = now + TOKEN_TTL
        token_hash = hash_token(token, iterations=self.config.agent_token_hash_iterations)

        conn = self.db.connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO agent_tokens (
                        id, user_id, token_hash, token_prefix, name, created_at,
                        expires_at, requests_count, rate_limit_reset_at, failed_attempts
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, 0)
                    """,
                    (
                        token_id,
                        user_id,
                        token_hash,
                        token[:TOKEN_PREFIX_LENGTH],
                        name,
                        to_db_timestamp(now),
                        to_db_timestamp(expires_at),
                        to_db_timestamp(now),
                    ),
                )
        finally:
            conn.close()

        logger.info(
            "Agent token created",
            extra={"user_id": user_id, "token_prefix": token[:TOKEN_PREFIX_LENGTH]},
        )
        return AgentTokenCreateResponse(
            token=token,
            token_id=token_id,
            token_prefix=token[:TOKEN_PREFIX_LENGTH],
            expires_at=expires_at,
        )

    def list_tokens(self, user_id: str) -> list[AgentTokenSummary]:
        """Token metadata for ``user_id``, newest first."""
        conn = self.db.connect()
        try:
            rows = conn.execute(
                "SELECT * FROM agent_tokens WHERE user_id = ? ORDER BY created_at DESC",
                (user_id,),
            ).fetchall()
        finally:
            conn.close()

        now = self.clock()
        hidden = {"token_hash", "user_id", "rate_limit_reset_at", "last_failed_at"}
        summaries = []
        for row in rows:
            token = AgentToken(**dict(row))
            summaries.append(
                AgentTokenSummary(
                    **token.model_dump(exclude=hidden),
                    active=self.is_usable(token, now),
                )
            )
        return summaries

    def get_token(self, token_id: str) -> Optional[AgentToken]:
        conn = self.db.connect()
        try:
            row = conn.execute(
                "SELECT * FROM agent_tokens WHERE id = ?", (token_id,)
            ).fetchone()
        finally:
            conn.close()
        return AgentToken(**dict(row)) if row else None

    def revoke_token(self, user_id: str, token_id: str) -> AgentTokenRevokeResponse:
        """Revoke one of the caller's tokens. Revoking twice is a no-op."""
        token = self.get_token(token_id)
        if token is None:
            raise AgentAccessError(
                AgentErrorCode.TOKEN_NOT_FOUND,
                "Token not found",
                status_code=status.HTTP_404_NOT_FOUND,
            )
        if token.user_id != user_id:
            logger.warning(
                "Refused to revoke token owned by another user",
                extra={"user_id": user_id, "token_id": token_id},
            )
            raise AgentAccessError(
                AgentErrorCode.UNAUTHORIZED_TOKEN,
                "You do not have permission to revoke this token",
                status_code=status.HTTP_403_FORBIDDEN,
            )
        if token.revoked_at is not None:
            return AgentTokenRevokeResponse(
                message="Token already revoked",
                token_id=token_id,
                revoked_at=token.revoked_at,
            )

        now = self.clock()
        conn = self.db.connect()
        try:
            with conn:
                conn.execute(
                    """
                    UPDATE agent_tokens SET revoked_at = COALESCE(revoked_at, ?)
                    WHERE id = ?
                    """,
                    (to_db_timestamp(now), token_id),
                )
        finally:
            conn.close()

        logger.info("Agent token revoked", extra={"user_id": user_id, "token_id": token_id})
        revoked = self.get_token(token_id)
        return AgentTokenRevokeResponse(
            message="Token revoked successfully",
            token_id=token_id,
            revoked_at=revoked.revoked_at if revoked and revoked.revoked_at else now,
        )

    @staticmethod
    def is_usable(token: AgentToken, now: datetime) -> bool:
        return (
            token.revoked_at is None
            and now < token.expires_at
            and token.failed_attempts < MAX_FAILED_ATTEMPTS
        )

    # ------------------------------------------------------------------
    # Bearer authentication
    # ------------------------------------------------------------------

    def authenticate(self, authorization: Optional[str]) -> AgentToken:
        """
        Resolve an ``Authorization: Bearer <token>`` header to its token row.

        Raises:
            AgentAccessError: With the first failing check's code
        """
        if not authorization:
            raise AgentAccessError(
                AgentErrorCode.MISSING_AUTH_HEADER, "Missing Authorization header"
            )
        if not authorization.startswith("Bearer "):
            raise AgentAccessError(
                AgentErrorCode.INVALID_TOKEN_FORMAT,
                "Authorization header must be in format: Bearer <token>",
            )
        presented = authorization[len("Bearer "):]
        if not is_well_formed(presented):
            raise AgentAccessError(
                AgentErrorCode.INVALID_TOKEN_FORMAT, "Invalid token format"
            )

        try:
            match = self._find_matching_token(presented)
        except sqlite3.Error as e:
            raise _database_error(e) from e

        prefix = presented[:TOKEN_PREFIX_LENGTH]
        if match is None:
            self.increment_failed_attempts(prefix)
            logger.warning("Invalid agent token", extra={"token_prefix": prefix})
            raise AgentAccessError(AgentErrorCode.INVALID_TOKEN, "Invalid token")

        now = self.clock()
        if now >= match.expires_at:
            logger.warning("Expired agent token", extra={"token_id": match.id})
            raise AgentAccessError(
                AgentErrorCode.TOKEN_EXPIRED,
                "Token has expired",
                detail={"expired_at": match.expires_at.isoformat()},
            )

        try:
            if match.failed_attempts >= MAX_FAILED_ATTEMPTS:
                self._execute(
                    "UPDATE agent_tokens SET revoked_at = COALESCE(revoked_at, ?) WHERE id = ?",
                    (to_db_timestamp(now), match.id),
                )
                logger.warning(
                    "Agent token auto-revoked after repeated failures",
                    extra={"token_id": match.id},
                )
                raise AgentAccessError(
                    AgentErrorCode.TOKEN_AUTO_REVOKED,
                    "Token revoked due to too many failed attempts",
                )

            self._execute(
                "UPDATE agent_tokens SET last_used_at = ? WHERE id = ?",
                (to_db_timestamp(now), match.id),
            )
        except sqlite3.Error as e:
            raise _database_error(e) from e

        return match.model_copy(update={"last_used_at": now})

    def increment_failed_attempts(self, token_prefix: str) -> None:
        """Count a failure against the active token with ``token_prefix``.

        Reaching the threshold revokes the token in the same statement.
        Errors are logged and ignored.
        """
        now = to_db_timestamp(self.clock())
        try:
            self._execute(
                """
                UPDATE agent_tokens SET
                    failed_attempts = failed_attempts + 1,
                    last_failed_at = ?,
                    revoked_at = CASE
                        WHEN failed_attempts + 1 >= ? THEN ?
                        ELSE revoked_at
                    END
                WHERE token_prefix = ? AND revoked_at IS NULL
                """,
                (now, MAX_FAILED_ATTEMPTS, now, token_prefix),
            )
        except sqlite3.Error as e:
            logger.warning(f"Failed to record failed attempt for {token_prefix}: {e}")

    def _find_matching_token(self, presented: str) -> Optional[AgentToken]:
        conn = self.db.connect()
        try:
            rows = conn.execute(
                "SELECT * FROM agent_tokens WHERE revoked_at IS NULL"
            ).fetchall()
        finally:
            conn.close()

        for row in rows:
            if verify_token(presented, row["token_hash"]):
                return AgentToken(**dict(row))
        return None

    def _execute(self, sql: str, params: tuple) -> int:
        conn = self.db.connect()
        try:
            with conn:
                cursor = conn.execute(sql, params)
                return cursor.rowcount
        finally:
            conn.close()


__all__ = [
    "AgentAccessError",
    "AgentTokenService",
    "generate_token",
    "hash_token",
    "verify_token",
    "is_well_formed",
    "TOKEN_LENGTH",
    "TOKEN_PREFIX_LENGTH",
    "TOKEN_TTL",
    "MAX_FAILED_ATTEMPTS",
]
