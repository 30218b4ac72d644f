"""Tests for agent token issuance and bearer authentication."""

import re
import sqlite3
from unittest.mock import Mock

import pytest

from backend.src.models.agent import AgentErrorCode
from backend.src.services.agent_tokens import (
    AgentAccessError,
    AgentTokenService,
    generate_token,
    hash_token,
    is_well_formed,
    verify_token,
)
from backend.src.services.database import DatabaseService

TOKEN_PATTERN = re.compile(r"^agent_[a-z0-9]{12}_[a-z0-9]{45}$")


@pytest.fixture
def service(db, app_config, clock) -> AgentTokenService:
    return AgentTokenService(db, app_config, clock=clock)


def _row(db: DatabaseService, token_id: str) -> sqlite3.Row:
    conn = db.connect()
    try:
        return conn.execute("SELECT * FROM agent_tokens WHERE id = ?", (token_id,)).fetchone()
    finally:
        conn.close()


def _set(db: DatabaseService, token_id: str, **fields) -> None:
    assignments = ", ".join(f"{name} = ?" for name in fields)
    conn = db.connect()
    try:
        with conn:
            conn.execute(
                f"UPDATE agent_tokens SET {assignments} WHERE id = ?",
                (*fields.values(), token_id),
            )
    finally:
        conn.close()


def _wrong_token_with_prefix(token: str) -> str:
    wrong = token[:17] + ("a" if token[17] != "a" else "b") + token[18:]
    assert wrong != token and len(wrong) == 64
    return wrong


class TestTokenPrimitives:
    def test_generated_token_format(self):
        token = generate_token()

        assert len(token) == 64
        assert TOKEN_PATTERN.match(token)
        assert is_well_formed(token)

    def test_tokens_are_unique(self):
        assert len({generate_token() for _ in range(50)}) == 50

    def test_hash_is_salted_and_verifiable(self):
        token = generate_token()
        first = hash_token(token, iterations=1_000)
        second = hash_token(token, iterations=1_000)

        assert first != second
        assert first.startswith("pbkdf2_sha256$1000$")
        assert token not in first
        assert verify_token(token, first)
        assert verify_token(token, second)
        assert not verify_token(generate_token(), first)

    @pytest.mark.parametrize("stored", ["", "garbage", "md5$1$aa$bb", "pbkdf2_sha256$x$zz$yy"])
    def test_malformed_hash_never_verifies(self, stored):
        assert verify_token(generate_token(), stored) is False

    @pytest.mark.parametrize(
        "candidate",
        ["agent_short", "x" * 64, "bearer_" + "a" * 57],
    )
    def test_well_formed_rejects_bad_shapes(self, candidate):
        assert not is_well_formed(candidate)


class TestTokenManagement:
    def test_create_stores_only_hash(self, service, db, clock):
        created = service.create_token("alice", "CI bot")

        row = _row(db, created.token_id)
        assert row["user_id"] == "alice"
        assert row["name"] == "CI bot"
        assert row["token_prefix"] == created.token[:17] == created.token_prefix
        assert row["token_hash"] != created.token
        assert verify_token(created.token, row["token_hash"])
        assert row["requests_count"] == 0
        assert row["failed_attempts"] == 0
        assert (created.expires_at - clock.now).days == 90

    def test_list_is_owner_scoped_and_newest_first(self, service, clock):
        first = service.create_token("alice", "one")
        clock.advance(minutes=1)
        second = service.create_token("alice", "two")
        service.create_token("bob", "other")

        tokens = service.list_tokens("alice")

        assert [t.id for t in tokens] == [second.token_id, first.token_id]
        assert all(t.active for t in tokens)
        assert not hasattr(tokens[0], "token_hash")

    def test_revoke(self, service, clock):
        created = service.create_token("alice")

        response = service.revoke_token("alice", created.token_id)

        assert response.message == "Token revoked successfully"
        assert response.revoked_at == clock.now
        assert service.list_tokens("alice")[0].active is False

    def test_revoke_twice_is_idempotent(self, service, clock):
        created = service.create_token("alice")
        first = service.revoke_token("alice", created.token_id)
        clock.advance(hours=1)

        second = service.revoke_token("alice", created.token_id)

        assert second.message == "Token already revoked"
        assert second.revoked_at == first.revoked_at

    def test_revoke_unknown_token(self, service):
        with pytest.raises(AgentAccessError) as excinfo:
            service.revoke_token("alice", "missing")

        assert excinfo.value.code == AgentErrorCode.TOKEN_NOT_FOUND
        assert excinfo.value.status_code == 404

    def test_revoke_someone_elses_token(self, service):
        created = service.create_token("bob")

        with pytest.raises(AgentAccessError) as excinfo:
            service.revoke_token("alice", created.token_id)

        assert excinfo.value.code == AgentErrorCode.UNAUTHORIZED_TOKEN
        assert excinfo.value.status_code == 403


class TestAuthenticate:
    def test_missing_header(self, service):
        with pytest.raises(AgentAccessError) as excinfo:
            service.authenticate(None)

        assert excinfo.value.code == AgentErrorCode.MISSING_AUTH_HEADER
        assert excinfo.value.status_code == 401

    @pytest.mark.parametrize(
        "header",
        [
            "Token abc",
            "bearer " + "a" * 64,
            "Bearer agent_tooshort",
            "Bearer " + "x" * 64,
        ],
    )
    def test_invalid_format(self, service, header):
        with pytest.raises(AgentAccessError) as excinfo:
            service.authenticate(header)

        assert excinfo.value.code == AgentErrorCode.INVALID_TOKEN_FORMAT

    def test_success_updates_last_used(self, service, db, clock):
        created = service.create_token("alice")
        clock.advance(minutes=5)

        token = service.authenticate(f"Bearer {created.token}")

        assert token.id == created.token_id
        assert token.user_id == "alice"
        assert token.last_used_at == clock.now
        assert _row(db, created.token_id)["last_used_at"] is not None

    def test_unknown_token_counts_failure_on_prefix(self, service, db, clock):
        created = service.create_token("alice")
        wrong = _wrong_token_with_prefix(created.token)

        with pytest.raises(AgentAccessError) as excinfo:
            service.authenticate(f"Bearer {wrong}")

        assert excinfo.value.code == AgentErrorCode.INVALID_TOKEN
        row = _row(db, created.token_id)
        assert row["failed_attempts"] == 1
        assert row["last_failed_at"] is not None
        assert row["revoked_at"] is None

    def test_tenth_failure_revokes_and_blocks_valid_token(self, service, db):
        created = service.create_token("alice")
        _set(db, created.token_id, failed_attempts=9)

        with pytest.raises(AgentAccessError):
            service.authenticate(f"Bearer {_wrong_token_with_prefix(created.token)}")

        row = _row(db, created.token_id)
        assert row["failed_attempts"] == 10
        assert row["revoked_at"] is not None

        with pytest.raises(AgentAccessError) as excinfo:
            service.authenticate(f"Bearer {created.token}")

        assert excinfo.value.code == AgentErrorCode.INVALID_TOKEN

    def test_threshold_reached_without_revocation_auto_revokes(self, service, db):
        created = service.create_token("alice")
        _set(db, created.token_id, failed_attempts=10)

        with pytest.raises(AgentAccessError) as excinfo:
            service.authenticate(f"Bearer {created.token}")

        assert excinfo.value.code == AgentErrorCode.TOKEN_AUTO_REVOKED
        assert _row(db, created.token_id)["revoked_at"] is not None

    def test_expired_token_has_no_failure_penalty(self, service, db, clock):
        created = service.create_token("alice")
        clock.advance(days=90)

        with pytest.raises(AgentAccessError) as excinfo:
            service.authenticate(f"Bearer {created.token}")

        assert excinfo.value.code == AgentErrorCode.TOKEN_EXPIRED
        assert _row(db, created.token_id)["failed_attempts"] == 0

    def test_revoked_token_is_invalid(self, service):
        created = service.create_token("alice")
        service.revoke_token("alice", created.token_id)

        with pytest.raises(AgentAccessError) as excinfo:
            service.authenticate(f"Bearer {created.token}")

        assert excinfo.value.code == AgentErrorCode.INVALID_TOKEN

    def test_matches_among_many_tokens(self, service):
        tokens = [service.create_token(f"user-{i}") for i in range(5)]

        token = service.authenticate(f"Bearer {tokens[3].token}")

        assert token.user_id == "user-3"

    def test_database_failure_is_reported(self, app_config, clock):
        broken_db = Mock(spec=DatabaseService)
        broken_db.connect.side_effect = sqlite3.OperationalError("disk I/O error")
        service = AgentTokenService(broken_db, app_config, clock=clock)

        with pytest.raises(AgentAccessError) as excinfo:
            service.authenticate(f"Bearer {generate_token()}")

        assert excinfo.value.code == AgentErrorCode.DATABASE_ERROR
        assert excinfo.value.status_code == 500

    def test_failed_attempt_bookkeeping_is_best_effort(self, app_config, clock):
        broken_db = Mock(spec=DatabaseService)
        broken_db.connect.side_effect = sqlite3.OperationalError("locked")
        service = AgentTokenService(broken_db, app_config, clock=clock)

        service.increment_failed_attempts("agent_abcdefghijk")
