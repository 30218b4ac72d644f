"""Tests for the per-token rolling rate limit."""

import sqlite3
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest

from backend.src.models.agent import AgentErrorCode
from backend.src.services.agent_tokens import AgentAccessError, AgentTokenService
from backend.src.services.database import DatabaseService, to_db_timestamp
from backend.src.services.rate_limiter import RateLimiter


@pytest.fixture
def token_id(db, app_config, clock) -> str:
    return AgentTokenService(db, app_config, clock=clock).create_token("alice").token_id


@pytest.fixture
def limiter(db, clock) -> RateLimiter:
    return RateLimiter(db, clock=clock)


def _counter(db: DatabaseService, token_id: str) -> tuple[int, str]:
    conn = db.connect()
    try:
        row = conn.execute(
            "SELECT requests_count, rate_limit_reset_at FROM agent_tokens WHERE id = ?",
            (token_id,),
        ).fetchone()
        return row["requests_count"], row["rate_limit_reset_at"]
    finally:
        conn.close()


def _set_count(db: DatabaseService, token_id: str, count: int) -> None:
    conn = db.connect()
    try:
        with conn:
            conn.execute(
                "UPDATE agent_tokens SET requests_count = ? WHERE id = ?", (count, token_id)
            )
    finally:
        conn.close()


def test_first_request_is_admitted(limiter, db, token_id):
    decision = limiter.check_and_consume(token_id)

    assert decision.allowed is True
    assert decision.remaining == 99
    assert _counter(db, token_id)[0] == 1


def test_hundredth_admitted_hundred_first_rejected(limiter, db, token_id, clock):
    _set_count(db, token_id, 99)
    clock.advance(minutes=10)

    hundredth = limiter.check_and_consume(token_id)
    assert hundredth.allowed is True
    assert hundredth.remaining == 0

    clock.advance(minutes=5)
    rejected = limiter.check_and_consume(token_id)
    assert rejected.allowed is False
    # Window opened 15 minutes ago, so 45 minutes remain.
    assert rejected.retry_after == 45 * 60
    assert _counter(db, token_id)[0] == 100


def test_window_resets_after_an_hour(limiter, db, token_id, clock):
    _set_count(db, token_id, 250)
    clock.advance(hours=1)

    decision = limiter.check_and_consume(token_id)

    assert decision.allowed is True
    count, reset_at = _counter(db, token_id)
    assert count == 1
    assert reset_at == to_db_timestamp(clock.now)


def test_just_before_reset_is_still_limited(limiter, db, token_id, clock):
    _set_count(db, token_id, 100)
    clock.advance(minutes=59, seconds=59)

    decision = limiter.check_and_consume(token_id)

    assert decision.allowed is False
    assert decision.retry_after == 1


def test_enforce_raises_with_retry_after(limiter, db, token_id):
    _set_count(db, token_id, 100)

    with pytest.raises(AgentAccessError) as excinfo:
        limiter.enforce(token_id)

    assert excinfo.value.code == AgentErrorCode.RATE_LIMIT_EXCEEDED
    assert excinfo.value.status_code == 429
    assert excinfo.value.detail["retry_after"] == 3600


def test_enforce_reports_database_errors(clock):
    broken_db = Mock(spec=DatabaseService)
    broken_db.connect.side_effect = sqlite3.OperationalError("locked")

    with pytest.raises(AgentAccessError) as excinfo:
        RateLimiter(broken_db, clock=clock).enforce("token")

    assert excinfo.value.code == AgentErrorCode.DATABASE_ERROR


def test_concurrent_requests_never_exceed_limit(db, token_id, clock):
    _set_count(db, token_id, 90)
    limiter = RateLimiter(db, clock=clock)

    with ThreadPoolExecutor(max_workers=8) as pool:
        decisions = list(pool.map(lambda _: limiter.check_and_consume(token_id), range(40)))

    assert sum(d.allowed for d in decisions) == 10
    assert _counter(db, token_id)[0] == 100
