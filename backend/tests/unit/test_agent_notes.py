"""Tests for the agent note access guard and its audit log."""

import hashlib
import sqlite3
from unittest.mock import Mock

import pytest

from backend.src.models.agent import AgentErrorCode, AgentWriteRequest
from backend.src.services.agent_notes import AgentNoteGuard
from backend.src.services.agent_tokens import AgentAccessError, AgentTokenService
from backend.src.services.notes import NoteService
from backend.src.services.rate_limiter import RateLimiter
from backend.src.services.write_log import AgentWriteLog, content_hash


@pytest.fixture
def tokens(db, app_config, clock) -> AgentTokenService:
    return AgentTokenService(db, app_config, clock=clock)


@pytest.fixture
def notes(db, clock) -> NoteService:
    return NoteService(db, clock=clock)


@pytest.fixture
def write_log(db, clock) -> AgentWriteLog:
    return AgentWriteLog(db, clock=clock)


@pytest.fixture
def guard(db, tokens, notes, write_log, clock) -> AgentNoteGuard:
    return AgentNoteGuard(
        db,
        tokens=tokens,
        rate_limiter=RateLimiter(db, clock=clock),
        notes=notes,
        write_log=write_log,
    )


@pytest.fixture
def alice_auth(tokens) -> str:
    return f"Bearer {tokens.create_token('alice').token}"


@pytest.fixture
def note(notes):
    return notes.create_note("alice", "Journal", "first entry")


class TestRead:
    def test_read_owned_note(self, guard, alice_auth, note):
        response, decision = guard.read_note(alice_auth, note.id)

        assert response.note_id == note.id
        assert response.title == "Journal"
        assert response.content == "first entry"
        assert response.updated_at == note.updated_at
        assert decision.remaining == 99

    def test_missing_note_id(self, guard, alice_auth):
        with pytest.raises(AgentAccessError) as excinfo:
            guard.read_note(alice_auth, None)

        assert excinfo.value.code == AgentErrorCode.MISSING_NOTE_ID
        assert excinfo.value.status_code == 400

    def test_unknown_note(self, guard, alice_auth):
        with pytest.raises(AgentAccessError) as excinfo:
            guard.read_note(alice_auth, "nope")

        assert excinfo.value.code == AgentErrorCode.NOTE_NOT_FOUND
        assert excinfo.value.status_code == 404

    def test_other_users_note(self, guard, tokens, note):
        bob_auth = f"Bearer {tokens.create_token('bob').token}"

        with pytest.raises(AgentAccessError) as excinfo:
            guard.read_note(bob_auth, note.id)

        assert excinfo.value.code == AgentErrorCode.UNAUTHORIZED_NOTE
        assert excinfo.value.status_code == 403

    def test_authentication_runs_first(self, guard):
        with pytest.raises(AgentAccessError) as excinfo:
            guard.read_note(None, None)

        assert excinfo.value.code == AgentErrorCode.MISSING_AUTH_HEADER

    def test_rate_limit_runs_before_note_lookup(self, db, alice_auth, tokens, clock):
        limiter = Mock(spec=RateLimiter)
        limiter.enforce.side_effect = AgentAccessError(
            AgentErrorCode.RATE_LIMIT_EXCEEDED,
            "Rate limit exceeded",
            status_code=429,
            detail={"retry_after": 60},
        )
        notes = Mock(spec=NoteService)
        guard = AgentNoteGuard(db, tokens=tokens, rate_limiter=limiter, notes=notes)

        with pytest.raises(AgentAccessError) as excinfo:
            guard.read_note(alice_auth, "any")

        assert excinfo.value.code == AgentErrorCode.RATE_LIMIT_EXCEEDED
        notes.get_note.assert_not_called()


class TestWrite:
    def test_replace_without_version(self, guard, alice_auth, note, notes, write_log, clock):
        clock.advance(seconds=30)

        response, _ = guard.write_note(
            alice_auth, AgentWriteRequest(note_id=note.id, content="replaced")
        )

        stored = notes.get_note(note.id)
        assert stored.content == "replaced"
        assert response.updated_at == stored.updated_at != note.updated_at
        expected_hash = "sha256:" + hashlib.sha256(b"replaced").hexdigest()
        assert response.content_hash == expected_hash
        assert response.message == "Note updated successfully"

        entries = write_log.entries_for_note(note.id)
        assert len(entries) == 1
        assert entries[0].operation_type == "replace"
        assert entries[0].content_hash == expected_hash
        assert entries[0].content_length == len("replaced")

    def test_append_with_current_version(self, guard, alice_auth, note, notes, write_log):
        response, _ = guard.write_note(
            alice_auth,
            AgentWriteRequest(
                note_id=note.id,
                content="second entry",
                append=True,
                expected_version=note.updated_at,
            ),
        )

        assert notes.get_note(note.id).content == "first entry\n\nsecond entry"
        assert response.content_hash == content_hash("first entry\n\nsecond entry")
        assert write_log.entries_for_note(note.id)[0].operation_type == "append"

    def test_append_requires_expected_version(self, guard, alice_auth, note, notes):
        with pytest.raises(AgentAccessError) as excinfo:
            guard.write_note(
                alice_auth, AgentWriteRequest(note_id=note.id, content="more", append=True)
            )

        assert excinfo.value.code == AgentErrorCode.MISSING_EXPECTED_VERSION
        assert excinfo.value.status_code == 400
        assert excinfo.value.detail["current_version"] == note.updated_at
        assert notes.get_note(note.id).content == "first entry"

    def test_stale_version_conflicts(self, guard, alice_auth, note, notes, clock):
        stale = note.updated_at
        clock.advance(seconds=5)
        guard.write_note(alice_auth, AgentWriteRequest(note_id=note.id, content="newer"))
        current = notes.get_note(note.id).updated_at

        with pytest.raises(AgentAccessError) as excinfo:
            guard.write_note(
                alice_auth,
                AgentWriteRequest(
                    note_id=note.id, content="older", append=True, expected_version=stale
                ),
            )

        assert excinfo.value.code == AgentErrorCode.VERSION_CONFLICT
        assert excinfo.value.status_code == 409
        assert excinfo.value.detail["current_version"] == current
        assert notes.get_note(note.id).content == "newer"

    def test_equivalent_timestamp_spelling_matches(self, guard, alice_auth, note, notes):
        zulu = note.updated_at.replace("+00:00", "Z")

        guard.write_note(
            alice_auth,
            AgentWriteRequest(note_id=note.id, content="ok", expected_version=zulu),
        )

        assert notes.get_note(note.id).content == "ok"

    def test_unparseable_version_conflicts(self, guard, alice_auth, note):
        with pytest.raises(AgentAccessError) as excinfo:
            guard.write_note(
                alice_auth,
                AgentWriteRequest(note_id=note.id, content="x", expected_version="yesterday"),
            )

        assert excinfo.value.code == AgentErrorCode.VERSION_CONFLICT

    def test_lost_race_is_a_conflict(self, guard, alice_auth, note, notes, monkeypatch):
        monkeypatch.setattr(notes, "update_content", Mock(return_value=None))

        with pytest.raises(AgentAccessError) as excinfo:
            guard.write_note(alice_auth, AgentWriteRequest(note_id=note.id, content="x"))

        assert excinfo.value.code == AgentErrorCode.VERSION_CONFLICT

    @pytest.mark.parametrize(
        "request_body, code",
        [
            ({"content": "x"}, AgentErrorCode.MISSING_NOTE_ID),
            ({"note_id": "n1"}, AgentErrorCode.MISSING_CONTENT),
        ],
    )
    def test_missing_fields(self, guard, alice_auth, request_body, code):
        with pytest.raises(AgentAccessError) as excinfo:
            guard.write_note(alice_auth, AgentWriteRequest(**request_body))

        assert excinfo.value.code == code
        assert excinfo.value.status_code == 400

    def test_oversized_content_rejected(self, guard, alice_auth, note, notes):
        with pytest.raises(AgentAccessError) as excinfo:
            guard.write_note(
                alice_auth, AgentWriteRequest(note_id=note.id, content="a" * 10_241)
            )

        assert excinfo.value.code == AgentErrorCode.CONTENT_TOO_LARGE
        assert excinfo.value.status_code == 413
        assert excinfo.value.detail["category"] == "size"
        assert excinfo.value.detail["max_size_bytes"] == 10_240
        assert notes.get_note(note.id).content == "first entry"

    def test_script_content_rejected(self, guard, alice_auth, note):
        with pytest.raises(AgentAccessError) as excinfo:
            guard.write_note(
                alice_auth,
                AgentWriteRequest(note_id=note.id, content="<script>steal()</script>"),
            )

        assert excinfo.value.code == AgentErrorCode.CONTENT_TOO_LARGE
        assert excinfo.value.detail["category"] == "dangerous_content"

    def test_other_users_note_is_not_written(self, guard, tokens, note, notes):
        bob_auth = f"Bearer {tokens.create_token('bob').token}"

        with pytest.raises(AgentAccessError) as excinfo:
            guard.write_note(bob_auth, AgentWriteRequest(note_id=note.id, content="hijack"))

        assert excinfo.value.code == AgentErrorCode.UNAUTHORIZED_NOTE
        assert notes.get_note(note.id).content == "first entry"

    def test_audit_failure_does_not_fail_write(
        self, guard, alice_auth, note, notes, write_log, monkeypatch
    ):
        broken_db = Mock()
        broken_db.connect.side_effect = sqlite3.OperationalError("read-only")
        monkeypatch.setattr(write_log, "db", broken_db)

        response, _ = guard.write_note(
            alice_auth, AgentWriteRequest(note_id=note.id, content="still saved")
        )

        assert response.note_id == note.id
        assert notes.get_note(note.id).content == "still saved"


class TestWriteLog:
    def test_unknown_token_is_swallowed(self, write_log):
        # agent_write_log.token_id references agent_tokens(id)
        assert write_log.record_write("no-such-token", "note", "body", "replace") is None

    def test_record_and_list(self, write_log, tokens, clock):
        token_id = tokens.create_token("alice").token_id

        write_log.record_write(token_id, "n1", "one", "replace")
        clock.advance(seconds=1)
        write_log.record_write(token_id, "n1", "one\n\ntwo", "append")

        entries = write_log.entries_for_note("n1")
        assert [e.operation_type for e in entries] == ["append", "replace"]
        assert entries[0].content_length == len("one\n\ntwo")
        assert entries[0].written_at == clock.now

    def test_invalid_entry_is_swallowed(self, write_log, tokens):
        token_id = tokens.create_token("alice").token_id

        assert write_log.record_write(token_id, "n1", "body", "delete") is None
        assert write_log.entries_for_note("n1") == []
