from pathlib import Path

import pytest

from backend.src.services import config as config_module


@pytest.fixture(autouse=True)
def restore_config_cache():
    """
    Ensure configuration cache is cleared between tests.
    """
    config_module.reload_config()
    yield
    config_module.reload_config()


def test_get_config_allows_missing_jwt_secret(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("JWT_SECRET_KEY", raising=False)
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "notes.db"))

    cfg = config_module.reload_config()

    assert cfg.jwt_secret_key is None
    assert cfg.database_path == (tmp_path / "notes.db").resolve()


def test_get_config_rejects_short_jwt_secret(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "notes.db"))
    monkeypatch.setenv("JWT_SECRET_KEY", "short")

    with pytest.raises(ValueError):
        config_module.reload_config()


def test_get_config_reads_edit_settings(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "notes.db"))
    monkeypatch.setenv("AI_EDIT_STEP_TIMEOUT", "12.5")
    monkeypatch.setenv("AI_EDIT_MODEL", "claude-test-model")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "   ")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test, ,http://b.test")

    cfg = config_module.reload_config()

    assert cfg.edit_step_timeout_seconds == 12.5
    assert cfg.edit_model == "claude-test-model"
    assert cfg.anthropic_api_key is None
    assert cfg.cors_origins == ["http://a.test", "http://b.test"]


def test_get_config_defaults(monkeypatch, tmp_path: Path) -> None:
    for key in ("AI_EDIT_MODEL", "AI_EDIT_STEP_TIMEOUT", "AGENT_TOKEN_HASH_ITERATIONS"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "notes.db"))

    cfg = config_module.reload_config()

    assert cfg.edit_model == config_module.DEFAULT_EDIT_MODEL
    assert cfg.edit_step_timeout_seconds == 30
    assert cfg.agent_token_hash_iterations == 120_000


def test_get_config_rejects_non_positive_timeout(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "notes.db"))
    monkeypatch.setenv("AI_EDIT_STEP_TIMEOUT", "0")

    with pytest.raises(ValueError):
        config_module.reload_config()


def test_get_config_creates_database_directory(monkeypatch, tmp_path: Path) -> None:
    target = tmp_path / "nested" / "dir" / "notes.db"
    monkeypatch.setenv("DATABASE_PATH", str(target))

    config_module.reload_config()

    assert target.parent.is_dir()
