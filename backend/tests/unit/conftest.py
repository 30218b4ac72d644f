from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from backend.src.services import config as config_module
from backend.src.services.config import AppConfig
from backend.src.services.database import DatabaseService


class FrozenClock:
    """Deterministic clock for services that accept ``clock=``."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def restore_config_cache():
    """Ensure configuration cache is cleared between tests."""
    config_module.get_config.cache_clear()
    yield
    config_module.get_config.cache_clear()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        database_path=tmp_path / "notes.db",
        anthropic_api_key=None,
        agent_token_hash_iterations=1_000,
        edit_step_timeout_seconds=5,
    )


@pytest.fixture
def db(app_config: AppConfig) -> DatabaseService:
    service = DatabaseService(app_config.database_path)
    service.initialize()
    return service


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc))
