from datetime import datetime, timezone

import pytest

from retention.application.service import RetentionService
from retention.infrastructure.adapters import InMemoryRetentionRepository


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config and the default database
    monkeypatch.setenv("HOME", str(home))
    for var in ("RETENTION_BACKEND", "RETENTION_DB_PATH", "RETENTION_PORT", "RETENTION_HOST"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def memory_service():
    return RetentionService(InMemoryRetentionRepository())


@pytest.fixture
def fixed_now():
    return datetime(2024, 9, 1, 12, 0, tzinfo=timezone.utc)
