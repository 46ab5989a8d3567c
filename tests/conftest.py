"""Pytest configuration and shared fixtures."""

import pytest

from src.core import db_client


@pytest.fixture
async def sqlite_db(monkeypatch, tmp_path):
    """Real SQLite document store in a temporary file, schema initialized."""
    monkeypatch.setattr("src.core.db_client.settings.sqlite_db_path", str(tmp_path / "test.db"))
    await db_client.init_db()
    yield db_client
    await db_client.close_connection()


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """Keep job tracking in memory regardless of the environment's REDIS_URL."""
    monkeypatch.setattr("src.core.redis_client.redis_client._enabled", False)
