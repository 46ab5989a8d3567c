"""Tests for startup validation and the application lifespan."""

from unittest.mock import AsyncMock, Mock, PropertyMock, patch

import pytest
from fastapi.testclient import TestClient

from src.main import app, check_redis_connectivity


@pytest.mark.unit
async def test_redis_check_skipped_when_disabled() -> None:
    """Test that Redis connectivity check is skipped when Redis is not configured."""
    with patch("src.main.redis_client") as mock_redis:
        type(mock_redis).is_available = PropertyMock(return_value=False)
        mock_redis.ping = AsyncMock()

        await check_redis_connectivity()

        mock_redis.ping.assert_not_called()


@pytest.mark.unit
async def test_redis_check_pings_when_enabled() -> None:
    """Test that Redis connectivity check pings a configured Redis."""
    with patch("src.main.redis_client") as mock_redis:
        type(mock_redis).is_available = PropertyMock(return_value=True)
        mock_redis.ping = AsyncMock(return_value=True)

        await check_redis_connectivity()

        mock_redis.ping.assert_called_once()


@pytest.mark.unit
async def test_redis_check_tolerates_unreachable_redis() -> None:
    """Test that an unreachable Redis only logs a warning."""
    with patch("src.main.redis_client") as mock_redis:
        type(mock_redis).is_available = PropertyMock(return_value=True)
        mock_redis.ping = AsyncMock(return_value=False)

        await check_redis_connectivity()


@pytest.fixture
def lifespan_mocks(monkeypatch):
    """Replace the lifespan's external effects with mocks."""
    mocks = {
        "configure_logfire": Mock(),
        "init_db": AsyncMock(),
        "start_scheduler": Mock(),
        "stop_scheduler": Mock(),
    }
    for name, mock in mocks.items():
        monkeypatch.setattr(f"src.main.{name}", mock)
    monkeypatch.setattr("src.main.redis_client.close", AsyncMock())
    return mocks


@pytest.mark.unit
def test_lifespan_starts_and_stops_scheduler(monkeypatch, lifespan_mocks) -> None:
    """Test startup initializes the store and runs the in-process scheduler."""
    monkeypatch.setattr("src.main.settings.enable_scheduler", True)

    with TestClient(app):
        lifespan_mocks["configure_logfire"].assert_called_once()
        lifespan_mocks["init_db"].assert_awaited_once()
        lifespan_mocks["start_scheduler"].assert_called_once()

    lifespan_mocks["stop_scheduler"].assert_called_once()


@pytest.mark.unit
def test_lifespan_without_scheduler(monkeypatch, lifespan_mocks) -> None:
    """Test that disabling the scheduler leaves triggers to an external cron."""
    monkeypatch.setattr("src.main.settings.enable_scheduler", False)

    with TestClient(app):
        pass

    lifespan_mocks["start_scheduler"].assert_not_called()
    lifespan_mocks["stop_scheduler"].assert_not_called()
