"""Pytest configuration and fixtures for unit tests."""

from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from tests.unit.mocks import NOW, InMemoryDBClient, days_after, days_before


@pytest.fixture
def now() -> datetime:
    """The fixed scan instant."""
    return NOW


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def no_retry_sleep():
    """Mock asyncio.sleep to avoid actual backoff delays in retry paths."""
    with patch("src.core.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


@pytest.fixture
def patched_db(monkeypatch, in_memory_db, no_retry_sleep):
    """Patches src.core.db_client functions to use InMemoryDBClient.

    Also removes retry backoff delays so failure paths run instantly.
    """
    monkeypatch.setattr("src.core.db_client.create_record", in_memory_db.create_record)
    monkeypatch.setattr("src.core.db_client.get_record", in_memory_db.get_record)
    monkeypatch.setattr("src.core.db_client.update_record", in_memory_db.update_record)
    monkeypatch.setattr("src.core.db_client.delete_record", in_memory_db.delete_record)
    monkeypatch.setattr("src.core.db_client.list_records", in_memory_db.list_records)
    monkeypatch.setattr("src.core.db_client.get_first_record", in_memory_db.get_first_record)
    monkeypatch.setattr("src.core.db_client.commit_batch", in_memory_db.commit_batch)
    monkeypatch.setattr("src.core.db_client.server_now", in_memory_db.server_now)

    in_memory_db.now = NOW
    return in_memory_db


@pytest.fixture
def trade_factory(in_memory_db):
    """Factory for pending trades whose completion was requested ``age_days`` ago.

    Usage:
        trade = trade_factory(age_days=8, reminders_sent=0)
    """

    def _create_trade(*, age_days: float | None = 5, **overrides):
        data = {
            "title": "Guitar lessons for bike repair",
            "status": "pending_confirmation",
            "creator_id": "user_alice",
            "participant_id": "user_bob",
            "completion_requested_by": "user_alice",
            "completion_requested_at": days_before(age_days) if age_days is not None else None,
            "reminders_sent": 0,
        }
        data.update(overrides)
        return in_memory_db.seed("trades", {k: v for k, v in data.items() if v is not None})

    return _create_trade


@pytest.fixture
def challenge_factory(in_memory_db):
    """Factory for challenges.

    Usage:
        challenge = challenge_factory(status="upcoming", start_date=days_before(1))
    """

    def _create_challenge(**overrides):
        data = {
            "title": "Trade three skills this week",
            "status": "upcoming",
            "start_date": days_after(1),
            "end_date": days_after(8),
        }
        data.update(overrides)
        return in_memory_db.seed("challenges", data)

    return _create_challenge
