"""Tests for the HTTP trigger endpoint and health endpoints."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.core.errors import TriggerFailedError
from src.core.scheduler_tracker import JobTracker
from src.interface.trigger_router import validate_trigger_secret
from src.main import app
from src.models.service_models import TransitionResult, TriggerReport
from tests.unit.mocks import days_before


SECRET = "cron-shared-secret"


@pytest.fixture
def tracker(monkeypatch) -> JobTracker:
    """Fresh in-memory job tracker for both the router and the health endpoint."""
    tracker = JobTracker()
    monkeypatch.setattr("src.core.scheduler_tracker.job_tracker", tracker)
    monkeypatch.setattr("src.main.job_tracker", tracker)
    return tracker


@pytest.fixture
def client(monkeypatch, tracker) -> TestClient:
    """Create a test client for FastAPI app with a configured trigger secret."""
    monkeypatch.setattr("src.interface.trigger_router.settings.trigger_secret", SECRET)
    return TestClient(app)


@pytest.mark.unit
class TestValidateTriggerSecret:
    def test_valid(self):
        assert validate_trigger_secret(SECRET, SECRET).is_valid is True

    def test_missing(self):
        result = validate_trigger_secret(None, SECRET)
        assert result.is_valid is False
        assert result.http_status_code == 401

    def test_wrong(self):
        result = validate_trigger_secret("guess", SECRET)
        assert result.is_valid is False
        assert result.http_status_code == 401

    def test_not_configured_fails_closed(self):
        result = validate_trigger_secret(SECRET, None)
        assert result.is_valid is False
        assert result.http_status_code == 503


@pytest.mark.unit
class TestInvokeTrigger:
    def test_requires_secret(self, client: TestClient) -> None:
        response = client.post("/triggers/hourly")

        assert response.status_code == 401

    def test_rejects_wrong_secret(self, client: TestClient) -> None:
        response = client.post("/triggers/hourly", headers={"X-Trigger-Secret": "nope"})

        assert response.status_code == 401

    def test_unknown_trigger(self, client: TestClient) -> None:
        response = client.post("/triggers/monthly", headers={"X-Trigger-Secret": SECRET})

        assert response.status_code == 404

    def test_runs_trigger_against_store(self, client: TestClient, patched_db, challenge_factory) -> None:
        challenge_factory(status="upcoming", start_date=days_before(1))

        response = client.post("/triggers/hourly", headers={"X-Trigger-Secret": SECRET})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["report"]["transitions"]["activated"]["count"] == 1
        assert patched_db.records("challenges")[0]["status"] == "active"

    def test_failed_trigger_answers_500_and_is_tracked(
        self, client: TestClient, tracker: JobTracker, monkeypatch
    ) -> None:
        monkeypatch.setattr(
            "src.services.runner_service.run_trigger",
            AsyncMock(side_effect=TriggerFailedError("daily", "1 trades failed: 1000")),
        )

        response = client.post("/triggers/daily", headers={"X-Trigger-Secret": SECRET})

        assert response.status_code == 500
        assert response.json() == {"status": "failed", "trigger": "daily", "error": "1 trades failed: 1000"}
        status = client.get("/health/scheduler").json()["jobs"]["daily_trigger"]
        assert status["consecutive_failures"] == 1

    def test_success_is_tracked(self, client: TestClient, monkeypatch) -> None:
        report = TriggerReport(trigger="hourly", transitions={"activated": TransitionResult(count=2)})
        monkeypatch.setattr("src.services.runner_service.run_trigger", AsyncMock(return_value=report))

        client.post("/triggers/hourly", headers={"X-Trigger-Secret": SECRET})
        status = client.get("/health/scheduler").json()["jobs"]["hourly_trigger"]

        assert status["success_count"] == 1
        assert status["last_summary"] == "hourly (activated: 2)"


@pytest.mark.unit
class TestHealth:
    def test_health_endpoint_returns_healthy(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_scheduler_health_lists_every_trigger(self, client: TestClient) -> None:
        response = client.get("/health/scheduler")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert set(data["jobs"]) == {"hourly_trigger", "daily_trigger", "weekly_trigger"}
        assert data["dead_letter_queue_size"] == 0

    async def test_scheduler_health_critical_with_dead_letters(self, client: TestClient, tracker: JobTracker) -> None:
        for _ in range(3):
            await tracker.record_job_failure("weekly_trigger", "disk full")
        tracker.add_to_dead_letter_queue("weekly_trigger", "disk full", "Failed 3 consecutive times")

        response = client.get("/health/scheduler")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "critical"
        assert data["dead_letter_queue_size"] == 1
