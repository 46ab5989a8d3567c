"""Unit tests for age-cutoff batch transitions."""

import pytest

from src.core.errors import DatabaseError
from src.services import transition_service
from src.services.transition_service import apply_age_cutoff_transition
from tests.unit.mocks import NOW, days_after, days_before


def _statuses(db) -> dict[str, str]:
    return {c["id"]: c["status"] for c in db.records("challenges")}


@pytest.mark.unit
class TestApplyAgeCutoffTransition:
    """Generic transition over any collection."""

    async def test_transitions_exactly_the_due_entities(self, patched_db, challenge_factory):
        """Three upcoming challenges already started, two not yet: only the three move."""
        due = [challenge_factory(start_date=days_before(d)) for d in (0, 1, 3)]
        not_due = [challenge_factory(start_date=days_after(d)) for d in (0.5, 2)]

        result = await apply_age_cutoff_transition(
            source_status="upcoming",
            date_field="start_date",
            cutoff=NOW,
            target_status="active",
        )

        assert result.count == 3
        assert result.error is None
        statuses = _statuses(patched_db)
        assert all(statuses[c["id"]] == "active" for c in due)
        assert all(statuses[c["id"]] == "upcoming" for c in not_due)

    async def test_uses_one_atomic_batch(self, patched_db, challenge_factory):
        for _ in range(4):
            challenge_factory(start_date=days_before(1))

        await apply_age_cutoff_transition(
            source_status="upcoming", date_field="start_date", cutoff=NOW, target_status="active"
        )

        assert patched_db.calls["commit_batch"] == 1
        assert "update_record" not in patched_db.calls

    async def test_no_matches_commits_nothing(self, patched_db, challenge_factory):
        challenge_factory(start_date=days_after(1))

        result = await apply_age_cutoff_transition(
            source_status="upcoming", date_field="start_date", cutoff=NOW, target_status="active"
        )

        assert result.count == 0
        assert result.error is None
        assert "commit_batch" not in patched_db.calls

    async def test_batch_failure_reports_zero_and_changes_nothing(self, patched_db, challenge_factory):
        for _ in range(3):
            challenge_factory(start_date=days_before(1))
        before = _statuses(patched_db)
        patched_db.fail_next("commit_batch", DatabaseError("disk full"))

        result = await apply_age_cutoff_transition(
            source_status="upcoming", date_field="start_date", cutoff=NOW, target_status="active"
        )

        assert result.count == 0
        assert "disk full" in result.error
        assert _statuses(patched_db) == before

    async def test_partial_batch_is_rolled_back(self, patched_db, challenge_factory):
        first = challenge_factory(start_date=days_before(2))
        second = challenge_factory(start_date=days_before(1))
        patched_db.fail_record(second["id"], DatabaseError("constraint violated"))

        result = await apply_age_cutoff_transition(
            source_status="upcoming", date_field="start_date", cutoff=NOW, target_status="active"
        )

        assert result.count == 0
        assert result.error is not None
        assert _statuses(patched_db)[first["id"]] == "upcoming"

    async def test_query_failure_is_reported_not_raised(self, patched_db):
        patched_db.fail_next("list_records", ConnectionError("connection reset"), times=3)

        result = await apply_age_cutoff_transition(
            source_status="upcoming", date_field="start_date", cutoff=NOW, target_status="active"
        )

        assert result.count == 0
        assert "connection reset" in result.error

    async def test_repeated_runs_converge(self, patched_db, challenge_factory):
        for d in (1, 2, 3):
            challenge_factory(start_date=days_before(d))

        first = await apply_age_cutoff_transition(
            source_status="upcoming", date_field="start_date", cutoff=NOW, target_status="active"
        )
        second = await apply_age_cutoff_transition(
            source_status="upcoming", date_field="start_date", cutoff=NOW, target_status="active"
        )

        assert first.count == 3
        assert second.count == 0
        assert set(_statuses(patched_db).values()) == {"active"}

    async def test_extra_fields_are_applied(self, patched_db, challenge_factory):
        challenge = challenge_factory(start_date=days_before(1))

        await apply_age_cutoff_transition(
            source_status="upcoming",
            date_field="start_date",
            cutoff=NOW,
            target_status="active",
            extra_fields={"activated_by": "scheduler"},
        )

        stored = patched_db.records("challenges")[0]
        assert stored["id"] == challenge["id"]
        assert stored["activated_by"] == "scheduler"

    async def test_works_on_any_collection(self, patched_db):
        patched_db.seed("trades", {"status": "open", "expires_at": days_before(1)})

        result = await apply_age_cutoff_transition(
            source_status="open",
            date_field="expires_at",
            cutoff=NOW,
            target_status="cancelled",
            collection="trades",
        )

        assert result.count == 1
        assert patched_db.records("trades")[0]["status"] == "cancelled"

    async def test_same_source_and_target_is_rejected(self, patched_db):
        with pytest.raises(ValueError, match="must differ"):
            await apply_age_cutoff_transition(
                source_status="active", date_field="start_date", cutoff=NOW, target_status="active"
            )


@pytest.mark.unit
class TestChallengeLifecycle:
    """Hourly challenge activation and completion."""

    async def test_activation_and_completion(self, patched_db, challenge_factory):
        starting = challenge_factory(status="upcoming", start_date=days_before(0.1), end_date=days_after(1))
        ending = challenge_factory(status="active", start_date=days_before(7), end_date=days_before(0.1))
        running = challenge_factory(status="active", start_date=days_before(1), end_date=days_after(6))

        activated = await transition_service.activate_scheduled_challenges()
        completed = await transition_service.complete_expired_challenges()

        assert activated.count == 1
        assert completed.count == 1
        statuses = _statuses(patched_db)
        assert statuses[starting["id"]] == "active"
        assert statuses[ending["id"]] == "completed"
        assert statuses[running["id"]] == "active"

    async def test_completed_challenges_never_reactivate(self, patched_db, challenge_factory):
        challenge_factory(status="completed", start_date=days_before(9), end_date=days_before(2))

        activated = await transition_service.activate_scheduled_challenges()
        completed = await transition_service.complete_expired_challenges()

        assert activated.count == 0
        assert completed.count == 0

    async def test_store_clock_failure_is_reported(self, patched_db):
        patched_db.fail_next("server_now", ConnectionError("connection reset"), times=3)

        result = await transition_service.activate_scheduled_challenges()

        assert result.count == 0
        assert "connection reset" in result.error
