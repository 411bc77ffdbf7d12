"""
Unit tests for the session store.
"""

import pytest

from jira_planner.core.constants import PlanningStep
from jira_planner.core.exceptions import InvalidRequestError, SessionError, SessionNotFoundError
from jira_planner.domain.planning import RequirementState
from jira_planner.domain.session import Session
from jira_planner.repositories.session_repo import SessionStore, check_snapshot


class TestSessionStore:
    """Tests for SessionStore."""

    @pytest.fixture
    def store(self):
        return SessionStore()

    @pytest.mark.asyncio
    async def test_create_and_get(self, store):
        """Test creating a session seeds the original input."""
        session = await store.create("Build a shop")

        assert (await store.get(session.id)) is session
        assert session.requirements.original_input == "Build a shop"
        assert session.current_step == PlanningStep.INITIAL_UNDERSTANDING
        assert await store.exists(session.id)

    @pytest.mark.asyncio
    async def test_require_unknown_session(self, store):
        with pytest.raises(SessionNotFoundError):
            await store.require("session_missing")

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, store):
        """Test that known fields are merged and unknown ones ignored."""
        session = await store.create("x")
        before = session.updated_at

        updated = await store.update(
            session.id, {"current_step": PlanningStep.FINAL_REVIEW, "nonsense": 1}
        )

        assert updated.current_step == PlanningStep.FINAL_REVIEW
        assert updated.updated_at >= before
        assert not hasattr(updated, "nonsense")

    @pytest.mark.asyncio
    async def test_update_validates_raw_values(self, store):
        """Test that raw enum text and plain dicts are converted to typed fields."""
        session = await store.create("x")

        updated = await store.update(
            session.id,
            {
                "current_step": "suggestion_review",
                "requirements": {
                    "originalInput": "Build a shop",
                    "processedRequirements": [{"id": "req_1", "title": "Checkout"}],
                },
            },
        )

        assert updated.current_step is PlanningStep.SUGGESTION_REVIEW
        assert updated.current_step.value == "suggestion_review"
        assert isinstance(updated.requirements, RequirementState)
        assert updated.requirement_ids == ["req_1"]
        assert updated.to_snapshot()["requirements"]["original_input"] == "Build a shop"

    @pytest.mark.asyncio
    async def test_update_rejects_invalid_values(self, store):
        session = await store.create("x")

        with pytest.raises(InvalidRequestError) as exc_info:
            await store.update(session.id, {"is_completed": "maybe"})

        assert exc_info.value.details == {"field": "is_completed"}
        assert session.is_completed is False

    @pytest.mark.asyncio
    async def test_drop(self, store):
        session = await store.create("x")

        assert await store.drop(session.id) is True
        assert await store.drop(session.id) is False
        assert await store.get(session.id) is None

    @pytest.mark.asyncio
    async def test_list_newest_first(self, store):
        first = await store.create("first")
        second = await store.create("second")
        second.started_at = first.started_at.replace(year=first.started_at.year + 1)

        sessions = await store.list()
        assert [s.id for s in sessions] == [second.id, first.id]
        assert [s.id for s in await store.list(limit=1, offset=1)] == [first.id]

    @pytest.mark.asyncio
    async def test_restore_registers_session(self, store):
        """Test that a snapshot is rebuilt with its original identity."""
        original = Session(current_step=PlanningStep.STRUCTURE_PLANNING)
        restored = await store.restore(original.to_snapshot())

        assert restored.id == original.id
        assert restored.current_step == PlanningStep.STRUCTURE_PLANNING
        assert (await store.get(original.id)) is restored

    @pytest.mark.asyncio
    async def test_restore_rejects_missing_fields(self, store):
        snapshot = Session().to_snapshot()
        del snapshot["conversation_history"]

        with pytest.raises(SessionError) as exc_info:
            await store.restore(snapshot)

        assert exc_info.value.details["missing"] == ["conversation_history"]
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_restore_hands_corrupt_data_to_recover(self, store):
        """Test that nested corruption goes to the recover hook instead of failing."""
        snapshot = Session().to_snapshot()
        snapshot["tickets"] = "garbage"
        seen = []

        def recover(data):
            seen.append(data)
            return Session(id=data["id"])

        restored = await store.restore(snapshot, recover=recover)

        assert seen == [snapshot]
        assert (await store.get(snapshot["id"])) is restored

    @pytest.mark.asyncio
    async def test_restore_without_recover_rejects_corrupt_data(self, store):
        snapshot = Session().to_snapshot()
        snapshot["tickets"] = "garbage"

        with pytest.raises(SessionError):
            await store.restore(snapshot)


class TestCheckSnapshot:
    """Tests for snapshot field checks."""

    def test_rejects_non_object(self):
        with pytest.raises(SessionError):
            check_snapshot(["not", "a", "dict"])

    def test_empty_id_counts_as_missing(self):
        snapshot = Session().to_snapshot()
        snapshot["id"] = ""

        with pytest.raises(SessionError) as exc_info:
            check_snapshot(snapshot)

        assert "id" in exc_info.value.details["missing"]

    def test_empty_transcript_is_accepted(self):
        check_snapshot(Session().to_snapshot())
