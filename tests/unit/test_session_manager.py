"""
Unit tests for the session manager command channel.
"""

import json

import pytest

from jira_planner.core.constants import ErrorType, MessageRole, PlannerCommand, PlanningStep
from jira_planner.core.exceptions import (
    GenerationServiceError,
    InvalidRequestError,
    SessionError,
    SessionNotFoundError,
)


async def review_session(session_manager):
    """Create a session and confirm it into suggestion review."""
    created = await session_manager.create_session("Add password reset")
    result = await session_manager.handle_command(created.session.id, PlannerCommand.CONFIRM_STEP)
    return result.session


class TestCommands:
    """Tests for command dispatch."""

    @pytest.mark.asyncio
    async def test_create_session(self, session_manager):
        result = await session_manager.create_session("Add password reset")

        assert result.success
        assert result.session.current_step == PlanningStep.REQUIREMENT_CONFIRMATION
        assert await session_manager.get_session(result.session.id) is result.session

    @pytest.mark.asyncio
    async def test_send_text_and_confirm(self, session_manager):
        created = await session_manager.create_session("")

        result = await session_manager.handle_command(
            created.session.id, PlannerCommand.SEND_TEXT, {"text": "Add password reset"}
        )
        assert result.session.current_step == PlanningStep.REQUIREMENT_CONFIRMATION

        result = await session_manager.handle_command(created.session.id, "confirm_step")
        assert result.session.current_step == PlanningStep.SUGGESTION_REVIEW

    @pytest.mark.asyncio
    async def test_suggestion_commands(self, session_manager):
        session = await review_session(session_manager)
        first, second = [s.id for s in session.suggestions.suggestions[:2]]

        await session_manager.handle_command(
            session.id, PlannerCommand.APPLY_SUGGESTION, {"suggestionId": first}
        )
        await session_manager.handle_command(
            session.id, PlannerCommand.REJECT_SUGGESTION, {"suggestion_id": second, "reason": "Later"}
        )

        assert session.suggestions.applied_suggestions == [first]
        assert session.suggestions.rejected_suggestions == [second]

    @pytest.mark.asyncio
    async def test_generate_and_export(self, session_manager):
        """Test that export returns content in the preferred format by default."""
        session = await review_session(session_manager)

        generated = await session_manager.handle_command(session.id, PlannerCommand.GENERATE_TICKETS)
        assert generated.side_effect == {"total_tickets": 2}

        exported = await session_manager.handle_command(session.id, PlannerCommand.EXPORT_TICKETS)
        export = exported.side_effect["export"]
        assert export["format"] == "csv"
        assert export["filename"].startswith("jira-tickets-")
        assert export["content"].startswith('"ID","Type"')

        confluence = await session_manager.handle_command(
            session.id, PlannerCommand.EXPORT_TICKETS, {"format": "confluence"}
        )
        assert confluence.side_effect["export"]["media_type"] == "text/markdown"

    @pytest.mark.asyncio
    async def test_export_without_tickets_is_reported(self, session_manager):
        """Test that a failed command is classified and shown in the transcript."""
        created = await session_manager.create_session("Add password reset")

        result = await session_manager.handle_command(created.session.id, PlannerCommand.EXPORT_TICKETS)

        assert not result.success
        assert result.error.type == ErrorType.EXPORT_ERROR
        last = result.session.conversation_history[-1]
        assert last.role == MessageRole.SYSTEM
        assert last.content.startswith("AI Jira Planner Error: Export failed")
        assert result.to_dict()["error"]["type"] == "export_error"

    @pytest.mark.asyncio
    async def test_missing_suggestion_id_is_validation_error(self, session_manager):
        session = await review_session(session_manager)

        result = await session_manager.handle_command(session.id, PlannerCommand.APPLY_SUGGESTION, {})

        assert result.error.type == ErrorType.VALIDATION_ERROR

    @pytest.mark.asyncio
    async def test_request_more_suggestions(self, session_manager, fake_service):
        fake_service.replies = {
            "Generate additional professional suggestions": json.dumps(
                {"suggestions": [{"id": "sug_extra", "title": "Add audit logging"}]}
            )
        }
        session = await review_session(session_manager)

        result = await session_manager.handle_command(
            session.id, PlannerCommand.REQUEST_MORE_SUGGESTIONS, {"category": "security"}
        )

        assert result.side_effect == {"added_suggestions": ["sug_extra"]}

    @pytest.mark.asyncio
    async def test_unknown_category(self, session_manager):
        session = await review_session(session_manager)

        result = await session_manager.handle_command(
            session.id, PlannerCommand.REQUEST_MORE_SUGGESTIONS, {"category": "astrology"}
        )

        assert result.error.type == ErrorType.VALIDATION_ERROR

    @pytest.mark.asyncio
    async def test_restart_and_clear(self, session_manager):
        session = await review_session(session_manager)

        restarted = await session_manager.handle_command(session.id, PlannerCommand.RESTART_WORKFLOW)
        assert restarted.side_effect == {"previous_session_id": session.id}
        assert restarted.session.id != session.id

        cleared = await session_manager.handle_command(restarted.session.id, PlannerCommand.CLEAR_SESSION)
        assert cleared.session is None
        with pytest.raises(SessionNotFoundError):
            await session_manager.get_session(restarted.session.id)

    @pytest.mark.asyncio
    async def test_update_requirements(self, session_manager):
        session = await review_session(session_manager)
        req_id = session.requirement_ids[0]

        result = await session_manager.handle_command(
            session.id,
            PlannerCommand.UPDATE_REQUIREMENTS,
            {"type": "modify", "id": req_id, "changes": {"priority": "high"}},
        )

        assert result.success
        assert result.session.requirements.find(req_id).priority.value == "high"

    @pytest.mark.asyncio
    async def test_unknown_command(self, session_manager):
        created = await session_manager.create_session("x")

        with pytest.raises(InvalidRequestError):
            await session_manager.handle_command(created.session.id, "dance")

    @pytest.mark.asyncio
    async def test_unknown_session(self, session_manager):
        with pytest.raises(SessionNotFoundError):
            await session_manager.handle_command("session_missing", PlannerCommand.CONFIRM_STEP)

    @pytest.mark.asyncio
    async def test_transient_entries_cleared_after_failure(self, session_manager, fake_service):
        created = await session_manager.create_session("Add password reset")
        fake_service.default = GenerationServiceError("Service unavailable")

        result = await session_manager.handle_command(
            created.session.id, PlannerCommand.CONFIRM_STEP
        )

        # Suggestion generation falls back instead of failing the command
        assert result.success
        assert all(not e.is_transient for e in result.session.conversation_history)


class TestListeners:
    """Tests for state change notifications."""

    @pytest.mark.asyncio
    async def test_listener_called_once_per_command(self, session_manager):
        calls = []
        session_manager.add_listener(lambda session, command: calls.append(command))
        created = await session_manager.create_session("x")

        await session_manager.handle_command(created.session.id, PlannerCommand.CONFIRM_STEP)
        await session_manager.handle_command(created.session.id, PlannerCommand.EXPORT_TICKETS)

        assert calls == [PlannerCommand.CONFIRM_STEP, PlannerCommand.EXPORT_TICKETS]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_command(self, session_manager):
        def broken(session, command):
            raise RuntimeError("listener bug")

        received = []
        session_manager.add_listener(broken)
        session_manager.add_listener(lambda session, command: received.append(session.id))
        created = await session_manager.create_session("x")

        result = await session_manager.handle_command(created.session.id, PlannerCommand.CONFIRM_STEP)

        assert result.success
        assert received == [created.session.id]

    @pytest.mark.asyncio
    async def test_remove_listener(self, session_manager):
        calls = []
        listener = lambda session, command: calls.append(command)  # noqa: E731
        session_manager.add_listener(listener)
        session_manager.remove_listener(listener)
        created = await session_manager.create_session("x")

        await session_manager.handle_command(created.session.id, PlannerCommand.CONFIRM_STEP)

        assert calls == []


class TestSaveAndLoad:
    """Tests for session persistence."""

    @pytest.mark.asyncio
    async def test_save_then_load_round_trip(self, session_manager, store, cache, tmp_path):
        """Test that a saved session and its cache come back intact."""
        session = await review_session(session_manager)
        path = tmp_path / "saved.json"

        saved = await session_manager.handle_command(
            session.id, PlannerCommand.SAVE_SESSION, {"path": str(path)}
        )
        assert saved.side_effect == {"path": str(path)}

        payload = json.loads(path.read_text(encoding="utf-8"))
        assert payload["session"]["id"] == session.id
        assert isinstance(payload["cache"], dict)

        await store.drop(session.id)
        await cache.clear()

        loaded = await session_manager.handle_command(
            None, PlannerCommand.LOAD_SESSION, {"path": str(path)}
        )

        restored = loaded.session
        assert restored.id == session.id
        assert restored.current_step == PlanningStep.SUGGESTION_REVIEW
        assert restored.started_at == session.started_at
        assert [s.id for s in restored.suggestions.suggestions] == [
            s.id for s in session.suggestions.suggestions
        ]
        assert loaded.side_effect["cache_entries"] == len(payload["cache"])
        assert await store.get(session.id) is restored

    @pytest.mark.asyncio
    async def test_default_save_location(self, session_manager, tmp_path):
        created = await session_manager.create_session("x")

        result = await session_manager.handle_command(created.session.id, PlannerCommand.SAVE_SESSION)

        path = result.side_effect["path"]
        assert path.startswith(str(tmp_path / "sessions"))
        assert f"jira-planning-session-{created.session.id}-" in path

    @pytest.mark.asyncio
    async def test_load_inline_data(self, session_manager):
        created = await session_manager.create_session("x")
        snapshot = created.session.to_snapshot()
        await session_manager.drop_session(created.session.id)

        loaded = await session_manager.handle_command(
            None, PlannerCommand.LOAD_SESSION, {"data": snapshot}
        )

        assert loaded.session.id == created.session.id
        assert loaded.side_effect == {"loaded_from": "request", "cache_entries": 0}

    @pytest.mark.asyncio
    async def test_load_repairs_corrupt_requirements(self, session_manager):
        """Test that invalid requirements are dropped on load."""
        created = await session_manager.create_session("x")
        snapshot = created.session.to_snapshot()
        snapshot["requirements"]["processed_requirements"].append({"id": "", "title": ""})

        loaded = await session_manager.handle_command(
            None, PlannerCommand.LOAD_SESSION, {"data": snapshot}
        )

        assert loaded.session.requirement_ids == created.session.requirement_ids
        assert (await session_manager.get_session(created.session.id)) is loaded.session

    @pytest.mark.asyncio
    async def test_load_missing_fields_raises(self, session_manager, error_handler):
        with pytest.raises(SessionError):
            await session_manager.handle_command(
                None, PlannerCommand.LOAD_SESSION, {"data": {"id": "session_x"}}
            )

        assert error_handler.history[-1].type == ErrorType.SESSION_ERROR

    @pytest.mark.asyncio
    async def test_load_unreadable_file_raises(self, session_manager, tmp_path):
        broken = tmp_path / "broken.json"
        broken.write_text("{not json", encoding="utf-8")

        with pytest.raises(SessionError):
            await session_manager.handle_command(None, PlannerCommand.LOAD_SESSION, {"path": str(broken)})

        with pytest.raises(SessionError):
            await session_manager.handle_command(
                None, PlannerCommand.LOAD_SESSION, {"path": str(tmp_path / "absent.json")}
            )

    @pytest.mark.asyncio
    async def test_load_repairs_corrupt_nested_data(self, session_manager):
        """Test that corrupt nested values are repaired while valid parts survive."""
        session = await review_session(session_manager)
        await session_manager.handle_command(session.id, PlannerCommand.GENERATE_TICKETS)
        assert session.tickets.total == 2
        snapshot = session.to_snapshot()
        snapshot["tickets"] = "garbage"
        snapshot["requirements"]["processed_requirements"].append(42)
        snapshot["conversation_history"].append({"content": "entry without a role"})
        await session_manager.drop_session(session.id)

        loaded = await session_manager.handle_command(
            None, PlannerCommand.LOAD_SESSION, {"data": snapshot}
        )

        restored = loaded.session
        assert loaded.success
        assert restored.id == session.id
        assert restored.requirement_ids == session.requirement_ids
        assert [s.id for s in restored.suggestions.suggestions] == [
            s.id for s in session.suggestions.suggestions
        ]
        assert restored.tickets.total == 0
        assert restored.message_count == session.message_count
        assert restored.is_completed is False
        assert (await session_manager.get_session(session.id)) is restored

    @pytest.mark.asyncio
    async def test_load_file_with_corrupt_entries(self, session_manager, tmp_path):
        created = await session_manager.create_session("x")
        path = tmp_path / "corrupt.json"
        await session_manager.handle_command(
            created.session.id, PlannerCommand.SAVE_SESSION, {"path": str(path)}
        )
        payload = json.loads(path.read_text(encoding="utf-8"))
        for entry in payload["session"]["conversation_history"]:
            del entry["role"]
        path.write_text(json.dumps(payload), encoding="utf-8")

        loaded = await session_manager.handle_command(
            None, PlannerCommand.LOAD_SESSION, {"path": str(path)}
        )

        assert loaded.session.id == created.session.id
        assert loaded.session.conversation_history == []
        assert loaded.session.requirement_ids == created.session.requirement_ids
