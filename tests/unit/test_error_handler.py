"""
Unit tests for error classification and session recovery.
"""

import json

import pytest

from jira_planner.core.constants import ErrorType, PlanningStep, RecoveryAction
from jira_planner.core.exceptions import (
    ExportError,
    GenerationServiceError,
    GenerationTimeoutError,
    InvalidRequestError,
    NetworkError,
    ParsingError,
    RateLimitError,
    SessionNotFoundError,
)
from jira_planner.domain.session import Session
from jira_planner.resilience.error_handler import (
    ErrorHandler,
    build_recovery_options,
    classify_error,
    is_retryable,
)


class TestClassifyError:
    """Tests for the keyword classifier."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Rate limit exceeded", ErrorType.RATE_LIMIT_ERROR),
            ("429 Too Many Requests", ErrorType.RATE_LIMIT_ERROR),
            ("Network unreachable", ErrorType.NETWORK_ERROR),
            ("Connection reset by peer", ErrorType.NETWORK_ERROR),
            ("Request timeout", ErrorType.AI_SERVICE_ERROR),
            ("AI service returned 500", ErrorType.AI_SERVICE_ERROR),
            ("Validation failed for title", ErrorType.VALIDATION_ERROR),
            ("Could not parse response", ErrorType.PARSING_ERROR),
            ("Unexpected token in JSON", ErrorType.PARSING_ERROR),
            ("Session data corrupted", ErrorType.SESSION_ERROR),
            ("Export to disk failed", ErrorType.EXPORT_ERROR),
            ("Something odd happened", ErrorType.UNKNOWN_ERROR),
        ],
    )
    def test_keywords(self, message, expected):
        assert classify_error(message) == expected

    def test_first_matching_rule_wins(self):
        """Test that rate limit outranks network when both appear."""
        assert classify_error("network rate limit hit") == ErrorType.RATE_LIMIT_ERROR
        assert classify_error("connection timeout") == ErrorType.NETWORK_ERROR

    @pytest.mark.parametrize(
        "error,expected",
        [
            (RateLimitError(retry_after=5), ErrorType.RATE_LIMIT_ERROR),
            (NetworkError("refused"), ErrorType.NETWORK_ERROR),
            (GenerationServiceError("HTTP 500"), ErrorType.AI_SERVICE_ERROR),
            (GenerationTimeoutError(30000), ErrorType.AI_SERVICE_ERROR),
            (InvalidRequestError("empty title"), ErrorType.VALIDATION_ERROR),
            (ParsingError("no JSON object found"), ErrorType.PARSING_ERROR),
            (SessionNotFoundError("abc"), ErrorType.SESSION_ERROR),
            (ExportError("disk full"), ErrorType.EXPORT_ERROR),
        ],
    )
    def test_planner_errors_map_to_their_category(self, error, expected):
        assert classify_error(error) == expected

    def test_retryable(self):
        assert is_retryable(GenerationServiceError("HTTP 503")) is True
        assert is_retryable(InvalidRequestError("bad")) is False
        assert is_retryable(ParsingError("no JSON object found")) is False


class TestRecoveryOptions:
    """Tests for recovery option selection."""

    def test_view_details_is_always_last(self):
        for error_type in ErrorType:
            options = build_recovery_options(error_type)
            assert options[-1].action == RecoveryAction.VIEW_DETAILS

    def test_ai_service_options(self):
        options = build_recovery_options(ErrorType.AI_SERVICE_ERROR)

        assert [o.id for o in options] == ["retry_ai", "use_fallback", "view_logs"]
        assert options[0].is_recommended

    def test_rate_limit_waits_sixty_seconds(self):
        option = build_recovery_options(ErrorType.RATE_LIMIT_ERROR)[0]

        assert option.action == RecoveryAction.WAIT_AND_RETRY
        assert option.delay_seconds == 60

    def test_unknown_error_only_offers_details(self):
        options = build_recovery_options(ErrorType.UNKNOWN_ERROR)
        assert [o.id for o in options] == ["view_logs"]


class TestErrorHandler:
    """Tests for ErrorHandler."""

    @pytest.fixture
    def handler(self):
        return ErrorHandler(history_limit=3)

    def test_handle_error_records_context(self, handler):
        """Test that handled errors carry step, session and recovery options."""
        context = handler.handle_error(
            GenerationServiceError("HTTP 502"),
            step=PlanningStep.SUGGESTION_REVIEW,
            session_id="session_1",
            user_action="confirm_step",
        )

        assert context.type == ErrorType.AI_SERVICE_ERROR
        assert context.step == PlanningStep.SUGGESTION_REVIEW
        assert context.recommended_option.id == "retry_ai"
        assert handler.history == [context]
        assert "original_error" not in context.to_dict()

    def test_history_is_bounded(self, handler):
        for index in range(5):
            handler.handle_error(f"failure {index}")

        assert [ctx.message for ctx in handler.history] == ["failure 2", "failure 3", "failure 4"]

    def test_format_error_for_user(self, handler):
        context = handler.handle_error("Rate limit exceeded")
        text = handler.format_error_for_user(context)

        assert text.startswith("AI Jira Planner Error: Rate limit exceeded")
        assert "Please wait a moment" in text

    def test_format_unknown_error_has_no_hint(self, handler):
        context = handler.handle_error("Something odd happened")
        assert handler.format_error_for_user(context) == "AI Jira Planner Error: Something odd happened"

    def test_statistics(self, handler):
        handler.handle_error("Rate limit exceeded")
        handler.handle_error("Rate limit exceeded")
        handler.handle_error("Network down")

        stats = handler.get_error_statistics()
        assert stats["total_errors"] == 3
        assert stats["errors_by_type"] == {"rate_limit_error": 2, "network_error": 1}
        assert len(stats["recent_errors"]) == 3

    def test_export_and_clear(self, handler):
        handler.handle_error("Export to disk failed", step=PlanningStep.FINAL_REVIEW)

        report = json.loads(handler.export_error_logs())
        assert report["error_count"] == 1
        assert report["errors"][0]["type"] == "export_error"
        assert report["errors"][0]["step"] == "final_review"

        handler.clear_history()
        assert handler.get_error_statistics()["total_errors"] == 0


class TestSessionRecovery:
    """Tests for corrupt session recovery."""

    @pytest.fixture
    def handler(self):
        return ErrorHandler()

    def test_valid_session_is_returned_unchanged(self, handler):
        session = Session()
        assert handler.validate_and_recover_session(session) is session

    def test_invalid_requirements_are_dropped(self, handler):
        """Test that requirements without id or title are discarded and the rest kept."""
        data = Session().to_snapshot()
        data["current_step"] = "suggestion_review"
        data["is_completed"] = True
        data["requirements"]["processed_requirements"] = [
            {"id": "req_ok", "title": "Keep me", "description": "valid"},
            {"id": "", "title": "No id"},
            {"id": "req_untitled", "title": "  "},
        ]

        recovered = handler.validate_and_recover_session(data)

        assert recovered.id == data["id"]
        assert recovered.current_step == PlanningStep.SUGGESTION_REVIEW
        assert recovered.is_completed is False
        assert recovered.requirement_ids == ["req_ok"]

    def test_missing_parts_are_reset(self, handler):
        recovered = handler.validate_and_recover_session(
            {"current_step": "not-a-step", "suggestions": "garbage"}
        )

        assert recovered.id.startswith("session_")
        assert recovered.current_step == PlanningStep.INITIAL_UNDERSTANDING
        assert recovered.conversation_history == []
        assert recovered.suggestions.suggestions == []

    def test_unreadable_entries_are_skipped(self, handler):
        data = Session().to_snapshot()
        data["requirements"] = None
        data["conversation_history"] = [
            {"role": "user", "content": "hello"},
            "not an entry",
        ]

        recovered = handler.validate_and_recover_session(data)

        assert len(recovered.conversation_history) == 1
        assert recovered.conversation_history[0].content == "hello"
