"""
Error classification, recovery advice and session corruption repair.

The classifier is a best-effort heuristic over error messages. It decides
which recovery options are offered and whether an operation is retried, and
nothing else depends on it.
"""

from __future__ import annotations

import json
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from jira_planner.core.constants import (
    RATE_LIMIT_RECOVERY_DELAY_SECONDS,
    ErrorType,
    PlanningStep,
    RecoveryAction,
)
from jira_planner.core.identifiers import generate_session_id
from jira_planner.core.logging import get_logger
from jira_planner.domain.planning import (
    RequirementState,
    SuggestionState,
    TicketCollection,
    utc_now,
)
from jira_planner.domain.session import ConversationEntry, Session

logger = get_logger(__name__)

_DATETIME = TypeAdapter(datetime)

NON_RETRYABLE_TYPES = frozenset({ErrorType.VALIDATION_ERROR, ErrorType.PARSING_ERROR})

# Ordered: the first matching rule wins
_CLASSIFICATION_RULES: tuple[tuple[ErrorType, tuple[str, ...]], ...] = (
    (ErrorType.RATE_LIMIT_ERROR, ("rate limit", "too many requests")),
    (ErrorType.NETWORK_ERROR, ("network", "connection")),
    (ErrorType.AI_SERVICE_ERROR, ("timeout", "ai service")),
    (ErrorType.VALIDATION_ERROR, ("validation", "invalid")),
    (ErrorType.PARSING_ERROR, ("parse", "json")),
    (ErrorType.SESSION_ERROR, ("session", "state")),
    (ErrorType.EXPORT_ERROR, ("export", "save")),
)


def _message_of(error: Union[BaseException, str]) -> str:
    if isinstance(error, str):
        return error
    return str(error) or type(error).__name__


def classify_error(error: Union[BaseException, str]) -> ErrorType:
    """Map an error to an ErrorType by keywords in its message."""
    message = _message_of(error).lower()
    for error_type, phrases in _CLASSIFICATION_RULES:
        if any(phrase in message for phrase in phrases):
            return error_type
    return ErrorType.UNKNOWN_ERROR


def is_retryable(error: Union[BaseException, str]) -> bool:
    """Everything except validation and parsing failures is worth retrying."""
    return classify_error(error) not in NON_RETRYABLE_TYPES


@dataclass
class RecoveryOption:
    """A suggested next action attached to a classified error."""

    id: str
    title: str
    description: str
    action: RecoveryAction
    is_recommended: bool = False
    delay_seconds: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "action": self.action.value,
            "is_recommended": self.is_recommended,
            "delay_seconds": self.delay_seconds,
        }


@dataclass
class ErrorContext:
    """A classified error with where it happened and how to recover."""

    type: ErrorType
    message: str
    original_error: Optional[BaseException] = None
    step: Optional[PlanningStep] = None
    session_id: Optional[str] = None
    user_action: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)
    recovery_options: list[RecoveryOption] = field(default_factory=list)

    @property
    def recommended_option(self) -> Optional[RecoveryOption]:
        return next((o for o in self.recovery_options if o.is_recommended), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "step": self.step.value if self.step else None,
            "session_id": self.session_id,
            "user_action": self.user_action,
            "timestamp": self.timestamp.isoformat(),
            "recovery_options": [o.to_dict() for o in self.recovery_options],
        }


def build_recovery_options(error_type: ErrorType) -> list[RecoveryOption]:
    """Recovery options offered for an error type; 'view details' is always last."""
    options: list[RecoveryOption] = []

    if error_type == ErrorType.AI_SERVICE_ERROR:
        options.append(
            RecoveryOption(
                id="retry_ai",
                title="Retry AI Request",
                description="Try the AI request again",
                action=RecoveryAction.RETRY,
                is_recommended=True,
            )
        )
        options.append(
            RecoveryOption(
                id="use_fallback",
                title="Use Simplified Mode",
                description="Continue with basic functionality",
                action=RecoveryAction.USE_FALLBACK,
            )
        )
    elif error_type == ErrorType.NETWORK_ERROR:
        options.append(
            RecoveryOption(
                id="check_connection",
                title="Check Connection",
                description="Verify your internet connection and try again",
                action=RecoveryAction.CHECK_CONNECTION,
                is_recommended=True,
            )
        )
    elif error_type == ErrorType.RATE_LIMIT_ERROR:
        options.append(
            RecoveryOption(
                id="wait_retry",
                title="Wait and Retry",
                description="Wait for rate limit to reset and try again",
                action=RecoveryAction.WAIT_AND_RETRY,
                is_recommended=True,
                delay_seconds=RATE_LIMIT_RECOVERY_DELAY_SECONDS,
            )
        )
    elif error_type == ErrorType.SESSION_ERROR:
        options.append(
            RecoveryOption(
                id="restart_session",
                title="Restart Session",
                description="Start a new planning session",
                action=RecoveryAction.RESTART_SESSION,
                is_recommended=True,
            )
        )
    elif error_type == ErrorType.VALIDATION_ERROR:
        options.append(
            RecoveryOption(
                id="fix_validation",
                title="Fix Input",
                description="Correct the input and try again",
                action=RecoveryAction.FIX_INPUT,
                is_recommended=True,
            )
        )

    options.append(
        RecoveryOption(
            id="view_logs",
            title="View Error Details",
            description="Show detailed error information",
            action=RecoveryAction.VIEW_DETAILS,
        )
    )
    return options


_USER_HINTS: dict[ErrorType, str] = {
    ErrorType.AI_SERVICE_ERROR: "The AI service is temporarily unavailable. You can try again or use simplified mode.",
    ErrorType.NETWORK_ERROR: "Please check your internet connection and try again.",
    ErrorType.RATE_LIMIT_ERROR: "Too many requests. Please wait a moment before trying again.",
    ErrorType.VALIDATION_ERROR: "Please review your input and try again.",
    ErrorType.SESSION_ERROR: "Session data is corrupted. You may need to restart the planning session.",
}


class ErrorHandler:
    """
    Classifies failures, keeps a bounded history and repairs sessions.
    """

    def __init__(
        self,
        history_limit: int = 100,
        recent_window_seconds: int = 60,
        recent_limit: int = 10,
    ) -> None:
        self._history: deque[ErrorContext] = deque(maxlen=history_limit)
        self.recent_window_seconds = recent_window_seconds
        self.recent_limit = recent_limit

    @property
    def history(self) -> list[ErrorContext]:
        return list(self._history)

    def handle_error(
        self,
        error: Union[BaseException, str],
        step: Optional[PlanningStep] = None,
        session_id: Optional[str] = None,
        user_action: Optional[str] = None,
    ) -> ErrorContext:
        """
        Classify an error, attach recovery options and record it.

        Args:
            error: The exception (or message) to handle
            step: Workflow step active when it happened
            session_id: Affected session
            user_action: What the user was doing

        Returns:
            The recorded ErrorContext
        """
        error_type = classify_error(error)
        context = ErrorContext(
            type=error_type,
            message=_message_of(error),
            original_error=None if isinstance(error, str) else error,
            step=step,
            session_id=session_id,
            user_action=user_action,
            recovery_options=build_recovery_options(error_type),
        )

        logger.error(
            "Planner error",
            error_type=error_type.value,
            message=context.message,
            step=step.value if step else None,
            session_id=session_id,
            user_action=user_action,
        )

        self._history.append(context)
        return context

    @staticmethod
    def format_error_for_user(context: ErrorContext) -> str:
        """Render an ErrorContext as a user-facing message."""
        base_message = f"AI Jira Planner Error: {context.message}"
        hint = _USER_HINTS.get(context.type)
        return f"{base_message}\n\n{hint}" if hint else base_message

    def get_error_statistics(self) -> dict[str, Any]:
        """Totals per type plus the most recent errors in the last window."""
        cutoff = utc_now() - timedelta(seconds=self.recent_window_seconds)
        recent = [ctx for ctx in self._history if ctx.timestamp > cutoff]

        return {
            "total_errors": len(self._history),
            "errors_by_type": dict(Counter(ctx.type.value for ctx in self._history)),
            "recent_errors": [ctx.to_dict() for ctx in recent[-self.recent_limit :]],
        }

    def export_error_logs(self) -> str:
        """JSON report of the error history for debugging."""
        report = {
            "timestamp": utc_now().isoformat(),
            "error_count": len(self._history),
            "errors": [
                {
                    "type": ctx.type.value,
                    "message": ctx.message,
                    "step": ctx.step.value if ctx.step else None,
                    "timestamp": ctx.timestamp.isoformat(),
                    "user_action": ctx.user_action,
                }
                for ctx in self._history
            ],
        }
        return json.dumps(report, indent=2)

    def clear_history(self) -> None:
        self._history.clear()

    # -------------------------------------------------------------------------
    # Session corruption repair
    # -------------------------------------------------------------------------

    def validate_and_recover_session(
        self, session: Union[Session, dict[str, Any]]
    ) -> Session:
        """
        Check a session for corruption and rebuild it when needed.

        A session is corrupt when it lacks an id, requirement state or
        transcript, or holds requirements without an id or title. Recovery
        keeps every valid part, drops invalid requirements, resets missing
        collections and clears ``is_completed``.
        """
        if isinstance(session, Session):
            data = session.to_snapshot()
        elif isinstance(session, dict):
            data = session
        else:
            data = {}

        issues = self._find_issues(data)
        if not issues:
            if isinstance(session, Session):
                return session
            try:
                return Session.from_snapshot(data)
            except PydanticValidationError:
                issues.append("Session data failed schema validation")

        logger.warning("Session validation issues", issues=issues)
        recovered = self._recover(data)
        logger.info(
            "Session recovered",
            session_id=recovered.id,
            requirements=len(recovered.requirements.processed_requirements),
        )
        return recovered

    @staticmethod
    def _find_issues(data: dict[str, Any]) -> list[str]:
        issues: list[str] = []
        if not data.get("id"):
            issues.append("Missing session ID")

        requirements = data.get("requirements")
        if not isinstance(requirements, dict):
            issues.append("Missing requirements data")
        if not isinstance(data.get("conversation_history"), list):
            issues.append("Missing conversation history")

        if isinstance(requirements, dict):
            processed = requirements.get("processed_requirements")
            if processed is not None and not isinstance(processed, list):
                issues.append("Requirement list is malformed")
            for req in processed if isinstance(processed, list) else []:
                if not _is_valid_requirement(req):
                    req_id = req.get("id") if isinstance(req, dict) else None
                    issues.append(f"Invalid requirement: {req_id or 'unknown'}")
        return issues

    @staticmethod
    def _recover(data: dict[str, Any]) -> Session:
        requirements = data.get("requirements")
        if isinstance(requirements, dict):
            processed = requirements.get("processed_requirements")
            requirements = {
                **requirements,
                "processed_requirements": [
                    req for req in (processed if isinstance(processed, list) else [])
                    if _is_valid_requirement(req)
                ],
            }

        history = data.get("conversation_history")
        entries = []
        for raw in history if isinstance(history, list) else []:
            entry = _validate_or_none(ConversationEntry, raw)
            if entry is not None:
                entries.append(entry)

        confirmations = data.get("confirmations")
        if isinstance(confirmations, dict):
            confirmations = {str(k): v for k, v in confirmations.items() if isinstance(v, bool)}
        recovered = Session(
            id=str(data.get("id") or "") or generate_session_id(),
            current_step=data.get("current_step") or PlanningStep.INITIAL_UNDERSTANDING,
            is_completed=False,
            confirmations=confirmations if isinstance(confirmations, dict) else {},
            requirements=_validate_or_none(RequirementState, requirements) or RequirementState(),
            suggestions=_validate_or_none(SuggestionState, data.get("suggestions")) or SuggestionState(),
            tickets=_validate_or_none(TicketCollection, data.get("tickets")) or TicketCollection(),
            conversation_history=entries,
        )

        started_at = data.get("started_at")
        if started_at:
            try:
                recovered.started_at = _DATETIME.validate_python(started_at)
            except PydanticValidationError:
                logger.debug("Discarding unreadable start time", value=started_at)
        return recovered


def _is_valid_requirement(req: Any) -> bool:
    if isinstance(req, BaseModel):
        req = req.model_dump()
    if not isinstance(req, dict):
        return False
    return bool(str(req.get("id") or "").strip()) and bool(str(req.get("title") or "").strip())


def _validate_or_none(model_cls: type[BaseModel], value: Any) -> Any:
    if value is None:
        return None
    try:
        return model_cls.model_validate(value)
    except PydanticValidationError:
        return None
