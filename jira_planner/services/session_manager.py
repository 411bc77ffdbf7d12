"""
Session manager: the command channel for planning sessions.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

from jira_planner.core.constants import (
    ExportFormat,
    MessageRole,
    PlannerCommand,
    SuggestionCategory,
)
from jira_planner.core.exceptions import (
    ExportError,
    InvalidRequestError,
    NotFoundError,
    SessionError,
)
from jira_planner.core.logging import LogContext, get_logger
from jira_planner.domain.planning import utc_now
from jira_planner.domain.session import Session
from jira_planner.orchestration.workflow_engine import PlanningWorkflowEngine
from jira_planner.repositories.cache_repo import ResponseCache
from jira_planner.repositories.session_repo import SessionStore
from jira_planner.resilience.error_handler import ErrorContext, ErrorHandler
from jira_planner.services.export_service import TicketExporter

logger = get_logger(__name__)

SessionListener = Callable[[Optional[Session], PlannerCommand], None]


@dataclass
class CommandResult:
    """Outcome of one command."""

    session: Optional[Session]
    side_effect: Optional[dict[str, Any]] = None
    error: Optional[ErrorContext] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "session": self.session.to_snapshot() if self.session else None,
            "side_effect": self.side_effect,
            "error": self.error.to_dict() if self.error else None,
        }


def _get(data: dict[str, Any], snake: str, camel: Optional[str] = None) -> Any:
    if snake in data:
        return data[snake]
    return data.get(camel) if camel else None


class SessionManager:
    """
    Manages planning sessions and dispatches user commands.

    Failures inside a command are classified by the error handler and shown
    in the transcript; only unknown sessions and failed session loads reach
    the caller as exceptions.
    """

    def __init__(
        self,
        engine: PlanningWorkflowEngine,
        store: SessionStore,
        cache: ResponseCache,
        error_handler: ErrorHandler,
        exporter: Optional[TicketExporter] = None,
        sessions_directory: Union[str, Path] = "planning_sessions",
        preferred_export_format: ExportFormat = ExportFormat.CSV,
    ) -> None:
        """
        Initialize the session manager.

        Args:
            engine: Workflow engine running step handlers
            store: Session store shared with the engine
            cache: Response cache saved alongside sessions
            error_handler: Error classifier and history
            exporter: Ticket exporter
            sessions_directory: Where saved sessions are written by default
            preferred_export_format: Format used when a command names none
        """
        self.engine = engine
        self.store = store
        self.cache = cache
        self.error_handler = error_handler
        self.exporter = exporter or TicketExporter()
        self.sessions_directory = Path(sessions_directory)
        self.preferred_export_format = preferred_export_format
        self._listeners: list[SessionListener] = []

        self._handlers = {
            PlannerCommand.SEND_TEXT: self._send_text,
            PlannerCommand.CONFIRM_STEP: self._confirm_step,
            PlannerCommand.UPDATE_REQUIREMENTS: self._update_requirements,
            PlannerCommand.APPLY_SUGGESTION: self._apply_suggestion,
            PlannerCommand.REJECT_SUGGESTION: self._reject_suggestion,
            PlannerCommand.REQUEST_MORE_SUGGESTIONS: self._request_more_suggestions,
            PlannerCommand.GENERATE_TICKETS: self._generate_tickets,
            PlannerCommand.EXPORT_TICKETS: self._export_tickets,
            PlannerCommand.RESTART_WORKFLOW: self._restart_workflow,
            PlannerCommand.SAVE_SESSION: self._save_session,
            PlannerCommand.LOAD_SESSION: self._load_session,
            PlannerCommand.CLEAR_SESSION: self._clear_session,
        }

    # =========================================================================
    # Listeners
    # =========================================================================

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, session: Optional[Session], command: PlannerCommand) -> None:
        for listener in list(self._listeners):
            try:
                listener(session, command)
            except Exception as e:
                logger.exception("Session listener failed", command=command.value, error=str(e))

    # =========================================================================
    # Sessions
    # =========================================================================

    async def create_session(self, raw_input: str) -> CommandResult:
        """Create a session for ``raw_input`` and run its first step."""
        session = await self.engine.initialize_session(raw_input)
        try:
            await self.engine.start(session.id)
        except Exception as e:
            return self._failed(session, e, user_action="create_session")
        return CommandResult(session=session)

    async def get_session(self, session_id: str) -> Session:
        """
        Get a session by ID.

        Raises:
            SessionNotFoundError: If session not found
        """
        return await self.store.require(session_id)

    async def list_sessions(self, limit: int = 100, offset: int = 0) -> list[Session]:
        return await self.store.list(limit=limit, offset=offset)

    async def drop_session(self, session_id: str) -> bool:
        return await self.store.drop(session_id)

    # =========================================================================
    # Command dispatch
    # =========================================================================

    async def handle_command(
        self,
        session_id: Optional[str],
        command: Union[PlannerCommand, str],
        data: Optional[dict[str, Any]] = None,
    ) -> CommandResult:
        """
        Run one command against a session.

        Args:
            session_id: Target session (may be None for ``load_session``)
            command: Command name
            data: Command arguments

        Returns:
            CommandResult with the session after the command, any side effect
            (export content, saved path, ...) and the error context on failure

        Raises:
            InvalidRequestError: unknown command
            NotFoundError: the session does not exist
            SessionError: a saved session could not be loaded
        """
        try:
            cmd = PlannerCommand(command)
        except ValueError:
            raise InvalidRequestError(f"Unknown command '{command}'", field="command") from None

        data = data or {}
        session: Optional[Session] = None
        if cmd != PlannerCommand.LOAD_SESSION:
            session = await self.store.require(session_id or "")

        with LogContext(session_id=session_id, command=cmd.value):
            logger.info("Handling command")
            try:
                session, side_effect = await self._handlers[cmd](session, data)
            except (NotFoundError, SessionError) as e:
                if cmd == PlannerCommand.LOAD_SESSION or isinstance(e, NotFoundError):
                    self.error_handler.handle_error(e, session_id=session_id, user_action=cmd.value)
                    raise
                result = self._failed(session, e, user_action=cmd.value)
            except Exception as e:
                result = self._failed(session, e, user_action=cmd.value)
            else:
                result = CommandResult(session=session, side_effect=side_effect)

        self._notify(result.session, cmd)
        return result

    def _failed(
        self, session: Optional[Session], error: Exception, user_action: str
    ) -> CommandResult:
        context = self.error_handler.handle_error(
            error,
            step=session.current_step if session else None,
            session_id=session.id if session else None,
            user_action=user_action,
        )
        if session is not None:
            session.remove_transient_entries()
            session.add_entry(
                MessageRole.SYSTEM,
                self.error_handler.format_error_for_user(context),
                error_type=context.type.value,
            )
        return CommandResult(session=session, error=context)

    # =========================================================================
    # Command handlers
    # =========================================================================

    async def _send_text(self, session: Session, data: dict[str, Any]):
        text = str(data.get("text") or "")
        return await self.engine.handle_text(session.id, text), None

    async def _confirm_step(self, session: Session, data: dict[str, Any]):
        return await self.engine.confirm_current_step(session.id), None

    async def _update_requirements(self, session: Session, data: dict[str, Any]):
        return await self.engine.update_requirements(session.id, data), None

    async def _apply_suggestion(self, session: Session, data: dict[str, Any]):
        suggestion_id = _get(data, "suggestion_id", "suggestionId")
        if not suggestion_id:
            raise InvalidRequestError("suggestion_id is required", field="suggestion_id")
        session = await self.engine.apply_suggestion(
            session.id, suggestion_id, data.get("modifications") or None
        )
        return session, None

    async def _reject_suggestion(self, session: Session, data: dict[str, Any]):
        suggestion_id = _get(data, "suggestion_id", "suggestionId")
        if not suggestion_id:
            raise InvalidRequestError("suggestion_id is required", field="suggestion_id")
        session = await self.engine.reject_suggestion(
            session.id, suggestion_id, data.get("reason") or None
        )
        return session, None

    async def _request_more_suggestions(self, session: Session, data: dict[str, Any]):
        category = data.get("category")
        try:
            focus = SuggestionCategory(category) if category else None
        except ValueError:
            raise InvalidRequestError(f"Unknown suggestion category '{category}'", field="category") from None
        more = await self.engine.request_more_suggestions(session.id, focus)
        return session, {"added_suggestions": [s.id for s in more]}

    async def _generate_tickets(self, session: Session, data: dict[str, Any]):
        tickets = await self.engine.generate_tickets(session.id)
        return session, {"total_tickets": tickets.total}

    async def _export_tickets(self, session: Session, data: dict[str, Any]):
        if session.tickets.total == 0:
            raise ExportError("no tickets have been generated yet")
        export_format = data.get("format") or self.preferred_export_format
        result = self.exporter.export(session.tickets, export_format)
        return session, {
            "export": {
                "filename": result.filename,
                "format": result.format.value,
                "media_type": result.media_type,
                "content": result.content,
            }
        }

    async def _restart_workflow(self, session: Session, data: dict[str, Any]):
        fresh = await self.engine.restart(session.id)
        return fresh, {"previous_session_id": session.id}

    async def _clear_session(self, session: Session, data: dict[str, Any]):
        await self.store.drop(session.id)
        logger.info("Session cleared")
        return None, {"cleared_session_id": session.id}

    async def _save_session(self, session: Session, data: dict[str, Any]):
        path = Path(data["path"]) if data.get("path") else self._default_session_path(session)
        payload = {"session": session.to_snapshot(), "cache": self.cache.export()}
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            raise ExportError(f"could not save session to {path}: {e}") from e

        logger.info("Session saved to file", path=str(path))
        return session, {"path": str(path)}

    async def _load_session(self, session: Optional[Session], data: dict[str, Any]):
        payload = data.get("data")
        source = "request"
        if payload is None:
            if not data.get("path"):
                raise InvalidRequestError("Either path or data is required", field="path")
            source = str(data["path"])
            payload = self._read_session_file(Path(source))

        snapshot = payload.get("session", payload) if isinstance(payload, dict) else payload
        restored = await self.engine.validate_and_restore_session(snapshot)

        imported = 0
        if isinstance(payload, dict) and isinstance(payload.get("cache"), dict):
            imported = self.cache.import_entries(payload["cache"])

        logger.info("Session loaded", source=source, session_id=restored.id, cache_entries=imported)
        return restored, {"loaded_from": source, "cache_entries": imported}

    @staticmethod
    def _read_session_file(path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise SessionError(f"Session file could not be read: {e}", details={"path": str(path)}) from e
        except json.JSONDecodeError as e:
            raise SessionError(
                f"Session file is not valid JSON: {e.msg}", details={"path": str(path)}
            ) from e

    def _default_session_path(self, session: Session) -> Path:
        timestamp = utc_now().strftime("%Y%m%dT%H%M%S")
        return self.sessions_directory / f"jira-planning-session-{session.id}-{timestamp}.json"
