"""
Session store for live planning sessions.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from jira_planner.core.exceptions import InvalidRequestError, SessionError, SessionNotFoundError
from jira_planner.core.logging import get_logger
from jira_planner.domain.session import REQUIRED_SNAPSHOT_FIELDS, Session

logger = get_logger(__name__)


def check_snapshot(snapshot: Any) -> None:
    """
    Ensure a snapshot carries the keys needed to rebuild a session.

    Raises:
        SessionError: when id, requirements or the transcript is absent
    """
    if not isinstance(snapshot, dict):
        raise SessionError(
            "Session data is not an object", details={"type": type(snapshot).__name__}
        )

    missing = [name for name in REQUIRED_SNAPSHOT_FIELDS if snapshot.get(name) in (None, "")]
    if missing:
        raise SessionError(
            f"Session data is missing required fields: {', '.join(missing)}",
            details={"missing": missing},
        )


class SessionStore:
    """
    In-memory store owning every live session.

    One instance is created by the service container and passed to the
    components that need it.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(self, raw_input: str = "") -> Session:
        """Create and register an empty session for ``raw_input``."""
        session = Session()
        session.requirements.original_input = raw_input
        self._sessions[session.id] = session
        logger.debug("Session created", session_id=session.id)
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        """Get a session by ID."""
        return self._sessions.get(session_id)

    async def require(self, session_id: str) -> Session:
        """Get a session by ID or raise SessionNotFoundError."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def save(self, session: Session) -> Session:
        """Register or replace a session."""
        session.touch()
        self._sessions[session.id] = session
        logger.debug("Session saved", session_id=session.id)
        return session

    def register(self, session: Session) -> Session:
        """Register a session as-is, keeping its timestamps."""
        self._sessions[session.id] = session
        return session

    async def update(self, session_id: str, changes: dict[str, Any]) -> Session:
        """
        Merge top-level fields into a stored session.

        Values are validated on assignment, so raw enum text and plain
        dicts become typed fields. Last writer wins; ``updated_at`` is
        refreshed.

        Raises:
            InvalidRequestError: when a value does not fit its field
        """
        session = await self.require(session_id)
        for field_name, value in changes.items():
            if field_name not in Session.model_fields:
                logger.warning("Ignoring unknown session field", field=field_name)
                continue
            try:
                setattr(session, field_name, value)
            except PydanticValidationError as e:
                raise InvalidRequestError(
                    f"Invalid value for session field '{field_name}': {e.errors()[0]['msg']}",
                    field=field_name,
                ) from e
        session.touch()
        return session

    async def drop(self, session_id: str) -> bool:
        """Delete a session by ID."""
        if session_id in self._sessions:
            del self._sessions[session_id]
            logger.debug("Session dropped", session_id=session_id)
            return True
        return False

    async def list(self, limit: int = 100, offset: int = 0) -> list[Session]:
        """List sessions, most recently started first."""
        sessions = sorted(self._sessions.values(), key=lambda s: s.started_at, reverse=True)
        return sessions[offset : offset + limit]

    async def exists(self, session_id: str) -> bool:
        return session_id in self._sessions

    async def restore(
        self,
        snapshot: dict[str, Any],
        recover: Optional[Callable[[dict[str, Any]], Session]] = None,
    ) -> Session:
        """
        Rebuild a session from a snapshot and register it.

        Only the mandatory top-level keys are checked. When ``recover`` is
        given it builds the session, repairing corrupt nested data instead
        of rejecting it.

        Raises:
            SessionError: when the snapshot lacks id, requirements or
                transcript, or cannot be rebuilt without ``recover``
        """
        check_snapshot(snapshot)

        if recover is not None:
            session = recover(snapshot)
        else:
            try:
                session = Session.from_snapshot(snapshot)
            except PydanticValidationError as e:
                raise SessionError(
                    "Session data could not be restored",
                    details={"errors": e.errors(include_url=False, include_context=False)},
                ) from e

        self.register(session)
        logger.info("Session restored", session_id=session.id, step=session.current_step.value)
        return session
