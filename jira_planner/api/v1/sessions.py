"""
Planning session endpoints.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from jira_planner.api.deps import get_session_manager
from jira_planner.core.constants import PlannerCommand
from jira_planner.core.exceptions import SessionNotFoundError
from jira_planner.core.logging import get_logger
from jira_planner.services.session_manager import SessionManager

logger = get_logger(__name__)

router = APIRouter()


# Request/Response models
class CreateSessionRequest(BaseModel):
    """Request model for starting a planning session."""

    input: str = Field(..., description="Free-text project requirements", min_length=1)


class CommandRequest(BaseModel):
    """Request model for session commands."""

    command: PlannerCommand = Field(..., description="Command to run")
    data: dict[str, Any] = Field(default_factory=dict, description="Command arguments")


class LoadSessionRequest(BaseModel):
    """Request model for loading a saved session."""

    path: Optional[str] = Field(default=None, description="Path of a saved session file")
    data: Optional[dict[str, Any]] = Field(default=None, description="Saved session content")


class SessionSummary(BaseModel):
    id: str
    current_step: str
    is_completed: bool
    requirements: int
    tickets: int
    updated_at: str


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_session(
    request: CreateSessionRequest,
    session_manager: SessionManager = Depends(get_session_manager),
) -> dict[str, Any]:
    """
    Create a planning session and run the initial analysis.
    """
    logger.info("Creating planning session", input_length=len(request.input))

    result = await session_manager.create_session(request.input)
    return result.to_dict()


@router.get("/sessions", response_model=list[SessionSummary])
async def list_sessions(
    limit: int = 100,
    offset: int = 0,
    session_manager: SessionManager = Depends(get_session_manager),
) -> list[SessionSummary]:
    sessions = await session_manager.list_sessions(limit=limit, offset=offset)
    return [
        SessionSummary(
            id=s.id,
            current_step=s.current_step.value,
            is_completed=s.is_completed,
            requirements=len(s.requirements.processed_requirements),
            tickets=s.tickets.total,
            updated_at=s.updated_at.isoformat(),
        )
        for s in sessions
    ]


@router.post("/sessions/load")
async def load_session(
    request: LoadSessionRequest,
    session_manager: SessionManager = Depends(get_session_manager),
) -> dict[str, Any]:
    """
    Restore a saved session from a file path or inline content.
    """
    result = await session_manager.handle_command(
        None,
        PlannerCommand.LOAD_SESSION,
        request.model_dump(exclude_none=True),
    )
    return result.to_dict()


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    session_manager: SessionManager = Depends(get_session_manager),
) -> dict[str, Any]:
    """Get the full state of a planning session."""
    session = await session_manager.get_session(session_id)
    return session.to_snapshot()


@router.post("/sessions/{session_id}/commands")
async def run_command(
    session_id: str,
    request: CommandRequest,
    session_manager: SessionManager = Depends(get_session_manager),
) -> dict[str, Any]:
    """
    Dispatch a command to a planning session.

    Failures inside the command are reported in the ``error`` field with
    recovery options rather than as HTTP errors.
    """
    logger.info("Running session command", session_id=session_id, command=request.command.value)
    result = await session_manager.handle_command(session_id, request.command, request.data)
    return result.to_dict()


@router.delete("/sessions/{session_id}")
async def delete_session(
    session_id: str,
    session_manager: SessionManager = Depends(get_session_manager),
) -> dict[str, Any]:
    """Drop a planning session."""
    if not await session_manager.drop_session(session_id):
        raise SessionNotFoundError(session_id)
    return {"deleted": True, "session_id": session_id}
