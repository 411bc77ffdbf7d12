"""
Planning session domain model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Optional

from pydantic import ConfigDict, Field

from jira_planner.core.constants import MessageRole, PlanningStep
from jira_planner.core.identifiers import generate_id, generate_session_id
from jira_planner.domain.planning import (
    PlanningModel,
    RequirementState,
    SuggestionState,
    TicketCollection,
    lenient_enum,
    utc_now,
)

# Keys a stored snapshot must carry to be restorable
REQUIRED_SNAPSHOT_FIELDS = ("id", "requirements", "conversation_history")


class ConversationEntry(PlanningModel):
    """A message in the planning transcript."""

    id: str = Field(default_factory=generate_id)
    timestamp: datetime = Field(default_factory=utc_now)
    role: Annotated[MessageRole, lenient_enum(MessageRole, MessageRole.SYSTEM)] = Field(
        ..., description="Role of the message author"
    )
    content: str = ""
    step: Annotated[
        PlanningStep, lenient_enum(PlanningStep, PlanningStep.INITIAL_UNDERSTANDING)
    ] = PlanningStep.INITIAL_UNDERSTANDING
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_transient(self) -> bool:
        return bool(self.metadata.get("is_transient"))


class Session(PlanningModel):
    """Complete mutable state of one planning conversation."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=generate_session_id)
    current_step: Annotated[
        PlanningStep, lenient_enum(PlanningStep, PlanningStep.INITIAL_UNDERSTANDING)
    ] = PlanningStep.INITIAL_UNDERSTANDING
    started_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    is_completed: bool = False
    confirmations: dict[str, bool] = Field(default_factory=dict)

    requirements: RequirementState = Field(default_factory=RequirementState)
    suggestions: SuggestionState = Field(default_factory=SuggestionState)
    tickets: TicketCollection = Field(default_factory=TicketCollection)
    conversation_history: list[ConversationEntry] = Field(default_factory=list)

    def touch(self) -> None:
        """Refresh the last-modified timestamp."""
        self.updated_at = utc_now()

    def add_entry(
        self,
        role: MessageRole,
        content: str,
        step: Optional[PlanningStep] = None,
        **metadata: Any,
    ) -> ConversationEntry:
        """Append a transcript entry tagged with the current step."""
        entry = ConversationEntry(
            role=role,
            content=content,
            step=step or self.current_step,
            metadata=metadata,
        )
        self.conversation_history.append(entry)
        self.touch()
        return entry

    def remove_transient_entries(self) -> int:
        """Drop 'processing' placeholders; returns how many were removed."""
        before = len(self.conversation_history)
        self.conversation_history = [
            entry for entry in self.conversation_history if not entry.is_transient
        ]
        removed = before - len(self.conversation_history)
        if removed:
            self.touch()
        return removed

    def to_snapshot(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict with ISO-8601 timestamps."""
        return self.model_dump(mode="json")

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> "Session":
        return cls.model_validate(data)

    @property
    def message_count(self) -> int:
        return len(self.conversation_history)

    @property
    def requirement_ids(self) -> list[str]:
        return [r.id for r in self.requirements.processed_requirements]
