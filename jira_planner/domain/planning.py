"""
Planning domain models: requirements, suggestions and tickets.

Models accept both snake_case field names and the camelCase keys the
generation service emits. Unknown enum text falls back to the field default.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Optional, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel

from jira_planner.core.constants import (
    TICKET_SUMMARY_MAX_LENGTH,
    Complexity,
    Confidence,
    LinkType,
    ModificationType,
    Priority,
    RequirementCategory,
    SuggestionAction,
    SuggestionCategory,
    TicketType,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize(text: str) -> str:
    return text.strip().lower().replace("-", "_").replace(" ", "_")


def lenient_enum(enum_cls: type[Enum], default: Enum) -> BeforeValidator:
    """Build a validator mapping free-form enum text onto ``enum_cls``, else ``default``."""

    def coerce(value: Any) -> Any:
        if isinstance(value, enum_cls):
            return value
        if isinstance(value, str):
            wanted = _normalize(value)
            for member in enum_cls:
                if wanted in (_normalize(member.value), member.name.lower()):
                    return member
        return default

    return BeforeValidator(coerce)


def _coerce_text(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _coerce_str_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple, set)):
        return [_coerce_text(item) for item in value if item is not None]
    return [_coerce_text(value)]


def _coerce_points(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _coerce_optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = _coerce_text(value).strip()
    return text or None


Text = Annotated[str, BeforeValidator(_coerce_text)]
OptionalText = Annotated[Optional[str], BeforeValidator(_coerce_optional_text)]
StrList = Annotated[list[str], BeforeValidator(_coerce_str_list)]

PriorityField = Annotated[Priority, lenient_enum(Priority, Priority.MEDIUM)]
ComplexityField = Annotated[Complexity, lenient_enum(Complexity, Complexity.MEDIUM)]
ConfidenceField = Annotated[Confidence, lenient_enum(Confidence, Confidence.MEDIUM)]


def _model_or_empty(value: Any) -> Any:
    return value if isinstance(value, (dict, BaseModel)) else {}


def _link_dicts(value: Any) -> Any:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, (dict, BaseModel))]


M = TypeVar("M", bound=BaseModel)

# Nested model that tolerates null or scalar payloads
Nested = Annotated[M, BeforeValidator(_model_or_empty)]


class PlanningModel(BaseModel):
    """Base for planning entities."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# Requirements
# =============================================================================


class EffortEstimate(PlanningModel):
    """Size estimate attached to requirements, suggestions and tickets."""

    complexity: ComplexityField = Complexity.MEDIUM
    confidence: ConfidenceField = Confidence.MEDIUM
    story_points: Annotated[Optional[int], BeforeValidator(_coerce_points)] = None
    time_estimate: OptionalText = None

    @property
    def has_estimate(self) -> bool:
        return bool(self.story_points) or bool(self.time_estimate)


class ProcessedRequirement(PlanningModel):
    """A structured requirement extracted from free text."""

    id: Text = ""
    category: Annotated[
        RequirementCategory,
        lenient_enum(RequirementCategory, RequirementCategory.FEATURE),
    ] = RequirementCategory.FEATURE
    title: Text = ""
    description: Text = ""
    priority: PriorityField = Priority.MEDIUM
    estimated_effort: Nested[EffortEstimate] = Field(default_factory=EffortEstimate)
    dependencies: StrList = Field(default_factory=list)
    acceptance_criteria: StrList = Field(default_factory=list)
    technical_notes: StrList = Field(default_factory=list)
    business_value: Text = ""
    risks: StrList = Field(default_factory=list)


class ClarificationRequest(PlanningModel):
    """A question the assistant asks about the requirements."""

    id: Text = ""
    question: Text = ""
    context: Text = ""
    suggested_answers: StrList = Field(default_factory=list)
    is_required: bool = False
    response: OptionalText = None


class RequirementModification(PlanningModel):
    """One entry of the append-only requirement edit log."""

    id: Text = ""
    timestamp: datetime = Field(default_factory=utc_now)
    type: Annotated[
        ModificationType, lenient_enum(ModificationType, ModificationType.MODIFY)
    ] = ModificationType.MODIFY
    target: Text = ""
    original_value: Optional[Any] = None
    new_value: Optional[Any] = None
    reason: Text = ""


class RequirementState(PlanningModel):
    """Everything the session knows about the user's requirements."""

    original_input: Text = ""
    processed_requirements: list[ProcessedRequirement] = Field(default_factory=list)
    clarifications: list[ClarificationRequest] = Field(default_factory=list)
    is_confirmed: bool = False
    modifications: list[RequirementModification] = Field(default_factory=list)

    def find(self, requirement_id: str) -> Optional[ProcessedRequirement]:
        for requirement in self.processed_requirements:
            if requirement.id == requirement_id:
                return requirement
        return None


# =============================================================================
# Suggestions
# =============================================================================


class ImpactAssessment(PlanningModel):
    effort: Nested[EffortEstimate] = Field(default_factory=EffortEstimate)
    benefits: StrList = Field(default_factory=list)
    risks: StrList = Field(default_factory=list)
    dependencies: StrList = Field(default_factory=list)
    timeline: Text = ""


class ImplementationDetails(PlanningModel):
    steps: StrList = Field(default_factory=list)
    resources: StrList = Field(default_factory=list)
    technologies: StrList = Field(default_factory=list)
    considerations: StrList = Field(default_factory=list)


class ProfessionalSuggestion(PlanningModel):
    """An improvement the assistant proposes on top of the requirements."""

    id: Text = ""
    category: Annotated[
        SuggestionCategory,
        lenient_enum(SuggestionCategory, SuggestionCategory.ARCHITECTURE),
    ] = SuggestionCategory.ARCHITECTURE
    title: Text = ""
    description: Text = ""
    reasoning: Text = ""
    priority: PriorityField = Priority.MEDIUM
    impact: Nested[ImpactAssessment] = Field(default_factory=ImpactAssessment)
    implementation: Nested[ImplementationDetails] = Field(default_factory=ImplementationDetails)
    applicable_requirements: StrList = Field(default_factory=list)


class SuggestionChoice(PlanningModel):
    """A user's accept/reject/modify decision on a suggestion."""

    suggestion_id: Text
    action: SuggestionAction
    modified_description: OptionalText = None
    reasoning: OptionalText = None
    timestamp: datetime = Field(default_factory=utc_now)


class SuggestionState(PlanningModel):
    suggestions: list[ProfessionalSuggestion] = Field(default_factory=list)
    applied_suggestions: list[str] = Field(default_factory=list)
    rejected_suggestions: list[str] = Field(default_factory=list)
    user_choices: list[SuggestionChoice] = Field(default_factory=list)

    def find(self, suggestion_id: str) -> Optional[ProfessionalSuggestion]:
        for suggestion in self.suggestions:
            if suggestion.id == suggestion_id:
                return suggestion
        return None

    @property
    def applied(self) -> list[ProfessionalSuggestion]:
        return [s for s in self.suggestions if s.id in self.applied_suggestions]


# =============================================================================
# Tickets
# =============================================================================


def truncate_summary(text: str) -> str:
    """Clamp a ticket summary to the tracker's length limit."""
    if len(text) > TICKET_SUMMARY_MAX_LENGTH:
        return text[: TICKET_SUMMARY_MAX_LENGTH - 3] + "..."
    return text


class TicketLink(PlanningModel):
    relation: Annotated[LinkType, lenient_enum(LinkType, LinkType.RELATES_TO)] = Field(
        default=LinkType.RELATES_TO,
        validation_alias=AliasChoices("relation", "type"),
    )
    target_ticket_id: Text = ""
    description: OptionalText = None


class Ticket(PlanningModel):
    """An issue-tracker ticket ready for export."""

    id: Text = ""
    type: Annotated[TicketType, lenient_enum(TicketType, TicketType.TASK)] = TicketType.TASK
    summary: Text = ""
    description: Text = ""
    priority: PriorityField = Priority.MEDIUM
    labels: StrList = Field(default_factory=list)
    components: StrList = Field(default_factory=list)
    custom_fields: dict[str, Any] = Field(default_factory=dict)
    parent_ticket: OptionalText = None
    linked_tickets: Annotated[list[TicketLink], BeforeValidator(_link_dicts)] = Field(default_factory=list)
    acceptance_criteria: StrList = Field(default_factory=list)
    estimated_effort: Nested[EffortEstimate] = Field(default_factory=EffortEstimate)
    assignee: OptionalText = None
    reporter: OptionalText = None

    @field_validator("summary")
    @classmethod
    def clamp_summary(cls, v: str) -> str:
        return truncate_summary(v)

    @field_validator("custom_fields", mode="before")
    @classmethod
    def dict_or_empty(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {}


class TicketCollection(PlanningModel):
    """Generated tickets grouped by kind."""

    epics: list[Ticket] = Field(default_factory=list)
    stories: list[Ticket] = Field(default_factory=list)
    tasks: list[Ticket] = Field(default_factory=list)
    bugs: list[Ticket] = Field(default_factory=list)

    def all_tickets(self) -> list[Ticket]:
        return [*self.epics, *self.stories, *self.tasks, *self.bugs]

    @property
    def total(self) -> int:
        return len(self.epics) + len(self.stories) + len(self.tasks) + len(self.bugs)
