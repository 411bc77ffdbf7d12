"""
Requirement processing: analysis text to structured requirements.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import Field

from jira_planner.core.constants import (
    CACHE_NAMESPACE_REQUIREMENTS,
    FALLBACK_TITLE_LENGTH,
    Complexity,
    Confidence,
    ModificationType,
    Priority,
    RequirementCategory,
)
from jira_planner.core.exceptions import InvalidRequestError
from jira_planner.core.identifiers import generate_id
from jira_planner.core.logging import get_logger
from jira_planner.domain.planning import (
    ClarificationRequest,
    EffortEstimate,
    PlanningModel,
    ProcessedRequirement,
    RequirementModification,
    RequirementState,
)
from jira_planner.orchestration.stages.base import PipelineStage
from jira_planner.orchestration.stages.parsing import Malformed
from jira_planner.repositories.cache_repo import make_cache_key

logger = get_logger(__name__)


class RequirementsPayload(PlanningModel):
    requirements: list[ProcessedRequirement] = Field(default_factory=list)
    clarifications: list[ClarificationRequest] = Field(default_factory=list)


@dataclass
class ValidationIssue:
    code: str
    message: str
    field: str
    severity: str
    requirement_id: Optional[str] = None


@dataclass
class ValidationResult:
    """Outcome of requirement validation."""

    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class RequirementProcessor(PipelineStage):
    """
    Turns a free-text analysis into a RequirementState.

    Always returns at least one requirement: when generation or parsing
    fails, a single synthetic requirement is derived from the raw input.
    """

    stage_name = "requirements"

    async def process_analysis(
        self,
        original_input: str,
        analysis: str,
        corrections: Optional[str] = None,
    ) -> RequirementState:
        """
        Extract structured requirements from an analysis of ``original_input``.

        Args:
            original_input: The user's raw requirement text
            analysis: Free-text analysis of that input
            corrections: User corrections to fold into a re-analysis
        """
        prompt = self._build_prompt(original_input, analysis, corrections)
        cache_key = make_cache_key(CACHE_NAMESPACE_REQUIREMENTS, original_input, analysis, corrections)

        result = await self._request_json(prompt, cache_key)
        if isinstance(result, Malformed):
            return self.create_fallback_requirements(original_input)

        payload = await self._validate_payload(result, RequirementsPayload, cache_key)
        if payload is None:
            return self.create_fallback_requirements(original_input)

        requirements = [req for req in payload.requirements if req.title.strip()]
        if not requirements:
            await self._reject(cache_key, "no requirements in response")
            return self.create_fallback_requirements(original_input)

        for req in requirements:
            if not req.id.strip():
                req.id = generate_id("req")
        for clarification in payload.clarifications:
            if not clarification.id.strip():
                clarification.id = generate_id("clar")

        logger.info(
            "Requirements extracted",
            requirements=len(requirements),
            clarifications=len(payload.clarifications),
            with_corrections=bool(corrections),
        )
        return RequirementState(
            original_input=original_input,
            processed_requirements=requirements,
            clarifications=[c for c in payload.clarifications if c.question.strip()],
        )

    def _build_prompt(
        self, original_input: str, analysis: str, corrections: Optional[str]
    ) -> str:
        corrections_block = (
            f"\nUser Corrections (these override the analysis where they conflict): {corrections}\n"
            if corrections
            else ""
        )
        return f"""As an expert business analyst and software architect, analyze the following AI-generated analysis and extract structured requirements:

Original Input: "{original_input}"
{corrections_block}
AI Analysis: {analysis}

Extract and structure the requirements in the following JSON format:
{{
  "requirements": [
    {{
      "id": "unique_id",
      "category": "epic|feature|user_story|task|bug|improvement|research",
      "title": "Clear, concise title",
      "description": "Detailed description",
      "priority": "critical|high|medium|low",
      "estimatedEffort": {{
        "storyPoints": number_or_null,
        "timeEstimate": "string_or_null",
        "complexity": "simple|medium|complex",
        "confidence": "low|medium|high"
      }},
      "dependencies": ["array_of_dependency_descriptions"],
      "acceptanceCriteria": ["array_of_acceptance_criteria"],
      "technicalNotes": ["array_of_technical_considerations"],
      "businessValue": "description_of_business_value",
      "risks": ["array_of_potential_risks"]
    }}
  ],
  "clarifications": [
    {{
      "id": "unique_id",
      "question": "Clear question",
      "context": "Context for the question",
      "suggestedAnswers": ["array_of_possible_answers"],
      "isRequired": true_or_false
    }}
  ]
}}

Be comprehensive but realistic. Break down complex requirements into manageable components. Provide thoughtful estimates and identify genuine risks and dependencies."""

    @staticmethod
    def create_fallback_requirements(original_input: str) -> RequirementState:
        """Single generic requirement derived from the raw input."""
        requirement = ProcessedRequirement(
            id=generate_id("req"),
            category=RequirementCategory.FEATURE,
            title=f"Main Feature: {original_input[:FALLBACK_TITLE_LENGTH]}...",
            description=original_input,
            priority=Priority.MEDIUM,
            estimated_effort=EffortEstimate(
                complexity=Complexity.MEDIUM,
                confidence=Confidence.LOW,
            ),
            acceptance_criteria=[
                "Functionality works as described",
                "User can successfully complete the task",
            ],
            technical_notes=["Implementation details to be determined"],
            business_value="Provides requested functionality to users",
            risks=["Requirements may need further clarification"],
        )
        clarification = ClarificationRequest(
            id=generate_id("clar"),
            question="Would you like to provide more specific details about the requirements?",
            context="The initial analysis could benefit from additional clarification",
            suggested_answers=[
                "Yes, let me provide more details",
                "No, proceed with current understanding",
            ],
            is_required=False,
        )
        return RequirementState(
            original_input=original_input,
            processed_requirements=[requirement],
            clarifications=[clarification],
        )

    # -------------------------------------------------------------------------
    # User edits
    # -------------------------------------------------------------------------

    def update_requirements(
        self, state: RequirementState, update: dict[str, Any]
    ) -> RequirementState:
        """
        Apply an add/modify/remove edit and log it.

        Args:
            state: Current requirement state (left untouched)
            update: ``{"type": "add"|"modify"|"remove", ...}``

        Returns:
            A new RequirementState with the edit and its modification record

        Raises:
            InvalidRequestError: unknown edit type, or missing target for modify/remove
        """
        edit_type = str(update.get("type", "")).lower()
        new_state = state.model_copy(deep=True)
        requirements = new_state.processed_requirements
        target_id = update.get("id")
        original_value = update.get("original_value", update.get("originalValue"))

        if edit_type == ModificationType.ADD.value:
            if not str(update.get("title") or "").strip():
                raise InvalidRequestError("A new requirement needs a title", field="title")
            fields = {
                key: value
                for key, value in update.items()
                if key not in ("type", "id", "reason", "original_value", "originalValue")
            }
            requirement = ProcessedRequirement.model_validate(
                {**fields, "id": generate_id("req")}
            )
            requirement.estimated_effort = EffortEstimate(
                complexity=Complexity.MEDIUM, confidence=Confidence.MEDIUM
            )
            requirements.append(requirement)
            target_id = requirement.id

        elif edit_type == ModificationType.MODIFY.value:
            current = new_state.find(target_id) if target_id else None
            if current is None:
                raise InvalidRequestError(f"Requirement '{target_id}' does not exist", field="id")
            changes = update.get("changes") or {}
            if original_value is None:
                original_value = current.model_dump(mode="json", include=set(changes) or None)
            merged = ProcessedRequirement.model_validate(
                {**current.model_dump(), **changes, "id": current.id}
            )
            requirements[requirements.index(current)] = merged

        elif edit_type == ModificationType.REMOVE.value:
            current = new_state.find(target_id) if target_id else None
            if current is None:
                raise InvalidRequestError(f"Requirement '{target_id}' does not exist", field="id")
            if original_value is None:
                original_value = current.title
            requirements.remove(current)

        else:
            raise InvalidRequestError(f"Unsupported requirement update type '{edit_type}'", field="type")

        new_state.modifications.append(
            RequirementModification(
                id=generate_id("mod"),
                type=ModificationType(edit_type),
                target=target_id or update.get("title") or "",
                original_value=original_value,
                new_value=update.get("description") or update.get("title") or update.get("changes"),
                reason=update.get("reason") or "User modification",
            )
        )
        logger.info("Requirements updated", edit=edit_type, target=target_id)
        return new_state

    @staticmethod
    def validate_requirements(requirements: list[ProcessedRequirement]) -> ValidationResult:
        """Check requirements for completeness."""
        result = ValidationResult()

        for req in requirements:
            if len(req.title.strip()) < 3:
                result.errors.append(
                    ValidationIssue(
                        code="TITLE_TOO_SHORT",
                        message="Requirement title must be at least 3 characters",
                        field="title",
                        severity="error",
                        requirement_id=req.id,
                    )
                )
            if len(req.description.strip()) < 10:
                result.errors.append(
                    ValidationIssue(
                        code="DESCRIPTION_TOO_SHORT",
                        message="Requirement description must be at least 10 characters",
                        field="description",
                        severity="error",
                        requirement_id=req.id,
                    )
                )
            if req.category == RequirementCategory.USER_STORY and not req.acceptance_criteria:
                result.warnings.append(
                    ValidationIssue(
                        code="MISSING_ACCEPTANCE_CRITERIA",
                        message="User stories should have acceptance criteria",
                        field="acceptance_criteria",
                        severity="warning",
                        requirement_id=req.id,
                    )
                )
            if req.priority in (Priority.CRITICAL, Priority.HIGH) and not req.estimated_effort.has_estimate:
                result.warnings.append(
                    ValidationIssue(
                        code="MISSING_EFFORT_ESTIMATE",
                        message="High-priority items should have effort estimates",
                        field="estimated_effort",
                        severity="warning",
                        requirement_id=req.id,
                    )
                )

        return result
