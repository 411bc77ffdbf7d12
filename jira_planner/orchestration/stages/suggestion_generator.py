"""
Professional suggestion generation.
"""

from typing import Optional

from pydantic import Field

from jira_planner.core.constants import (
    CACHE_NAMESPACE_MORE_SUGGESTIONS,
    CACHE_NAMESPACE_SUGGESTIONS,
    Complexity,
    Confidence,
    Priority,
    SuggestionCategory,
)
from jira_planner.core.identifiers import generate_id
from jira_planner.core.logging import get_logger
from jira_planner.domain.planning import (
    EffortEstimate,
    ImpactAssessment,
    ImplementationDetails,
    PlanningModel,
    ProcessedRequirement,
    ProfessionalSuggestion,
    SuggestionState,
)
from jira_planner.orchestration.stages.base import PipelineStage
from jira_planner.orchestration.stages.parsing import Malformed
from jira_planner.repositories.cache_repo import make_cache_key

logger = get_logger(__name__)


class SuggestionsPayload(PlanningModel):
    suggestions: list[ProfessionalSuggestion] = Field(default_factory=list)


def _describe_requirements(requirements: list[ProcessedRequirement]) -> str:
    return "\n".join(
        f"""
- {req.title} ({req.category.value}, {req.priority.value})
  Description: {req.description}
  Business Value: {req.business_value}
  Technical Notes: {', '.join(req.technical_notes)}
  Risks: {', '.join(req.risks)}"""
        for req in requirements
    )


class SuggestionGenerator(PipelineStage):
    """Proposes improvements on top of confirmed requirements."""

    stage_name = "suggestions"

    def __init__(self, *args, max_more_suggestions: int = 3, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.max_more_suggestions = max_more_suggestions

    async def generate_suggestions(
        self, requirements: list[ProcessedRequirement]
    ) -> SuggestionState:
        """
        Generate 3-5 suggestions for ``requirements``.

        Falls back to three fixed suggestions (testing, security,
        documentation) applicable to every requirement.
        """
        cache_key = make_cache_key(
            CACHE_NAMESPACE_SUGGESTIONS,
            [req.model_dump(mode="json") for req in requirements],
        )
        result = await self._request_json(self._build_prompt(requirements), cache_key)
        if isinstance(result, Malformed):
            return self.create_fallback_suggestions(requirements)

        payload = await self._validate_payload(result, SuggestionsPayload, cache_key)
        suggestions = self._finalize(payload.suggestions) if payload else []
        if not suggestions:
            if payload is not None:
                await self._reject(cache_key, "no suggestions in response")
            return self.create_fallback_suggestions(requirements)

        logger.info("Suggestions generated", count=len(suggestions))
        return SuggestionState(suggestions=suggestions)

    async def generate_more_suggestions(
        self,
        requirements: list[ProcessedRequirement],
        existing: list[ProfessionalSuggestion],
        category: Optional[SuggestionCategory] = None,
    ) -> list[ProfessionalSuggestion]:
        """
        Ask for additional suggestions that do not repeat ``existing`` titles.

        Returns an empty list on any failure.
        """
        existing_titles = [s.title for s in existing]
        cache_key = make_cache_key(
            CACHE_NAMESPACE_MORE_SUGGESTIONS,
            [req.id for req in requirements],
            existing_titles,
            category.value if category else None,
        )
        category_filter = f"Focus specifically on {category.value} suggestions." if category else ""
        requirement_lines = "\n".join(f"- {req.title}: {req.description}" for req in requirements)
        prompt = f"""Generate additional professional suggestions for the given requirements.
{category_filter}

Existing suggestions to avoid duplicating:
{', '.join(existing_titles)}

Requirements:
{requirement_lines}

Provide 2-{self.max_more_suggestions} new, different suggestions in this JSON format:
{{"suggestions": [{{"id": "unique_id", "category": "category", "title": "title", "description": "description", "reasoning": "reasoning", "priority": "critical|high|medium|low", "impact": {{}}, "implementation": {{}}, "applicableRequirements": []}}]}}"""

        result = await self._request_json(prompt, cache_key)
        if isinstance(result, Malformed):
            return []

        payload = await self._validate_payload(result, SuggestionsPayload, cache_key)
        if payload is None:
            return []

        seen = {title.strip().lower() for title in existing_titles}
        fresh: list[ProfessionalSuggestion] = []
        for suggestion in self._finalize(payload.suggestions):
            key = suggestion.title.strip().lower()
            if key in seen:
                logger.debug("Dropping duplicate suggestion", title=suggestion.title)
                continue
            seen.add(key)
            fresh.append(suggestion)

        return fresh[: self.max_more_suggestions]

    @staticmethod
    def _finalize(suggestions: list[ProfessionalSuggestion]) -> list[ProfessionalSuggestion]:
        kept = [s for s in suggestions if s.title.strip()]
        for suggestion in kept:
            if not suggestion.id.strip():
                suggestion.id = generate_id("sug")
        return kept

    def _build_prompt(self, requirements: list[ProcessedRequirement]) -> str:
        return f"""As a senior software architect and engineering manager, analyze the following requirements and provide professional suggestions for improvement:

Requirements:
{_describe_requirements(requirements)}

Provide suggestions in the following JSON format:
{{
  "suggestions": [
    {{
      "id": "unique_id",
      "category": "architecture|security|performance|user_experience|testing|devops|documentation|accessibility|scalability|maintainability",
      "title": "Clear, actionable title",
      "description": "Detailed description of the suggestion",
      "reasoning": "Why this suggestion is valuable",
      "priority": "critical|high|medium|low",
      "impact": {{
        "effort": {{
          "complexity": "simple|medium|complex",
          "confidence": "low|medium|high",
          "timeEstimate": "estimated_time"
        }},
        "benefits": ["array_of_benefits"],
        "risks": ["array_of_risks"],
        "dependencies": ["array_of_dependencies"],
        "timeline": "suggested_timeline"
      }},
      "implementation": {{
        "steps": ["array_of_implementation_steps"],
        "resources": ["array_of_required_resources"],
        "technologies": ["array_of_technologies"],
        "considerations": ["array_of_considerations"]
      }},
      "applicableRequirements": ["array_of_requirement_ids"]
    }}
  ]
}}

Focus on:
1. Architecture improvements (scalability, maintainability, modularity)
2. Security considerations (authentication, authorization, data protection)
3. Performance optimizations (caching, database, API efficiency)
4. User experience enhancements (accessibility, usability, responsiveness)
5. Testing strategies (unit, integration, end-to-end testing)
6. DevOps improvements (CI/CD, monitoring, deployment)
7. Documentation needs (API docs, user guides, technical specs)

Provide 3-5 high-value suggestions that would genuinely improve the project."""

    @staticmethod
    def create_fallback_suggestions(
        requirements: list[ProcessedRequirement],
    ) -> SuggestionState:
        """Testing, security and documentation suggestions covering every requirement."""
        requirement_ids = [req.id for req in requirements]

        testing = ProfessionalSuggestion(
            id=generate_id("sug"),
            category=SuggestionCategory.TESTING,
            title="Implement Comprehensive Testing Strategy",
            description="Add unit tests, integration tests, and end-to-end testing to ensure code quality and reliability.",
            reasoning="Testing is crucial for maintaining code quality and preventing regressions as the project grows.",
            priority=Priority.HIGH,
            impact=ImpactAssessment(
                effort=EffortEstimate(
                    complexity=Complexity.MEDIUM,
                    confidence=Confidence.HIGH,
                    time_estimate="1-2 weeks",
                ),
                benefits=["Improved code quality", "Faster debugging", "Reduced production bugs"],
                risks=["Initial setup time", "Learning curve for team"],
                dependencies=["Testing framework selection", "CI/CD pipeline setup"],
                timeline="Should be implemented early in development",
            ),
            implementation=ImplementationDetails(
                steps=["Choose testing framework", "Set up testing environment", "Write initial tests", "Integrate with CI/CD"],
                resources=["Testing tools", "Developer time", "Test data"],
                technologies=["Jest", "Cypress", "Testing Library"],
                considerations=["Test coverage goals", "Performance impact", "Maintenance overhead"],
            ),
            applicable_requirements=list(requirement_ids),
        )

        security = ProfessionalSuggestion(
            id=generate_id("sug"),
            category=SuggestionCategory.SECURITY,
            title="Implement Security Best Practices",
            description="Add authentication, authorization, input validation, and data encryption to protect user data.",
            reasoning="Security should be built-in from the start to protect user data and prevent vulnerabilities.",
            priority=Priority.CRITICAL,
            impact=ImpactAssessment(
                effort=EffortEstimate(
                    complexity=Complexity.COMPLEX,
                    confidence=Confidence.MEDIUM,
                    time_estimate="2-3 weeks",
                ),
                benefits=["Data protection", "Compliance readiness", "User trust"],
                risks=["Implementation complexity", "Performance overhead"],
                dependencies=["Security framework selection", "Compliance requirements"],
                timeline="Must be implemented before production deployment",
            ),
            implementation=ImplementationDetails(
                steps=["Security audit", "Choose security framework", "Implement authentication", "Add encryption"],
                resources=["Security expertise", "SSL certificates", "Security tools"],
                technologies=["OAuth 2.0", "JWT", "bcrypt", "HTTPS"],
                considerations=["Performance impact", "User experience", "Compliance requirements"],
            ),
            applicable_requirements=list(requirement_ids),
        )

        documentation = ProfessionalSuggestion(
            id=generate_id("sug"),
            category=SuggestionCategory.DOCUMENTATION,
            title="Create Comprehensive Documentation",
            description="Develop user guides, API documentation, and technical specifications for better project understanding.",
            reasoning="Good documentation improves team productivity and makes the project more maintainable.",
            priority=Priority.MEDIUM,
            impact=ImpactAssessment(
                effort=EffortEstimate(
                    complexity=Complexity.SIMPLE,
                    confidence=Confidence.HIGH,
                    time_estimate="1 week",
                ),
                benefits=["Better team collaboration", "Easier onboarding", "Reduced support burden"],
                risks=["Documentation maintenance overhead"],
                dependencies=["Documentation platform selection"],
                timeline="Should be maintained throughout development",
            ),
            implementation=ImplementationDetails(
                steps=["Choose documentation platform", "Create templates", "Write initial docs", "Set up auto-generation"],
                resources=["Technical writer", "Documentation tools", "Time allocation"],
                technologies=["Markdown", "GitBook", "Swagger", "JSDoc"],
                considerations=["Maintenance process", "Version control", "Accessibility"],
            ),
            applicable_requirements=list(requirement_ids),
        )

        return SuggestionState(suggestions=[testing, security, documentation])
