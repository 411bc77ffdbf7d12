"""
Ticket generation from confirmed requirements and applied suggestions.
"""

import json
from collections.abc import Sequence

from jira_planner.core.constants import (
    CACHE_NAMESPACE_TICKETS,
    Complexity,
    Confidence,
    Priority,
    RequirementCategory,
    TicketType,
)
from jira_planner.core.identifiers import generate_id
from jira_planner.core.logging import get_logger
from jira_planner.domain.planning import (
    EffortEstimate,
    ProcessedRequirement,
    ProfessionalSuggestion,
    Ticket,
    TicketCollection,
    truncate_summary,
)
from jira_planner.orchestration.stages.base import PipelineStage
from jira_planner.orchestration.stages.parsing import Malformed
from jira_planner.repositories.cache_repo import make_cache_key

logger = get_logger(__name__)

# Requirement category -> (ticket type, collection attribute)
CATEGORY_TICKET_TYPES: dict[RequirementCategory, tuple[TicketType, str]] = {
    RequirementCategory.EPIC: (TicketType.EPIC, "epics"),
    RequirementCategory.FEATURE: (TicketType.STORY, "stories"),
    RequirementCategory.USER_STORY: (TicketType.STORY, "stories"),
    RequirementCategory.TASK: (TicketType.TASK, "tasks"),
    RequirementCategory.IMPROVEMENT: (TicketType.TASK, "tasks"),
    RequirementCategory.RESEARCH: (TicketType.TASK, "tasks"),
    RequirementCategory.BUG: (TicketType.BUG, "bugs"),
}

_LABEL_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("api",), "api"),
    (("database", "db"), "database"),
    (("ui", "interface"), "frontend"),
    (("security", "auth"), "security"),
    (("performance",), "performance"),
    (("test",), "testing"),
)

_COMPONENT_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("frontend", "ui", "interface"), "Frontend"),
    (("backend", "api", "server"), "Backend"),
    (("database", "db"), "Database"),
    (("auth", "security"), "Security"),
)


def _content(req: ProcessedRequirement) -> str:
    return f"{req.title} {req.description}".lower()


def _bullets(items: Sequence[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def format_ticket_description(req: ProcessedRequirement) -> str:
    """Render a requirement as a tracker description with wiki-style headings."""
    description = f"{req.description}\n\n"
    if req.business_value:
        description += f"*Business Value:*\n{req.business_value}\n\n"
    if req.technical_notes:
        description += f"*Technical Notes:*\n{_bullets(req.technical_notes)}\n\n"
    if req.dependencies:
        description += f"*Dependencies:*\n{_bullets(req.dependencies)}\n\n"
    if req.risks:
        description += f"*Risks:*\n{_bullets(req.risks)}\n\n"
    if req.acceptance_criteria:
        description += f"*Acceptance Criteria:*\n{_bullets(req.acceptance_criteria)}\n"
    return description


def derive_labels(req: ProcessedRequirement) -> list[str]:
    content = _content(req)
    labels = [req.category.value, req.priority.value, req.estimated_effort.complexity.value]
    labels.extend(label for words, label in _LABEL_KEYWORDS if any(w in content for w in words))
    return list(dict.fromkeys(labels))


def derive_components(req: ProcessedRequirement) -> list[str]:
    content = _content(req)
    components = [
        component
        for words, component in _COMPONENT_KEYWORDS
        if any(w in content for w in words)
    ]
    return components or ["Core"]


def create_ticket_from_requirement(
    req: ProcessedRequirement, ticket_type: TicketType
) -> Ticket:
    return Ticket(
        id=generate_id("ticket"),
        type=ticket_type,
        summary=truncate_summary(req.title),
        description=format_ticket_description(req),
        priority=req.priority,
        labels=derive_labels(req),
        components=derive_components(req),
        acceptance_criteria=list(req.acceptance_criteria),
        estimated_effort=req.estimated_effort.model_copy(),
    )


class TicketGenerator(PipelineStage):
    """Builds the ticket collection for a confirmed plan."""

    stage_name = "tickets"

    async def generate_tickets(
        self,
        requirements: list[ProcessedRequirement],
        applied_suggestion_ids: list[str],
        suggestions: Sequence[ProfessionalSuggestion] = (),
    ) -> TicketCollection:
        """
        Generate tickets for ``requirements``.

        Applied suggestions are described in the prompt so the model can add
        work items for them. Falls back to a deterministic mapping of
        requirements to tickets.
        """
        applied = [s for s in suggestions if s.id in applied_suggestion_ids]
        cache_key = make_cache_key(
            CACHE_NAMESPACE_TICKETS,
            [req.model_dump(mode="json") for req in requirements],
            sorted(applied_suggestion_ids),
        )

        result = await self._request_json(self._build_prompt(requirements, applied), cache_key)
        if isinstance(result, Malformed):
            return self.create_fallback_tickets(requirements)

        collection = await self._validate_payload(result, TicketCollection, cache_key)
        if collection is None:
            return self.create_fallback_tickets(requirements)
        if collection.total == 0:
            await self._reject(cache_key, "no tickets in response")
            return self.create_fallback_tickets(requirements)

        for ticket in collection.all_tickets():
            if not ticket.id.strip():
                ticket.id = generate_id("ticket")

        logger.info(
            "Tickets generated",
            epics=len(collection.epics),
            stories=len(collection.stories),
            tasks=len(collection.tasks),
            bugs=len(collection.bugs),
        )
        return collection

    def _build_prompt(
        self,
        requirements: list[ProcessedRequirement],
        applied: list[ProfessionalSuggestion],
    ) -> str:
        requirement_lines = "\n".join(
            f"""
- ID: {req.id}
- Title: {req.title}
- Category: {req.category.value}
- Priority: {req.priority.value}
- Description: {req.description}
- Acceptance Criteria: {'; '.join(req.acceptance_criteria)}
- Business Value: {req.business_value}
- Dependencies: {'; '.join(req.dependencies)}
- Estimated Effort: {json.dumps(req.estimated_effort.model_dump(mode="json", by_alias=True))}"""
            for req in requirements
        )
        suggestion_block = ""
        if applied:
            suggestion_lines = "\n".join(
                f"- {s.title} ({s.category.value}): {s.description}" for s in applied
            )
            suggestion_block = f"""
Applied Suggestions (include the work they imply):
{suggestion_lines}
"""

        return f"""As a project manager and Jira expert, create structured Jira tickets from the following requirements:

Requirements:
{requirement_lines}
{suggestion_block}
Create Jira tickets in the following JSON format:
{{
  "epics": [],
  "stories": [],
  "tasks": [],
  "bugs": []
}}

Each ticket should have:
{{
  "id": "unique_id",
  "type": "Epic|Story|Task|Sub-task|Bug|Improvement",
  "summary": "Clear, concise summary (max 100 chars)",
  "description": "Detailed description with acceptance criteria",
  "priority": "critical|high|medium|low",
  "labels": ["array_of_relevant_labels"],
  "components": ["array_of_component_names"],
  "customFields": {{}},
  "parentTicket": "parent_ticket_id_if_applicable",
  "linkedTickets": [
    {{
      "type": "blocks|is blocked by|relates to|depends on",
      "targetTicketId": "target_ticket_id",
      "description": "relationship_description"
    }}
  ],
  "acceptanceCriteria": ["array_of_acceptance_criteria"],
  "estimatedEffort": {{
    "storyPoints": number_or_null,
    "timeEstimate": "string_or_null",
    "complexity": "simple|medium|complex",
    "confidence": "low|medium|high"
  }}
}}

Guidelines:
1. Create Epic tickets for high-level business objectives
2. Break down Epics into Stories for user-facing features
3. Create Tasks for technical work and infrastructure
4. Establish proper parent-child relationships
5. Add meaningful labels and components
6. Include clear acceptance criteria
7. Set appropriate priorities and estimates"""

    @staticmethod
    def create_fallback_tickets(requirements: list[ProcessedRequirement]) -> TicketCollection:
        """
        Map requirements onto tickets by category.

        When no requirement is an epic, a "Project Implementation" epic is
        added and every parentless story and task is attached to it.
        """
        collection = TicketCollection()
        for req in requirements:
            ticket_type, bucket = CATEGORY_TICKET_TYPES[req.category]
            getattr(collection, bucket).append(create_ticket_from_requirement(req, ticket_type))

        if not collection.epics and (collection.stories or collection.tasks):
            container = Ticket(
                id=generate_id("ticket"),
                type=TicketType.EPIC,
                summary="Project Implementation",
                description="Main epic for project implementation",
                priority=Priority.HIGH,
                labels=["project", "implementation"],
                components=["Core"],
                acceptance_criteria=["All project requirements are implemented"],
                estimated_effort=EffortEstimate(
                    complexity=Complexity.COMPLEX, confidence=Confidence.MEDIUM
                ),
            )
            collection.epics.append(container)
            for ticket in [*collection.stories, *collection.tasks]:
                if not ticket.parent_ticket:
                    ticket.parent_ticket = container.id

        logger.info("Fallback tickets built", total=collection.total)
        return collection
