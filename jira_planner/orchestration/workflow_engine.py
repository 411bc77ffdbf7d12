"""
Workflow engine for planning sessions.

Drives a Session through the fixed step order, running the handler for each
step and folding user edits back into the session.
"""

import re
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Optional

from pydantic import ValidationError as PydanticValidationError

from jira_planner.core.constants import (
    CACHE_NAMESPACE_ANALYSIS,
    CACHE_NAMESPACE_CONFIRMATION,
    CONFIRMATION_REQUIRED_STEPS,
    PROCESSING_MESSAGE,
    MessageRole,
    PlanningStep,
    SuggestionAction,
    SuggestionCategory,
)
from jira_planner.core.exceptions import InvalidRequestError, ParsingError
from jira_planner.core.logging import get_logger
from jira_planner.domain.planning import (
    PlanningModel,
    ProfessionalSuggestion,
    SuggestionChoice,
    TicketCollection,
    utc_now,
)
from jira_planner.domain.session import Session
from jira_planner.orchestration.stages.parsing import Malformed, extract_json_object
from jira_planner.orchestration.stages.requirement_processor import RequirementProcessor
from jira_planner.orchestration.stages.suggestion_generator import SuggestionGenerator
from jira_planner.orchestration.stages.ticket_generator import (
    CATEGORY_TICKET_TYPES,
    TicketGenerator,
)
from jira_planner.orchestration.state_machine import (
    StateMachine,
    create_planning_state_machine,
    get_next_step,
)
from jira_planner.repositories.cache_repo import make_cache_key
from jira_planner.repositories.session_repo import SessionStore
from jira_planner.resilience.error_handler import ErrorHandler

if TYPE_CHECKING:
    from jira_planner.services.generation_gateway import GenerationGateway

logger = get_logger(__name__)

_NEGATIVE_MARKERS = (
    "no", "not", "nope", "but", "change", "add", "remove", "missing",
    "instead", "wrong", "incorrect", "however", "except", "should",
)
_POSITIVE_MARKERS = (
    "yes", "yep", "yeah", "correct", "looks good", "sounds good", "confirm",
    "confirmed", "proceed", "ok", "okay", "lgtm", "approve", "go ahead", "perfect",
)

_STEP_HINTS = {
    PlanningStep.SUGGESTION_REVIEW: "Accept or reject the suggestions above, then confirm to plan the ticket structure.",
    PlanningStep.STRUCTURE_PLANNING: "Confirm the structure to generate tickets, or update the requirements first.",
    PlanningStep.TICKET_GENERATION: "Export the tickets or confirm to move on to the final review.",
    PlanningStep.FINAL_REVIEW: "Export the tickets, save the session, or confirm to finish planning.",
    PlanningStep.COMPLETED: "Planning is complete. Restart to plan again from the same input.",
}


class ConfirmationVerdict(PlanningModel):
    confirmed: bool = False
    corrections: str = ""


def looks_like_confirmation(text: str) -> bool:
    """Keyword fallback for classifying a confirmation reply."""
    lowered = text.lower()
    words = set(re.findall(r"[a-z']+", lowered))
    if any(marker in words for marker in _NEGATIVE_MARKERS):
        return False
    return any(
        (marker in words) if " " not in marker else (marker in lowered)
        for marker in _POSITIVE_MARKERS
    )


class PlanningWorkflowEngine:
    """
    Main planning workflow engine.
    Owns step progression and runs step handlers against the session store.
    """

    def __init__(
        self,
        store: SessionStore,
        gateway: "GenerationGateway",
        requirement_processor: RequirementProcessor,
        suggestion_generator: SuggestionGenerator,
        ticket_generator: TicketGenerator,
        error_handler: Optional[ErrorHandler] = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.requirement_processor = requirement_processor
        self.suggestion_generator = suggestion_generator
        self.ticket_generator = ticket_generator
        self.error_handler = error_handler
        self.state_machine: StateMachine = create_planning_state_machine()

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    async def initialize_session(self, raw_input: str) -> Session:
        """Create a session at the first step, seeded with ``raw_input``."""
        session = await self.store.create(raw_input)
        if raw_input.strip():
            session.add_entry(MessageRole.USER, raw_input)
        logger.info("Planning session initialized", session_id=session.id)
        return session

    async def start(self, session_id: str) -> Session:
        """Run the handler for the session's current step."""
        session = await self.store.require(session_id)
        await self.process_current_step(session)
        return session

    async def confirm_current_step(self, session_id: str) -> Session:
        """
        Confirm the current step and advance to the next one.

        Reaching COMPLETED marks the session completed. Confirming a
        completed session changes nothing.
        """
        session = await self.store.require(session_id)
        current = session.current_step
        next_step = get_next_step(current)
        if next_step is None:
            logger.debug("Confirm ignored on completed session", session_id=session_id)
            return session

        session.confirmations[current.value] = True
        if current == PlanningStep.REQUIREMENT_CONFIRMATION:
            session.requirements.is_confirmed = True

        self._advance(session, next_step)
        await self.process_current_step(session)
        return session

    async def update_session(self, session_id: str, changes: dict[str, Any]) -> Session:
        return await self.store.update(session_id, changes)

    async def validate_and_restore_session(self, snapshot: dict[str, Any]) -> Session:
        """
        Restore a saved session and register it.

        Corrupt nested data is repaired by the error handler when one is
        wired in.

        Raises:
            SessionError: when id, requirements or the transcript is missing
        """
        recover = None
        if self.error_handler is not None:
            recover = self.error_handler.validate_and_recover_session
        return await self.store.restore(snapshot, recover=recover)

    async def restart(self, session_id: str) -> Session:
        """Replace the session with a fresh one built from the same input."""
        session = await self.store.require(session_id)
        original_input = session.requirements.original_input
        await self.store.drop(session_id)

        fresh = await self.initialize_session(original_input)
        logger.info("Planning session restarted", old_session_id=session_id, session_id=fresh.id)
        await self.process_current_step(fresh)
        return fresh

    def _advance(self, session: Session, next_step: PlanningStep) -> None:
        self.state_machine.validate_transition(session.current_step.value, next_step.value)
        logger.info(
            "Step advanced",
            session_id=session.id,
            from_step=session.current_step.value,
            to_step=next_step.value,
        )
        session.current_step = next_step
        if self.state_machine.is_final(next_step.value):
            session.is_completed = True
            session.add_entry(MessageRole.SYSTEM, "Planning session completed.")
        session.touch()

    # =========================================================================
    # Step handlers
    # =========================================================================

    async def process_current_step(self, session: Session) -> None:
        handlers = {
            PlanningStep.INITIAL_UNDERSTANDING: self._process_initial_understanding,
            PlanningStep.REQUIREMENT_CONFIRMATION: self._process_requirement_confirmation,
            PlanningStep.SUGGESTION_REVIEW: self._process_suggestion_review,
            PlanningStep.STRUCTURE_PLANNING: self._process_structure_planning,
            PlanningStep.TICKET_GENERATION: self._process_ticket_generation,
            PlanningStep.FINAL_REVIEW: self._process_final_review,
        }
        handler = handlers.get(session.current_step)
        if handler is not None:
            await handler(session)

    async def _process_initial_understanding(self, session: Session) -> None:
        if not session.requirements.original_input.strip():
            session.add_entry(
                MessageRole.ASSISTANT,
                "Describe the project or feature you want to plan and I will break it down.",
            )
            return

        with self._processing(session):
            await self._analyze_requirements(session)
            self._advance(session, PlanningStep.REQUIREMENT_CONFIRMATION)
        await self._process_requirement_confirmation(session)

    async def _process_requirement_confirmation(self, session: Session) -> None:
        if not session.requirements.processed_requirements:
            with self._processing(session):
                await self._analyze_requirements(session)

        self._add_step_message(
            session,
            "Based on the analysis, I've identified the following key requirements:\n\n"
            f"{self.format_requirements(session)}\n\n"
            "Please review this understanding. Are there any missing requirements, "
            "or should anything be modified?",
        )

    async def _process_suggestion_review(self, session: Session) -> None:
        with self._processing(session):
            session.suggestions = await self.suggestion_generator.generate_suggestions(
                session.requirements.processed_requirements
            )
        self._add_step_message(
            session,
            "Based on your requirements, I have some professional suggestions to enhance your project:\n\n"
            f"{self.format_suggestions(session.suggestions.suggestions)}\n\n"
            "Please review and decide whether to accept, reject, or modify each suggestion.",
            suggestions_provided=len(session.suggestions.suggestions),
        )

    async def _process_structure_planning(self, session: Session) -> None:
        self._add_step_message(
            session,
            "Now let's plan the Jira ticket structure. Based on your confirmed requirements "
            "and accepted suggestions, I recommend organizing the work as follows:\n\n"
            f"{self.format_structure_plan(session)}\n\n"
            "This structure includes:\n"
            "- Epics: High-level business objectives\n"
            "- Stories: User-facing features and capabilities\n"
            "- Tasks: Technical implementation work\n"
            "- Bugs: Defects to fix\n\n"
            "Does this structure work for your team? Any adjustments needed before we "
            "generate the actual tickets?",
        )

    async def _process_ticket_generation(self, session: Session) -> None:
        with self._processing(session):
            session.tickets = await self._build_tickets(session)
        self._add_step_message(
            session,
            f"I've generated {session.tickets.total} Jira tickets, organized as follows:\n\n"
            f"{self.format_tickets(session.tickets)}\n\n"
            "Ready to export these tickets?",
        )

    async def _process_final_review(self, session: Session) -> None:
        self._add_step_message(session, self.format_final_review(session))

    def _add_step_message(self, session: Session, content: str, **metadata: Any) -> None:
        session.add_entry(
            MessageRole.ASSISTANT,
            content,
            confirmation_required=session.current_step in CONFIRMATION_REQUIRED_STEPS,
            **metadata,
        )

    @contextmanager
    def _processing(self, session: Session) -> Iterator[None]:
        """Show a transient 'processing' entry while a handler waits on generation."""
        session.add_entry(MessageRole.SYSTEM, PROCESSING_MESSAGE, is_transient=True)
        try:
            yield
        finally:
            session.remove_transient_entries()

    # =========================================================================
    # Requirement analysis
    # =========================================================================

    async def _analyze_requirements(
        self, session: Session, corrections: Optional[str] = None
    ) -> None:
        """
        Analyze the original input and extract structured requirements.

        When the analysis call fails the raw input stands in for the
        analysis, so extraction still runs.
        """
        original_input = session.requirements.original_input
        degraded: list[Exception] = []

        def on_degraded(operation: str, error: Exception) -> None:
            degraded.append(error)
            self._record_error(error, session, user_action=operation)

        async def fallback_analysis() -> str:
            return original_input

        analysis = await self.gateway.retry_executor.with_fallback(
            lambda: self.gateway.generate(
                self._build_analysis_prompt(original_input, corrections),
                cache_key=make_cache_key(CACHE_NAMESPACE_ANALYSIS, original_input, corrections),
                op_id=f"analysis:{session.id}",
            ),
            fallback_analysis,
            operation_name="requirement_analysis",
            on_degraded=on_degraded,
        )

        if degraded:
            session.add_entry(
                MessageRole.SYSTEM,
                "The AI service is unavailable, so the plan is built from your input directly. "
                "Review it carefully.",
                degraded=True,
            )
        else:
            session.add_entry(MessageRole.ASSISTANT, analysis, analysis=True)

        session.requirements = await self.requirement_processor.process_analysis(
            original_input, analysis, corrections
        )
        session.touch()

    @staticmethod
    def _build_analysis_prompt(original_input: str, corrections: Optional[str]) -> str:
        corrections_block = (
            f"\nThe user reviewed a previous breakdown and asked for these corrections:\n\"{corrections}\"\n"
            if corrections
            else ""
        )
        return f"""As an expert software architect and project manager, analyze the following requirements:

"{original_input}"
{corrections_block}
Provide a comprehensive understanding that includes:

1. Core Business Objectives: What is the main business value and purpose?
2. Functional Requirements: What specific features and capabilities are needed?
3. Technical Considerations: What technologies, integrations, or technical constraints should be considered?
4. User Stories: Break down into potential user stories or use cases
5. Dependencies: What external systems, APIs, or components might be involved?
6. Risk Assessment: What are potential challenges or risks?
7. Success Criteria: How will we know this is successful?

Format your response in clear sections with actionable insights. Be specific and professional."""

    # =========================================================================
    # Free text
    # =========================================================================

    async def handle_text(self, session_id: str, text: str) -> Session:
        """
        Route free text according to the current step.

        In the first step it is the requirement input, during requirement
        confirmation it is a confirmation reply, and later it is only
        recorded.
        """
        if not text.strip():
            raise InvalidRequestError("Message text must not be empty", field="text")

        session = await self.store.require(session_id)
        if session.current_step == PlanningStep.INITIAL_UNDERSTANDING:
            await self.handle_requirement_input(session, text)
        elif session.current_step == PlanningStep.REQUIREMENT_CONFIRMATION:
            await self.handle_confirmation_response(session, text)
        else:
            session.add_entry(MessageRole.USER, text)
            session.add_entry(MessageRole.ASSISTANT, _STEP_HINTS[session.current_step])
        return session

    async def handle_requirement_input(self, session: Session, text: str) -> None:
        """Use ``text`` as the requirement input and run the analysis."""
        session.add_entry(MessageRole.USER, text)
        session.requirements.original_input = text
        await self._process_initial_understanding(session)

    async def handle_confirmation_response(self, session: Session, text: str) -> None:
        """
        Interpret a reply to the requirement confirmation.

        A confirmation advances the workflow. Anything else re-runs the
        requirement analysis with the reply folded in as corrections.
        """
        session.add_entry(MessageRole.USER, text)

        with self._processing(session):
            verdict = await self._classify_confirmation(session, text)

            if not verdict.confirmed:
                corrections = verdict.corrections.strip() or text
                session.add_entry(
                    MessageRole.ASSISTANT,
                    f'Understood. I will revise the plan based on your feedback: "{corrections}"',
                )
                await self._analyze_requirements(session, corrections=corrections)

        if verdict.confirmed:
            session.add_entry(MessageRole.ASSISTANT, "Great! I will now proceed to the next step.")
            await self.confirm_current_step(session.id)
        else:
            await self._process_requirement_confirmation(session)

    async def _classify_confirmation(self, session: Session, text: str) -> ConfirmationVerdict:
        prompt = f"""The user was asked to confirm if the AI's understanding of their requirements was correct.
User's response: "{text}"

Analyze this response. Does it indicate confirmation, or does it ask for corrections?
Respond with JSON only.
- If confirmed, respond with: {{"confirmed": true}}
- If not confirmed, respond with: {{"confirmed": false, "corrections": "A summary of the corrections the user wants to make."}}"""
        cache_key = make_cache_key(CACHE_NAMESPACE_CONFIRMATION, text)

        try:
            raw = await self.gateway.generate(
                prompt, cache_key=cache_key, op_id=f"confirmation:{session.id}"
            )
        except Exception as e:
            self._record_error(e, session, user_action="confirmation")
            return ConfirmationVerdict(confirmed=looks_like_confirmation(text))

        result = extract_json_object(raw)
        if isinstance(result, Malformed):
            await self.gateway.invalidate(cache_key)
            self._record_error(ParsingError(result.reason), session, user_action="confirmation")
            return ConfirmationVerdict(confirmed=looks_like_confirmation(text))

        try:
            return ConfirmationVerdict.model_validate(result.data)
        except PydanticValidationError:
            await self.gateway.invalidate(cache_key)
            return ConfirmationVerdict(confirmed=looks_like_confirmation(text))

    # =========================================================================
    # Session edits
    # =========================================================================

    async def update_requirements(self, session_id: str, update: dict[str, Any]) -> Session:
        session = await self.store.require(session_id)
        session.requirements = self.requirement_processor.update_requirements(
            session.requirements, update
        )
        session.touch()
        return session

    async def apply_suggestion(
        self,
        session_id: str,
        suggestion_id: str,
        modifications: Optional[str] = None,
    ) -> Session:
        """Mark a suggestion applied, optionally with a modified description."""
        session = await self.store.require(session_id)
        state = session.suggestions
        if state.find(suggestion_id) is None:
            raise InvalidRequestError(f"Suggestion '{suggestion_id}' does not exist", field="suggestion_id")

        if suggestion_id not in state.applied_suggestions:
            state.applied_suggestions.append(suggestion_id)
        if suggestion_id in state.rejected_suggestions:
            state.rejected_suggestions.remove(suggestion_id)
        state.user_choices.append(
            SuggestionChoice(
                suggestion_id=suggestion_id,
                action=SuggestionAction.MODIFY if modifications else SuggestionAction.ACCEPT,
                modified_description=modifications,
            )
        )
        session.touch()
        logger.info("Suggestion applied", session_id=session_id, suggestion_id=suggestion_id)
        return session

    async def reject_suggestion(
        self,
        session_id: str,
        suggestion_id: str,
        reason: Optional[str] = None,
    ) -> Session:
        session = await self.store.require(session_id)
        state = session.suggestions
        if state.find(suggestion_id) is None:
            raise InvalidRequestError(f"Suggestion '{suggestion_id}' does not exist", field="suggestion_id")

        if suggestion_id not in state.rejected_suggestions:
            state.rejected_suggestions.append(suggestion_id)
        if suggestion_id in state.applied_suggestions:
            state.applied_suggestions.remove(suggestion_id)
        state.user_choices.append(
            SuggestionChoice(
                suggestion_id=suggestion_id,
                action=SuggestionAction.REJECT,
                reasoning=reason,
            )
        )
        session.touch()
        logger.info("Suggestion rejected", session_id=session_id, suggestion_id=suggestion_id)
        return session

    async def request_more_suggestions(
        self,
        session_id: str,
        category: Optional[SuggestionCategory] = None,
    ) -> list[ProfessionalSuggestion]:
        """Append additional, non-duplicate suggestions to the session."""
        session = await self.store.require(session_id)
        with self._processing(session):
            more = await self.suggestion_generator.generate_more_suggestions(
                session.requirements.processed_requirements,
                session.suggestions.suggestions,
                category,
            )

        session.suggestions.suggestions.extend(more)
        if more:
            session.add_entry(
                MessageRole.ASSISTANT,
                f"Here are {len(more)} more suggestions:\n\n{self.format_suggestions(more)}",
                suggestions_provided=len(more),
            )
        else:
            session.add_entry(MessageRole.ASSISTANT, "I couldn't find any further suggestions right now.")
        return more

    async def generate_tickets(self, session_id: str) -> TicketCollection:
        """Regenerate tickets without changing the current step."""
        session = await self.store.require(session_id)
        with self._processing(session):
            session.tickets = await self._build_tickets(session)
        session.touch()
        return session.tickets

    async def _build_tickets(self, session: Session) -> TicketCollection:
        return await self.ticket_generator.generate_tickets(
            session.requirements.processed_requirements,
            session.suggestions.applied_suggestions,
            session.suggestions.suggestions,
        )

    def _record_error(self, error: Exception, session: Session, user_action: str) -> None:
        if self.error_handler is not None:
            self.error_handler.handle_error(
                error,
                step=session.current_step,
                session_id=session.id,
                user_action=user_action,
            )

    # =========================================================================
    # Formatting
    # =========================================================================

    @staticmethod
    def format_requirements(session: Session) -> str:
        return "\n\n".join(
            f"{index}. {req.title} [{req.category.value}, {req.priority.value}]\n   {req.description}"
            for index, req in enumerate(session.requirements.processed_requirements, start=1)
        )

    @staticmethod
    def format_suggestions(suggestions: list[ProfessionalSuggestion]) -> str:
        return "\n\n".join(
            f"- {sug.title} [{sug.category.value}, {sug.priority.value}]\n  {sug.description}"
            for sug in suggestions
        )

    @staticmethod
    def format_structure_plan(session: Session) -> str:
        groups: dict[str, list[str]] = {"epics": [], "stories": [], "tasks": [], "bugs": []}
        for req in session.requirements.processed_requirements:
            _, bucket = CATEGORY_TICKET_TYPES[req.category]
            groups[bucket].append(req.title)

        lines = [
            f"{name.capitalize()} ({len(titles)}): {', '.join(titles) or 'none'}"
            for name, titles in groups.items()
        ]
        applied = session.suggestions.applied
        if applied:
            lines.append(f"Applied suggestions ({len(applied)}): {', '.join(s.title for s in applied)}")
        return "\n".join(lines)

    @staticmethod
    def format_tickets(tickets: TicketCollection) -> str:
        return "\n".join(
            f"- [{ticket.type.value}] {ticket.summary} ({ticket.priority.value})"
            for ticket in tickets.all_tickets()
        )

    @staticmethod
    def format_final_review(session: Session) -> str:
        minutes = int((utc_now() - session.started_at).total_seconds() // 60)
        return (
            "Planning Complete!\n\n"
            "Here's a summary of what we've accomplished:\n\n"
            f"Requirements Processed: {len(session.requirements.processed_requirements)} items\n"
            f"Professional Suggestions: {len(session.suggestions.applied_suggestions)} applied\n"
            f"Jira Tickets Generated: {session.tickets.total} tickets\n"
            f"Session Duration: {minutes} minutes\n\n"
            "Next Steps:\n"
            "1. Export tickets in your preferred format\n"
            "2. Import to your Jira instance\n"
            "3. Assign tickets to team members\n"
            "4. Begin sprint planning\n\n"
            "Confirm to finish, or export, save or restart the session."
        )
