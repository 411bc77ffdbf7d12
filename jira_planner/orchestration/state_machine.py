"""
State machine for planning session progression.
"""

from typing import Optional

from jira_planner.core.constants import STEP_ORDER, PlanningStep
from jira_planner.core.exceptions import WorkflowError
from jira_planner.core.logging import get_logger

logger = get_logger(__name__)


class StateMachine:
    """
    Generic state machine for workflow orchestration.
    """

    def __init__(
        self,
        states: list[str],
        initial_state: str,
        final_states: list[str],
        transitions: dict[str, list[str]],
    ) -> None:
        """
        Initialize the state machine.

        Args:
            states: List of valid states
            initial_state: Starting state
            final_states: Terminal states
            transitions: Valid transitions {from_state: [to_states]}
        """
        self.states = set(states)
        self.initial_state = initial_state
        self.final_states = set(final_states)
        self.transitions = transitions

        if initial_state not in self.states:
            raise ValueError(f"Initial state '{initial_state}' not in states")
        for final in final_states:
            if final not in self.states:
                raise ValueError(f"Final state '{final}' not in states")
        for source, targets in transitions.items():
            unknown = [t for t in [source, *targets] if t not in self.states]
            if unknown:
                raise ValueError(f"Transition from '{source}' uses unknown states {unknown}")

    def can_transition(self, from_state: str, to_state: str) -> bool:
        """Check if transition is valid."""
        return to_state in self.transitions.get(from_state, [])

    def get_next_states(self, current_state: str) -> list[str]:
        """Get valid next states from current state."""
        return self.transitions.get(current_state, [])

    def is_final(self, state: str) -> bool:
        """Check if state is a final state."""
        return state in self.final_states

    def validate_transition(self, from_state: str, to_state: str) -> None:
        """Raise WorkflowError unless ``from_state -> to_state`` is allowed."""
        if not self.can_transition(from_state, to_state):
            raise WorkflowError(
                f"Invalid state transition from '{from_state}' to '{to_state}'",
                step=from_state,
            )


PLANNING_WORKFLOW_STATES = [step.value for step in STEP_ORDER]

PLANNING_WORKFLOW_TRANSITIONS = {
    current.value: [following.value]
    for current, following in zip(STEP_ORDER, STEP_ORDER[1:])
}
PLANNING_WORKFLOW_TRANSITIONS[PlanningStep.COMPLETED.value] = []


def create_planning_state_machine() -> StateMachine:
    """Create state machine for the planning workflow."""
    return StateMachine(
        states=PLANNING_WORKFLOW_STATES,
        initial_state=PlanningStep.INITIAL_UNDERSTANDING.value,
        final_states=[PlanningStep.COMPLETED.value],
        transitions=PLANNING_WORKFLOW_TRANSITIONS,
    )


_PLANNING_MACHINE = create_planning_state_machine()


def get_next_step(step: PlanningStep) -> Optional[PlanningStep]:
    """Step that follows ``step``, or None once the workflow is completed."""
    following = _PLANNING_MACHINE.get_next_states(PlanningStep(step).value)
    return PlanningStep(following[0]) if following else None
