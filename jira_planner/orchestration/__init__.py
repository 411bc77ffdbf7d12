"""
Orchestration module for the planning workflow.
"""

from jira_planner.orchestration.state_machine import (
    StateMachine,
    create_planning_state_machine,
    get_next_step,
)
from jira_planner.orchestration.workflow_engine import PlanningWorkflowEngine

__all__ = [
    "StateMachine",
    "create_planning_state_machine",
    "get_next_step",
    "PlanningWorkflowEngine",
]
