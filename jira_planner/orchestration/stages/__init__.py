"""
Generation pipeline stages.
"""

from jira_planner.orchestration.stages.parsing import Malformed, Parsed, extract_json_object
from jira_planner.orchestration.stages.requirement_processor import RequirementProcessor
from jira_planner.orchestration.stages.suggestion_generator import SuggestionGenerator
from jira_planner.orchestration.stages.ticket_generator import TicketGenerator

__all__ = [
    "Malformed",
    "Parsed",
    "extract_json_object",
    "RequirementProcessor",
    "SuggestionGenerator",
    "TicketGenerator",
]
