"""
Service layer implementations.
"""

from jira_planner.services.generation_gateway import GenerationGateway
from jira_planner.services.export_service import ExportResult, TicketExporter
from jira_planner.services.session_manager import CommandResult, SessionManager

__all__ = [
    "GenerationGateway",
    "ExportResult",
    "TicketExporter",
    "CommandResult",
    "SessionManager",
]
