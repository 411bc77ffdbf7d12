"""
System-wide constants for the Jira planner.
"""

from enum import Enum


# =============================================================================
# Workflow Enums
# =============================================================================


class PlanningStep(str, Enum):
    """Steps of a planning session, in workflow order."""

    INITIAL_UNDERSTANDING = "initial_understanding"
    REQUIREMENT_CONFIRMATION = "requirement_confirmation"
    SUGGESTION_REVIEW = "suggestion_review"
    STRUCTURE_PLANNING = "structure_planning"
    TICKET_GENERATION = "ticket_generation"
    FINAL_REVIEW = "final_review"
    COMPLETED = "completed"


class PlannerCommand(str, Enum):
    """Commands accepted by the session manager."""

    SEND_TEXT = "send_text"
    CONFIRM_STEP = "confirm_step"
    UPDATE_REQUIREMENTS = "update_requirements"
    APPLY_SUGGESTION = "apply_suggestion"
    REJECT_SUGGESTION = "reject_suggestion"
    REQUEST_MORE_SUGGESTIONS = "request_more_suggestions"
    GENERATE_TICKETS = "generate_tickets"
    EXPORT_TICKETS = "export_tickets"
    RESTART_WORKFLOW = "restart_workflow"
    SAVE_SESSION = "save_session"
    LOAD_SESSION = "load_session"
    CLEAR_SESSION = "clear_session"


class MessageRole(str, Enum):
    """Author roles in the conversation transcript."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


# =============================================================================
# Requirement / Suggestion / Ticket Enums
# =============================================================================


class RequirementCategory(str, Enum):
    """Kinds of extracted requirements."""

    EPIC = "epic"
    FEATURE = "feature"
    USER_STORY = "user_story"
    TASK = "task"
    BUG = "bug"
    IMPROVEMENT = "improvement"
    RESEARCH = "research"


class Priority(str, Enum):
    """Priority levels shared by requirements, suggestions and tickets."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Complexity(str, Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ModificationType(str, Enum):
    """Kinds of user edits recorded against requirements."""

    ADD = "add"
    REMOVE = "remove"
    MODIFY = "modify"
    CLARIFY = "clarify"


class SuggestionCategory(str, Enum):
    """Areas a professional suggestion can address."""

    ARCHITECTURE = "architecture"
    SECURITY = "security"
    PERFORMANCE = "performance"
    USER_EXPERIENCE = "user_experience"
    TESTING = "testing"
    DEVOPS = "devops"
    DOCUMENTATION = "documentation"
    ACCESSIBILITY = "accessibility"
    SCALABILITY = "scalability"
    MAINTAINABILITY = "maintainability"


class SuggestionAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    MODIFY = "modify"


class TicketType(str, Enum):
    """Issue types understood by the tracker import."""

    EPIC = "Epic"
    STORY = "Story"
    TASK = "Task"
    SUB_TASK = "Sub-task"
    BUG = "Bug"
    IMPROVEMENT = "Improvement"


class LinkType(str, Enum):
    """Relations between tickets."""

    BLOCKS = "blocks"
    IS_BLOCKED_BY = "is blocked by"
    RELATES_TO = "relates to"
    DEPENDS_ON = "depends on"
    IS_DEPENDED_ON_BY = "is depended on by"
    DUPLICATES = "duplicates"
    IS_DUPLICATED_BY = "is duplicated by"


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"
    JIRA_IMPORT = "jira_import"
    CONFLUENCE = "confluence"


# =============================================================================
# Error Enums
# =============================================================================


class ErrorType(str, Enum):
    """Failure categories produced by the error classifier."""

    AI_SERVICE_ERROR = "ai_service_error"
    NETWORK_ERROR = "network_error"
    VALIDATION_ERROR = "validation_error"
    PARSING_ERROR = "parsing_error"
    RATE_LIMIT_ERROR = "rate_limit_error"
    SESSION_ERROR = "session_error"
    EXPORT_ERROR = "export_error"
    UNKNOWN_ERROR = "unknown_error"


class RecoveryAction(str, Enum):
    """What a recovery option asks the caller to do."""

    RETRY = "retry"
    USE_FALLBACK = "use_fallback"
    CHECK_CONNECTION = "check_connection"
    WAIT_AND_RETRY = "wait_and_retry"
    RESTART_SESSION = "restart_session"
    FIX_INPUT = "fix_input"
    VIEW_DETAILS = "view_details"


# =============================================================================
# Workflow Constants
# =============================================================================

STEP_ORDER: tuple[PlanningStep, ...] = (
    PlanningStep.INITIAL_UNDERSTANDING,
    PlanningStep.REQUIREMENT_CONFIRMATION,
    PlanningStep.SUGGESTION_REVIEW,
    PlanningStep.STRUCTURE_PLANNING,
    PlanningStep.TICKET_GENERATION,
    PlanningStep.FINAL_REVIEW,
    PlanningStep.COMPLETED,
)

# Steps whose assistant message waits for an explicit user confirmation
CONFIRMATION_REQUIRED_STEPS = frozenset(
    {PlanningStep.REQUIREMENT_CONFIRMATION, PlanningStep.STRUCTURE_PLANNING}
)

TICKET_SUMMARY_MAX_LENGTH = 100
FALLBACK_TITLE_LENGTH = 50

# Placeholder shown while a step handler is waiting on the generation service
PROCESSING_MESSAGE = "Analyzing your request..."

# =============================================================================
# API Constants
# =============================================================================

API_VERSION = "v1"
API_PREFIX = f"/api/{API_VERSION}"

# =============================================================================
# Rate Limit / Cache Keys
# =============================================================================

GENERATION_RATE_LIMIT_KEY = "generation-requests"

CACHE_NAMESPACE_ANALYSIS = "analysis"
CACHE_NAMESPACE_REQUIREMENTS = "requirements"
CACHE_NAMESPACE_SUGGESTIONS = "suggestions"
CACHE_NAMESPACE_MORE_SUGGESTIONS = "more_suggestions"
CACHE_NAMESPACE_TICKETS = "tickets"
CACHE_NAMESPACE_CONFIRMATION = "confirmation"

# Wait applied by the rate-limit recovery option
RATE_LIMIT_RECOVERY_DELAY_SECONDS = 60
