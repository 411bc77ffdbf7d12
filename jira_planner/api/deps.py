"""
API dependencies for dependency injection.
"""

from typing import Optional

from jira_planner.core.config import Settings, settings
from jira_planner.core.constants import ExportFormat
from jira_planner.llm.generation_client import (
    GenerationService,
    OpenAICompatibleGenerationService,
)
from jira_planner.orchestration.stages.requirement_processor import RequirementProcessor
from jira_planner.orchestration.stages.suggestion_generator import SuggestionGenerator
from jira_planner.orchestration.stages.ticket_generator import TicketGenerator
from jira_planner.orchestration.workflow_engine import PlanningWorkflowEngine
from jira_planner.repositories.cache_repo import ResponseCache
from jira_planner.repositories.session_repo import SessionStore
from jira_planner.resilience.error_handler import ErrorHandler
from jira_planner.resilience.rate_limiter import RateLimiter
from jira_planner.resilience.retry import RetryExecutor
from jira_planner.services.export_service import TicketExporter
from jira_planner.services.generation_gateway import GenerationGateway
from jira_planner.services.session_manager import SessionManager


class ServiceContainer:
    """
    Container for all application services.
    Provides singleton instances of services.
    """

    _instance: Optional["ServiceContainer"] = None

    def __init__(
        self,
        app_settings: Optional[Settings] = None,
        generation_service: Optional[GenerationService] = None,
    ) -> None:
        self._settings = app_settings or settings
        self._generation_service_override = generation_service
        self._initialized = False

    @classmethod
    def get_instance(cls) -> "ServiceContainer":
        """Get the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def initialize(self) -> None:
        """Initialize all services."""
        if self._initialized:
            return

        cfg = self._settings

        # Generation service
        self._generation_service = (
            self._generation_service_override
            or OpenAICompatibleGenerationService(cfg.generation)
        )

        # Shared stores and resilience components
        self._session_store = SessionStore()
        self._cache = ResponseCache(
            ttl_seconds=cfg.cache.ttl_seconds,
            max_entries=cfg.cache.max_entries,
        )
        self._rate_limiter = RateLimiter(
            max_requests=cfg.rate_limit.max_requests,
            window_seconds=cfg.rate_limit.window_seconds,
        )
        self._retry_executor = RetryExecutor(
            max_attempts=cfg.retry.max_attempts,
            base_delay_ms=cfg.retry.base_delay_ms,
            timeout_ms=cfg.retry.timeout_ms,
        )
        self._error_handler = ErrorHandler(
            history_limit=cfg.errors.history_limit,
            recent_window_seconds=cfg.errors.recent_window_seconds,
            recent_limit=cfg.errors.recent_limit,
        )

        self._gateway = GenerationGateway(
            service=self._generation_service,
            cache=self._cache,
            rate_limiter=self._rate_limiter,
            retry_executor=self._retry_executor,
        )

        # Pipeline stages
        requirement_processor = RequirementProcessor(self._gateway, self._error_handler)
        suggestion_generator = SuggestionGenerator(
            self._gateway,
            self._error_handler,
            max_more_suggestions=cfg.planner.max_more_suggestions,
        )
        ticket_generator = TicketGenerator(self._gateway, self._error_handler)

        # Workflow engine and command channel
        self._workflow_engine = PlanningWorkflowEngine(
            store=self._session_store,
            gateway=self._gateway,
            requirement_processor=requirement_processor,
            suggestion_generator=suggestion_generator,
            ticket_generator=ticket_generator,
            error_handler=self._error_handler,
        )

        self._session_manager = SessionManager(
            engine=self._workflow_engine,
            store=self._session_store,
            cache=self._cache,
            error_handler=self._error_handler,
            exporter=TicketExporter(),
            sessions_directory=cfg.planner.sessions_directory,
            preferred_export_format=ExportFormat(cfg.planner.preferred_export_format),
        )

        self._initialized = True

    async def shutdown(self) -> None:
        """Release network clients."""
        if self._initialized:
            await self._generation_service.close()

    @property
    def session_manager(self) -> SessionManager:
        """Get the session manager."""
        self.initialize()
        return self._session_manager

    @property
    def workflow_engine(self) -> PlanningWorkflowEngine:
        self.initialize()
        return self._workflow_engine

    @property
    def error_handler(self) -> ErrorHandler:
        """Get the error handler."""
        self.initialize()
        return self._error_handler

    @property
    def gateway(self) -> GenerationGateway:
        """Get the generation gateway."""
        self.initialize()
        return self._gateway

    @property
    def cache(self) -> ResponseCache:
        """Get the response cache."""
        self.initialize()
        return self._cache


# Singleton container instance
container = ServiceContainer.get_instance()


# Dependency functions for FastAPI
def get_session_manager() -> SessionManager:
    """Get the session manager instance."""
    return container.session_manager


def get_error_handler() -> ErrorHandler:
    """Get the error handler instance."""
    return container.error_handler


def get_gateway() -> GenerationGateway:
    """Get the generation gateway instance."""
    return container.gateway
