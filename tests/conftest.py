"""
Pytest configuration and fixtures.
"""

from typing import AsyncGenerator, Optional, Union

import pytest
from httpx import ASGITransport, AsyncClient

from jira_planner.api.deps import (
    ServiceContainer,
    get_error_handler,
    get_gateway,
    get_session_manager,
)
from jira_planner.core.constants import Complexity, Priority, RequirementCategory
from jira_planner.domain.planning import EffortEstimate, ProcessedRequirement
from jira_planner.llm.generation_client import GenerationService
from jira_planner.main import app
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

Reply = Union[str, Exception]


class FakeGenerationService(GenerationService):
    """
    Scripted generation service.

    Replies are chosen by the first marker phrase found in the prompt.
    """

    def __init__(
        self,
        replies: Optional[dict[str, Reply]] = None,
        default: Reply = "Here is my analysis of the project.",
    ) -> None:
        self.replies = dict(replies or {})
        self.default = default
        self.prompts: list[str] = []
        self.closed = False

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        self.prompts.append(prompt)
        reply = self.default
        for marker, scripted in self.replies.items():
            if marker in prompt:
                reply = scripted
                break
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def close(self) -> None:
        self.closed = True

    def calls_for(self, marker: str) -> int:
        return sum(1 for prompt in self.prompts if marker in prompt)


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_service() -> FakeGenerationService:
    """Generation service answering every prompt with plain prose."""
    return FakeGenerationService()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def cache() -> ResponseCache:
    return ResponseCache(ttl_seconds=1800, max_entries=100)


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(max_requests=20, window_seconds=60)


@pytest.fixture
def retry_executor(recording_sleep: RecordingSleep) -> RetryExecutor:
    return RetryExecutor(max_attempts=3, base_delay_ms=1000, timeout_ms=30000, sleep=recording_sleep)


@pytest.fixture
def error_handler() -> ErrorHandler:
    return ErrorHandler()


@pytest.fixture
def gateway(
    fake_service: FakeGenerationService,
    cache: ResponseCache,
    rate_limiter: RateLimiter,
    retry_executor: RetryExecutor,
) -> GenerationGateway:
    return GenerationGateway(
        service=fake_service,
        cache=cache,
        rate_limiter=rate_limiter,
        retry_executor=retry_executor,
        batch_delay_seconds=0,
    )


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def requirement_processor(
    gateway: GenerationGateway, error_handler: ErrorHandler
) -> RequirementProcessor:
    return RequirementProcessor(gateway, error_handler)


@pytest.fixture
def suggestion_generator(
    gateway: GenerationGateway, error_handler: ErrorHandler
) -> SuggestionGenerator:
    return SuggestionGenerator(gateway, error_handler, max_more_suggestions=3)


@pytest.fixture
def ticket_generator(gateway: GenerationGateway, error_handler: ErrorHandler) -> TicketGenerator:
    return TicketGenerator(gateway, error_handler)


@pytest.fixture
def engine(
    store: SessionStore,
    gateway: GenerationGateway,
    requirement_processor: RequirementProcessor,
    suggestion_generator: SuggestionGenerator,
    ticket_generator: TicketGenerator,
    error_handler: ErrorHandler,
) -> PlanningWorkflowEngine:
    return PlanningWorkflowEngine(
        store=store,
        gateway=gateway,
        requirement_processor=requirement_processor,
        suggestion_generator=suggestion_generator,
        ticket_generator=ticket_generator,
        error_handler=error_handler,
    )


@pytest.fixture
def session_manager(
    engine: PlanningWorkflowEngine,
    store: SessionStore,
    cache: ResponseCache,
    error_handler: ErrorHandler,
    tmp_path,
) -> SessionManager:
    return SessionManager(
        engine=engine,
        store=store,
        cache=cache,
        error_handler=error_handler,
        exporter=TicketExporter(),
        sessions_directory=tmp_path / "sessions",
    )


@pytest.fixture
def sample_requirements() -> list[ProcessedRequirement]:
    """A small requirement set covering several categories."""
    return [
        ProcessedRequirement(
            id="req_login",
            category=RequirementCategory.FEATURE,
            title="User login with email and password",
            description="Users sign in through the web interface using email and password.",
            priority=Priority.HIGH,
            estimated_effort=EffortEstimate(complexity=Complexity.MEDIUM, story_points=5),
            acceptance_criteria=["Valid credentials sign the user in"],
            technical_notes=["Hash passwords with bcrypt"],
            business_value="Lets users access their accounts",
            risks=["Credential stuffing"],
        ),
        ProcessedRequirement(
            id="req_schema",
            category=RequirementCategory.TASK,
            title="Create user database schema",
            description="Add the users table with unique email constraint.",
            priority=Priority.MEDIUM,
        ),
    ]


@pytest.fixture
def test_container(fake_service: FakeGenerationService, tmp_path) -> ServiceContainer:
    """Service container wired to the scripted generation service."""
    container = ServiceContainer(generation_service=fake_service)
    container.initialize()
    container.session_manager.sessions_directory = tmp_path / "sessions"
    return container


@pytest.fixture
async def async_client(test_container: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    app.dependency_overrides[get_session_manager] = lambda: test_container.session_manager
    app.dependency_overrides[get_error_handler] = lambda: test_container.error_handler
    app.dependency_overrides[get_gateway] = lambda: test_container.gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
