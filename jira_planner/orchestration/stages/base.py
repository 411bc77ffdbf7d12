"""
Shared plumbing for generation pipeline stages.
"""

from typing import TYPE_CHECKING, Any, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from jira_planner.core.exceptions import ParsingError
from jira_planner.core.logging import get_logger
from jira_planner.orchestration.stages.parsing import (
    Malformed,
    Parsed,
    ParseResult,
    extract_json_object,
)
from jira_planner.resilience.error_handler import ErrorHandler

if TYPE_CHECKING:
    from jira_planner.services.generation_gateway import GenerationGateway

logger = get_logger(__name__)

P = TypeVar("P", bound=BaseModel)

JSON_SYSTEM_PROMPT = (
    "You are an expert software architect and agile project manager. "
    "When asked for JSON, answer with a single JSON object and nothing else."
)


class PipelineStage:
    """
    Base class for stages that turn model output into domain entities.

    Stages never raise to their caller: every failure is logged, recorded in
    the error handler when one is wired in, and answered with a fallback.
    """

    stage_name = "stage"

    def __init__(
        self,
        gateway: "GenerationGateway",
        error_handler: Optional[ErrorHandler] = None,
    ) -> None:
        self.gateway = gateway
        self.error_handler = error_handler

    async def _request_json(self, prompt: str, cache_key: str) -> ParseResult:
        """Generate text for ``prompt`` and extract its JSON object."""
        try:
            text = await self.gateway.generate(
                prompt,
                cache_key=cache_key,
                system_prompt=JSON_SYSTEM_PROMPT,
                op_id=f"{self.stage_name}:{cache_key.rsplit(':', 1)[-1][:12]}",
            )
        except Exception as e:
            self._record_failure(e)
            return Malformed(f"generation failed: {e}")

        result = extract_json_object(text)
        if isinstance(result, Malformed):
            await self._reject(cache_key, result.reason)
        return result

    async def _validate_payload(
        self, result: Parsed, schema: type[P], cache_key: str
    ) -> Optional[P]:
        """Validate parsed JSON against ``schema``; None when it does not fit."""
        try:
            return schema.model_validate(result.data)
        except PydanticValidationError as e:
            await self._reject(cache_key, f"schema mismatch ({e.error_count()} errors)")
            return None

    async def _reject(self, cache_key: str, reason: str) -> None:
        """Drop a cached response that could not be used and record why."""
        await self.gateway.invalidate(cache_key)
        self._record_failure(ParsingError(reason))

    def _record_failure(self, error: Exception, **context: Any) -> None:
        logger.warning(
            "Pipeline stage fell back",
            stage=self.stage_name,
            error=str(error),
            **context,
        )
        if self.error_handler is not None:
            self.error_handler.handle_error(error, user_action=self.stage_name)
