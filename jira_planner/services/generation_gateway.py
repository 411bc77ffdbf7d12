"""
Generation gateway: cache, rate limiting, retries and timeouts around the
text-generation service.
"""

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Any, Optional

from jira_planner.core.constants import GENERATION_RATE_LIMIT_KEY
from jira_planner.core.exceptions import RateLimitError
from jira_planner.core.logging import get_logger
from jira_planner.llm.generation_client import GenerationService
from jira_planner.repositories.cache_repo import ResponseCache, make_cache_key
from jira_planner.resilience.rate_limiter import RateLimiter
from jira_planner.resilience.retry import RetryExecutor

logger = get_logger(__name__)


@dataclass
class GatewayMetrics:
    """Running request metrics; rates are fractions of all requests."""

    request_count: int = 0
    cache_hits: int = 0
    errors: int = 0
    average_response_ms: float = 0.0
    cache_hit_rate: float = 0.0
    error_rate: float = 0.0

    def record(self, response_ms: float, cache_hit: bool, success: bool) -> None:
        self.request_count += 1
        n = self.request_count
        self.average_response_ms = (self.average_response_ms * (n - 1) + response_ms) / n
        if cache_hit:
            self.cache_hits += 1
        if not success:
            self.errors += 1
        self.cache_hit_rate = self.cache_hits / n
        self.error_rate = self.errors / n


class GenerationGateway:
    """
    Single entry point the pipeline stages use to reach the model.

    A request is answered from the cache when possible. Otherwise it must be
    admitted by the rate limiter once, then runs under retry with a per-attempt
    timeout. Successful responses are cached.
    """

    def __init__(
        self,
        service: GenerationService,
        cache: ResponseCache,
        rate_limiter: RateLimiter,
        retry_executor: RetryExecutor,
        timeout_ms: Optional[int] = None,
        rate_limit_key: str = GENERATION_RATE_LIMIT_KEY,
        batch_delay_seconds: float = 0.1,
    ) -> None:
        self.service = service
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.retry_executor = retry_executor
        self.timeout_ms = timeout_ms or retry_executor.timeout_ms
        self.rate_limit_key = rate_limit_key
        self.batch_delay_seconds = batch_delay_seconds
        self.metrics = GatewayMetrics()

    async def generate(
        self,
        prompt: str,
        cache_key: Optional[str] = None,
        system_prompt: Optional[str] = None,
        op_id: Optional[str] = None,
        bypass_cache: bool = False,
    ) -> str:
        """
        Generate text for ``prompt``.

        Args:
            prompt: User prompt
            cache_key: Fingerprint of the request; derived from the prompt when omitted
            system_prompt: Optional system instruction
            op_id: Identifier used for retry bookkeeping and logs
            bypass_cache: Skip the cache lookup (the response is still cached)

        Raises:
            RateLimitError: when the request is not admitted
            PlannerError: when retries are exhausted or the error is not retryable
        """
        key = cache_key or make_cache_key("prompt", prompt, system_prompt)
        started = time.perf_counter()

        if not bypass_cache:
            cached = await self.cache.get(key)
            if cached is not None:
                self.metrics.record(self._elapsed_ms(started), cache_hit=True, success=True)
                logger.debug("Generation cache hit", cache_key=key)
                return cached

        if not self.rate_limiter.check_and_record(self.rate_limit_key):
            self.metrics.record(self._elapsed_ms(started), cache_hit=False, success=False)
            raise RateLimitError(retry_after=self.rate_limiter.get_retry_after(self.rate_limit_key))

        operation_id = op_id or key

        async def attempt() -> str:
            return await self.retry_executor.with_timeout(
                lambda: self.service.generate(prompt, system_prompt),
                timeout_ms=self.timeout_ms,
                operation_name=operation_id,
            )

        try:
            text = await self.retry_executor.retry(attempt, op_id=operation_id)
        except Exception:
            self.metrics.record(self._elapsed_ms(started), cache_hit=False, success=False)
            raise

        await self.cache.set(key, text)
        self.metrics.record(self._elapsed_ms(started), cache_hit=False, success=True)
        logger.info(
            "Generation completed",
            op_id=operation_id,
            duration_ms=round(self._elapsed_ms(started), 1),
        )
        return text

    async def batch_generate(self, requests: list[tuple[str, str]]) -> list[str]:
        """
        Run several (prompt, cache_key) requests sequentially.

        Cached answers are served first. Failed requests yield an empty string.
        """
        results: list[str] = [""] * len(requests)
        pending: list[int] = []

        for index, (_, cache_key) in enumerate(requests):
            cached = await self.cache.get(cache_key)
            if cached is not None:
                results[index] = cached
            else:
                pending.append(index)

        for index in pending:
            prompt, cache_key = requests[index]
            try:
                results[index] = await self.generate(prompt, cache_key=cache_key)
            except Exception as e:
                logger.error("Batch request failed", index=index, error=str(e))
            await asyncio.sleep(self.batch_delay_seconds)

        return results

    async def invalidate(self, cache_key: str) -> bool:
        """Forget a cached response, e.g. one that failed to parse."""
        return await self.cache.delete(cache_key)

    def get_metrics(self) -> dict[str, Any]:
        return asdict(self.metrics)

    def reset_metrics(self) -> None:
        self.metrics = GatewayMetrics()

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000
