"""
Retry, timeout and fallback wrappers for async operations.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from jira_planner.core.exceptions import GenerationTimeoutError
from jira_planner.core.logging import get_logger
from jira_planner.resilience.error_handler import is_retryable

logger = get_logger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
SleepFn = Callable[[float], Awaitable[None]]
DegradedNotifier = Callable[[str, Exception], None]


def _should_retry(error: BaseException) -> bool:
    # Cancellation and interpreter exits are never retried
    return isinstance(error, Exception) and is_retryable(error)


def _discard_result(task: "asyncio.Future[object]") -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Timed-out operation finished with error", error=str(task.exception()))


class RetryExecutor:
    """
    Exponential-backoff retries around a single async operation.

    Delays follow ``base_delay * 2^(attempt-1)``. Validation and parsing
    failures are raised immediately.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_ms: int = 1000,
        timeout_ms: int = 30000,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        """
        Initialize the executor.

        Args:
            max_attempts: Default attempts per operation
            base_delay_ms: First backoff delay in milliseconds
            timeout_ms: Default time budget for with_timeout
            sleep: Awaitable sleep used between attempts (tests inject a recorder)
        """
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.timeout_ms = timeout_ms
        self._sleep = sleep or asyncio.sleep
        self._retry_attempts: dict[str, int] = {}

    def pending_retries(self, op_id: str) -> int:
        """Failed attempts recorded for an operation that has not yet succeeded."""
        return self._retry_attempts.get(op_id, 0)

    def _before_sleep(self, op_id: str, max_attempts: int) -> Callable[[RetryCallState], None]:
        def log_retry(retry_state: RetryCallState) -> None:
            self._retry_attempts[op_id] = retry_state.attempt_number
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.info(
                "Retrying operation",
                op_id=op_id,
                attempt=retry_state.attempt_number + 1,
                max_attempts=max_attempts,
                delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
                error=str(error) if error else None,
            )

        return log_retry

    async def retry(
        self,
        operation: Operation[T],
        op_id: str,
        max_attempts: Optional[int] = None,
    ) -> T:
        """
        Run ``operation`` until it succeeds, a non-retryable error occurs or
        attempts run out.

        Args:
            operation: Zero-argument coroutine factory
            op_id: Identifier for the retry counter
            max_attempts: Override of the default attempt count

        Returns:
            The operation's result

        Raises:
            The last error raised by the operation
        """
        attempts = max_attempts or self.max_attempts
        calls = 0

        async def attempt_once() -> T:
            nonlocal calls
            calls += 1
            return await operation()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=self.base_delay_ms / 1000, exp_base=2),
            retry=retry_if_exception(_should_retry),
            sleep=self._sleep,
            before_sleep=self._before_sleep(op_id, attempts),
            reraise=True,
        )

        try:
            result = await retrying(attempt_once)
        except Exception as e:
            self._retry_attempts[op_id] = calls
            logger.warning("Operation failed", op_id=op_id, attempts=calls, error=str(e))
            raise

        self._retry_attempts.pop(op_id, None)
        return result

    async def with_timeout(
        self,
        operation: Operation[T],
        timeout_ms: Optional[int] = None,
        fallback: Optional[Operation[T]] = None,
        operation_name: Optional[str] = None,
    ) -> T:
        """
        Race ``operation`` against a timer.

        On timeout or failure the fallback runs when given; if the fallback
        also fails the original error is raised. A timed-out operation keeps
        running in the background and its result is discarded.

        Raises:
            GenerationTimeoutError: on timeout without a fallback
        """
        budget_ms = timeout_ms or self.timeout_ms
        task = asyncio.ensure_future(operation())

        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=budget_ms / 1000)
        except asyncio.TimeoutError:
            task.add_done_callback(_discard_result)
            error: Exception = GenerationTimeoutError(budget_ms, operation_name)
            logger.warning("Operation timed out", operation=operation_name, timeout_ms=budget_ms)
        except Exception as e:
            error = e

        if fallback is None:
            raise error

        try:
            return await fallback()
        except Exception as fallback_error:
            logger.warning(
                "Fallback failed",
                operation=operation_name,
                error=str(fallback_error),
            )
            raise error from fallback_error

    async def with_fallback(
        self,
        primary: Operation[T],
        fallback: Operation[T],
        operation_name: str,
        on_degraded: Optional[DegradedNotifier] = None,
    ) -> T:
        """
        Run ``primary``; on any failure switch to ``fallback``.

        Args:
            primary: Preferred operation
            fallback: Degraded alternative
            operation_name: Name used in logs and the degraded-mode notice
            on_degraded: Called with (operation_name, error) before falling back
        """
        try:
            return await primary()
        except Exception as e:
            logger.warning(
                "Primary operation failed, using fallback",
                operation=operation_name,
                error=str(e),
            )
            if on_degraded is not None:
                on_degraded(operation_name, e)
            return await fallback()
