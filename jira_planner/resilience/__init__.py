"""
Rate limiting, retries and error recovery.
"""

from jira_planner.resilience.error_handler import (
    ErrorContext,
    ErrorHandler,
    RecoveryOption,
    classify_error,
    is_retryable,
)
from jira_planner.resilience.rate_limiter import RateLimiter
from jira_planner.resilience.retry import RetryExecutor

__all__ = [
    "ErrorContext",
    "ErrorHandler",
    "RecoveryOption",
    "classify_error",
    "is_retryable",
    "RateLimiter",
    "RetryExecutor",
]
