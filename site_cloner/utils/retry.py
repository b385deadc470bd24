"""
Resilient error handling utilities.

Provides the application error taxonomy, transient-failure classification,
the bounded retry policy used around external calls, a deadline guard, and
centralized error formatting.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import anthropic
import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from site_cloner.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


# =============================================================================
# Custom Exceptions
# =============================================================================

class AppError(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: str = "INTERNAL_ERROR",
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class ScrapingError(AppError):
    """Fetch, extraction or content-sufficiency failure for a source URL."""

    def __init__(self, message: str, url: Optional[str] = None):
        full_message = f"Failed to scrape {url}: {message}" if url else message
        super().__init__(full_message, status_code=400, code="SCRAPING_ERROR")
        self.url = url


class AIGenerationError(AppError):
    """Completion transport, parse, schema or content-quality failure."""

    def __init__(self, message: str):
        super().__init__(message, status_code=500, code="AI_GENERATION_ERROR")


class ValidationError(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=400, code="VALIDATION_ERROR")


class NotFoundError(AppError):
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404, code="NOT_FOUND")


class RateLimitError(AppError):
    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[float] = None):
        super().__init__(message, status_code=429, code="RATE_LIMIT_ERROR")
        self.retry_after = retry_after


class QueueFullError(AppError):
    def __init__(self, message: str = "Generation queue is full"):
        super().__init__(message, status_code=503, code="QUEUE_FULL")


class PersistenceError(AppError):
    """A generation status write could not be stored."""

    def __init__(self, message: str):
        super().__init__(message, status_code=500, code="PERSISTENCE_ERROR")


# =============================================================================
# Transient Failure Classification
# =============================================================================

TRANSIENT_STATUS_CODES = frozenset({408, 409, 429, 529})


def is_transient_error(error: BaseException) -> bool:
    """
    Decide whether a failed call may succeed if repeated.

    Network failures, timeouts, rate limiting and 5xx responses are transient.
    Authentication failures, malformed requests and our own content errors
    are not.
    """
    if isinstance(error, RateLimitError):
        return True
    if isinstance(error, AppError):
        return False

    # APITimeoutError subclasses APIConnectionError
    if isinstance(error, anthropic.APIConnectionError):
        return True
    if isinstance(error, anthropic.APIStatusError):
        status = error.status_code
        return status >= 500 or status in TRANSIENT_STATUS_CODES

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status >= 500 or status in TRANSIENT_STATUS_CODES
    if isinstance(error, httpx.TransportError):
        return True

    return isinstance(error, (ConnectionError, asyncio.TimeoutError))


# =============================================================================
# Retry Policy
# =============================================================================

def _log_before_sleep(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    wait_seconds = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        "Transient failure, retrying",
        attempt=retry_state.attempt_number,
        wait_seconds=round(wait_seconds, 2),
        error=str(error),
        error_type=type(error).__name__,
    )


class wait_exponential_or_retry_after(wait_exponential):
    """Exponential backoff that waits at least a rate limiter's ``retry_after``, up to ``max``."""

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = super().__call__(retry_state)
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, RateLimitError) and error.retry_after:
            delay = max(delay, min(error.retry_after, self.max))
        return delay


def build_retrying(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_multiplier: float = 2.0,
    max_delay: float = 30.0,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> AsyncRetrying:
    """
    Build the retry controller for transient failures.

    At most ``max_attempts`` calls are made. Delays grow geometrically from
    ``initial_delay`` and are capped at ``max_delay``, so the schedule never
    decreases. A ``RateLimitError`` carrying ``retry_after`` waits at least
    that long, still capped at ``max_delay``. Non-transient errors are
    re-raised on first occurrence.
    """
    kwargs: dict[str, Any] = {}
    if sleep is not None:
        kwargs["sleep"] = sleep

    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential_or_retry_after(
            multiplier=initial_delay,
            exp_base=backoff_multiplier,
            max=max_delay,
        ),
        retry=retry_if_exception(is_transient_error),
        before_sleep=_log_before_sleep,
        reraise=True,
        **kwargs,
    )


async def with_deadline(
    awaitable: Awaitable[T],
    timeout_seconds: float,
    error_message: str = "Operation timed out",
) -> T:
    """
    Await ``awaitable`` under a single wall-clock deadline.

    On expiry the inner work is cancelled and ``AIGenerationError`` is raised.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        raise AIGenerationError(error_message) from None


# =============================================================================
# Error Handler
# =============================================================================

class ErrorHandler:
    """Centralized error formatting."""

    @staticmethod
    def format_error_response(error: BaseException) -> dict[str, Any]:
        """Map any exception to a serializable ``{error, code, status_code}`` dict."""
        if isinstance(error, AppError):
            return {
                "error": error.message,
                "code": error.code,
                "status_code": error.status_code,
            }
        return {
            "error": str(error) or "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
            "status_code": 500,
        }
