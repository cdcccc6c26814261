"""
Retry controller for link-matching network calls.

Runs one async operation up to MAX_ATTEMPTS times with a per-attempt timeout
and exponential backoff. HTTP 4xx is terminal and never retried; 5xx, timeouts
and transport errors are retried. Task cancellation aborts the remaining
attempts and propagates to the caller.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from deferred_attribution.infrastructure.observability.logging import get_logger, log_attempt
from deferred_attribution.services.link_api_client import LinkApiError

logger = get_logger(__name__)

MAX_ATTEMPTS = 3
ATTEMPT_TIMEOUT = 10.0  # seconds
BACKOFF_FACTOR = 2.0

TERMINAL = "terminal"
RETRYABLE = "retryable"

Operation = Callable[[], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[None]]


class RetryStatus(str, Enum):
    SUCCESS = "success"
    TERMINAL = "terminal"
    EXHAUSTED = "exhausted"


@dataclass(slots=True, frozen=True)
class RetryOutcome:
    """Result of a retried operation."""

    status: RetryStatus
    attempts: int
    value: Any = None
    error: BaseException | None = None
    status_code: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == RetryStatus.SUCCESS

    @property
    def exhausted(self) -> bool:
        return self.status == RetryStatus.EXHAUSTED


def failure_status_code(error: BaseException) -> int | None:
    """HTTP status carried by an error, if any."""
    if isinstance(error, LinkApiError):
        return error.status_code
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def classify_failure(error: BaseException) -> str:
    """4xx means no record or a malformed request; everything else may be transient."""
    status_code = failure_status_code(error)
    if status_code is not None and 400 <= status_code < 500:
        return TERMINAL
    return RETRYABLE


class RetryController:
    """
    Classification-aware retry wrapper.

    Holds configuration only; no state survives a call to run().
    """

    def __init__(
        self,
        max_attempts: int = MAX_ATTEMPTS,
        attempt_timeout: float = ATTEMPT_TIMEOUT,
        backoff_factor: float = BACKOFF_FACTOR,
        jitter: float = 0.0,
        sleep: Sleep | None = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.attempt_timeout = attempt_timeout
        self.backoff_factor = backoff_factor
        self.jitter = jitter
        self._sleep = sleep or asyncio.sleep

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds before `attempt` (2s before attempt 2, 4s before attempt 3)."""
        if attempt <= 1:
            return 0.0
        delay = self.backoff_factor * (2 ** (attempt - 2))
        if self.jitter > 0:
            delay += delay * self.jitter * random.random()
        return delay

    async def run(self, operation: Operation, operation_name: str = "request") -> RetryOutcome:
        """
        Execute `operation` with retry.

        Args:
            operation: No-argument coroutine factory performing one network call
            operation_name: Name used in logs

        Returns:
            RetryOutcome: SUCCESS with the value, TERMINAL on 4xx, or EXHAUSTED
        """
        last_error: BaseException | None = None

        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                backoff = self.backoff_delay(attempt)
                logger.debug(
                    "Retrying link API request",
                    operation=operation_name,
                    attempt=attempt,
                    backoff_seconds=backoff,
                )
                await self._sleep(backoff)

            try:
                value = await asyncio.wait_for(operation(), timeout=self.attempt_timeout)
            except Exception as e:
                status_code = failure_status_code(e)
                log_attempt(
                    operation_name,
                    attempt,
                    "timeout" if isinstance(e, TimeoutError) else "error",
                    error=str(e) or type(e).__name__,
                    status_code=status_code,
                )
                if classify_failure(e) == TERMINAL:
                    return RetryOutcome(
                        status=RetryStatus.TERMINAL,
                        attempts=attempt,
                        error=e,
                        status_code=status_code,
                    )
                last_error = e
                continue

            log_attempt(operation_name, attempt, "success")
            return RetryOutcome(status=RetryStatus.SUCCESS, attempts=attempt, value=value)

        logger.warning(
            "Link API retries exhausted",
            operation=operation_name,
            attempts=self.max_attempts,
            error=str(last_error) if last_error else None,
        )
        return RetryOutcome(
            status=RetryStatus.EXHAUSTED,
            attempts=self.max_attempts,
            error=last_error,
            status_code=failure_status_code(last_error) if last_error else None,
        )
