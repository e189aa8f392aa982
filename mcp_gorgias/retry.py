"""Retry envelope with exponential backoff and jitter."""

import logging
import random
import time
from collections.abc import Callable
from typing import TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt

from .errors import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
MAX_DELAY = 30.0  # seconds
MAX_JITTER = 1.0  # seconds


class RetryHandler:
    """Run an operation, retrying transient failures with capped backoff.

    The delay before attempt ``n + 1`` is
    ``min(base_delay * 2 ** (n - 1) + uniform(0, jitter), max_delay)``.
    Non-retryable failures (see ``errors.is_retryable``) are raised on the
    first attempt.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = MAX_DELAY,
        jitter: float = MAX_JITTER,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the handler.

        Args:
            max_attempts: Total attempts including the first one
            base_delay: Delay in seconds before the second attempt (before jitter)
            max_delay: Upper bound for any single delay
            jitter: Upper bound of the uniform random delay added to each backoff
            sleep: Blocking sleep function (injectable for tests)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._sleep = sleep

    def backoff(self, attempt: int) -> float:
        """Return the delay to wait after failed attempt ``attempt`` (1-based)."""
        exponential = self.base_delay * 2 ** (attempt - 1)
        return min(exponential + random.uniform(0, self.jitter), self.max_delay)  # noqa: S311

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.backoff(retry_state.attempt_number)

    def execute(self, operation: Callable[[], T], label: str) -> T:
        """Run ``operation`` until it succeeds or retries are exhausted.

        Args:
            operation: Zero-argument callable performing one attempt
            label: Operation name used in log messages

        Returns:
            The first successful result

        Raises:
            Exception: The last failure once attempts are exhausted, or the
                first non-retryable failure
        """

        def _log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                "%s failed (attempt %d/%d): %s. Retrying in %.2fs...",
                label,
                retry_state.attempt_number,
                self.max_attempts,
                error,
                delay,
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_exception(is_retryable),
            wait=self._wait,
            sleep=self._sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        try:
            return retrying(operation)
        except Exception as e:
            if is_retryable(e):
                logger.error("%s failed after %d attempts: %s", label, self.max_attempts, e)
            else:
                logger.error("%s failed with non-retryable error: %s", label, e)
            raise
