"""Retry policy and the shared resilient-call combinator.

Every network call, download and stage-level retry loop goes through
``with_retry`` so backoff, attempt caps and logging behave the same
everywhere. Retry classification is a predicate on the raised exception.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any, Literal, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
    wait_incrementing,
)

from media_engine.domain.errors import MediaEngineError
from media_engine.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Substrings of error messages that indicate a dropped or aborted transfer
RETRYABLE_MESSAGES = ("fetch failed", "terminated", "aborted", "connection reset")
# Error codes that indicate a socket-level timeout or reset
RETRYABLE_CODES = (
    "UND_ERR_HEADERS_TIMEOUT",
    "UND_ERR_BODY_TIMEOUT",
    "ECONNRESET",
    "ETIMEDOUT",
    "TIMEOUT",
)
RETRYABLE_TYPES: tuple[type[BaseException], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    TimeoutError,
    ConnectionError,
)


def is_retryable_error(exc: BaseException) -> bool:
    """Classify an error as a transient network symptom.

    Walks the ``__cause__``/``__context__`` chain so wrapped transport errors
    are still recognised. HTTP status errors and the engine's own semantic
    errors are never retryable here.
    """
    if isinstance(exc, MediaEngineError):
        return False
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, httpx.HTTPStatusError):
            return False
        if isinstance(current, RETRYABLE_TYPES):
            return True
        message = str(current)
        lowered = message.lower()
        if any(marker in lowered for marker in RETRYABLE_MESSAGES):
            return True
        if any(code in message for code in RETRYABLE_CODES):
            return True
        current = current.__cause__ or current.__context__
    return False


def retry_any_error(exc: BaseException) -> bool:
    """Predicate for stage-level retries where every failure is retried."""
    return isinstance(exc, Exception)


@dataclass(frozen=True)
class RetryPolicy:
    """Call-site retry configuration. Never persisted."""

    max_attempts: int = 3
    base_delay: float = 2.0
    timeout: float = 60.0
    retry_predicate: Callable[[BaseException], bool] = is_retryable_error
    backoff: Literal["exponential", "linear", "fixed"] = "exponential"
    # (exception type, delay) pairs that replace the backoff delay for matching errors
    delay_overrides: tuple[tuple[type[BaseException], float], ...] = ()

    def delay_for(self, attempt: int, error: BaseException | None = None) -> float:
        """Delay after the given (1-based) failed attempt."""
        for exc_type, delay in self.delay_overrides:
            if isinstance(error, exc_type):
                return delay
        if self.backoff == "linear":
            return self.base_delay * attempt
        if self.backoff == "fixed":
            return self.base_delay
        return self.base_delay * 2 ** (attempt - 1)

    def with_overrides(self, **changes: Any) -> "RetryPolicy":
        return replace(self, **changes)

    def _wait(self) -> Any:
        if self.backoff == "linear":
            base = wait_incrementing(start=self.base_delay, increment=self.base_delay)
        elif self.backoff == "fixed":
            base = wait_fixed(self.base_delay)
        else:
            base = wait_exponential(multiplier=self.base_delay, exp_base=2)
        if not self.delay_overrides:
            return base

        def wait(retry_state: RetryCallState) -> float:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            for exc_type, delay in self.delay_overrides:
                if isinstance(error, exc_type):
                    return delay
            return base(retry_state)

        return wait


DEFAULT_HTTP_POLICY = RetryPolicy()
DEFAULT_DOWNLOAD_POLICY = RetryPolicy(max_attempts=3, base_delay=5.0, timeout=300.0)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    name: str = "operation",
    sleep: Callable[[float], Awaitable[Any]] | None = None,
    **log_context: Any,
) -> T:
    """Run ``operation`` under ``policy``.

    Retries while ``policy.retry_predicate`` accepts the raised error and
    attempts remain; otherwise the error propagates unchanged. After the last
    attempt the last error is re-raised.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        policy: Attempt cap, backoff and retry predicate.
        name: Operation label used in log lines.
        sleep: Sleep coroutine, injectable for tests.
        **log_context: Extra key/values bound to each attempt log line.

    Returns:
        The operation's result from the first successful attempt.
    """
    retrying = AsyncRetrying(
        sleep=sleep or asyncio.sleep,
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy._wait(),
        retry=retry_if_exception(policy.retry_predicate),
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            attempt_number = attempt.retry_state.attempt_number
            started = time.monotonic()
            try:
                result = await operation()
            except Exception as e:
                retryable = policy.retry_predicate(e)
                will_retry = retryable and attempt_number < policy.max_attempts
                logger.warning(
                    "retry_attempt_failed",
                    operation=name,
                    attempt=attempt_number,
                    max_attempts=policy.max_attempts,
                    elapsed=round(time.monotonic() - started, 3),
                    outcome="retrying" if will_retry else "giving_up",
                    retryable=retryable,
                    next_delay=policy.delay_for(attempt_number, e) if will_retry else None,
                    error=str(e) or type(e).__name__,
                    **log_context,
                )
                raise
            logger.debug(
                "retry_attempt_succeeded",
                operation=name,
                attempt=attempt_number,
                elapsed=round(time.monotonic() - started, 3),
                outcome="success",
                **log_context,
            )
            return result

    # AsyncRetrying with reraise=True either returns inside the loop or raises
    raise AssertionError("unreachable")
