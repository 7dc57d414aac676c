"""Tests for the retry policy and the resilient-call combinator."""

import httpx
import pytest

from media_engine.domain.errors import GenerationError
from media_engine.utils.retry import RetryPolicy, is_retryable_error, retry_any_error, with_retry


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.example.com/x")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=response)


class TestRetryClassifier:
    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectTimeout("connect timed out"),
            httpx.ReadError("socket closed"),
            httpx.RemoteProtocolError("peer closed connection"),
            TimeoutError(),
            ConnectionResetError("reset"),
            Exception("fetch failed"),
            Exception("The operation was aborted"),
            Exception("UND_ERR_BODY_TIMEOUT while reading"),
            Exception("request failed: ECONNRESET"),
        ],
    )
    def test_transient_errors_are_retryable(self, error: BaseException) -> None:
        assert is_retryable_error(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            ValueError("bad json"),
            _status_error(500),
            _status_error(429),
            GenerationError("fetch failed"),
        ],
    )
    def test_fatal_errors_are_not_retryable(self, error: BaseException) -> None:
        assert is_retryable_error(error) is False

    def test_wrapped_transport_error_is_retryable(self) -> None:
        try:
            try:
                raise httpx.ReadTimeout("body read timed out")
            except httpx.ReadTimeout as inner:
                raise RuntimeError("download wrapper") from inner
        except RuntimeError as outer:
            assert is_retryable_error(outer) is True

    def test_retry_any_error(self) -> None:
        assert retry_any_error(ValueError("x")) is True


class TestRetryPolicyDelays:
    def test_exponential(self) -> None:
        policy = RetryPolicy(base_delay=2.0)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]

    def test_linear(self) -> None:
        policy = RetryPolicy(base_delay=2.0, backoff="linear")
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 6.0]

    def test_fixed(self) -> None:
        policy = RetryPolicy(base_delay=5.0, backoff="fixed")
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [5.0, 5.0, 5.0]

    def test_override_for_matching_error(self) -> None:
        policy = RetryPolicy(
            base_delay=5.0,
            backoff="fixed",
            delay_overrides=((KeyError, 2.0),),
        )
        assert policy.delay_for(1, KeyError("x")) == 2.0
        assert policy.delay_for(1, ValueError("x")) == 5.0

    def test_with_overrides_returns_copy(self) -> None:
        policy = RetryPolicy()
        changed = policy.with_overrides(max_attempts=7)
        assert changed.max_attempts == 7
        assert policy.max_attempts == 3


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self) -> None:
        sleep = SleepRecorder()
        calls = 0

        async def operation() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise httpx.ConnectError("connection refused")
            return "ok"

        result = await with_retry(operation, RetryPolicy(base_delay=1.0), sleep=sleep)

        assert result == "ok"
        assert calls == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_attempts_are_bounded_with_doubling_delays(self) -> None:
        sleep = SleepRecorder()
        calls = 0

        async def operation() -> None:
            nonlocal calls
            calls += 1
            raise httpx.ReadTimeout("timed out")

        with pytest.raises(httpx.ReadTimeout):
            await with_retry(operation, RetryPolicy(max_attempts=4, base_delay=3.0), sleep=sleep)

        assert calls == 4
        assert sleep.delays == [3.0, 6.0, 12.0]

    @pytest.mark.asyncio
    async def test_fatal_error_is_not_retried(self) -> None:
        sleep = SleepRecorder()
        calls = 0

        async def operation() -> None:
            nonlocal calls
            calls += 1
            raise _status_error(400)

        with pytest.raises(httpx.HTTPStatusError):
            await with_retry(operation, RetryPolicy(), sleep=sleep)

        assert calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_delay_override_applies_per_error_type(self) -> None:
        sleep = SleepRecorder()
        errors = [KeyError("create failed"), ValueError("poll failed")]

        async def operation() -> str:
            if errors:
                raise errors.pop(0)
            return "done"

        policy = RetryPolicy(
            max_attempts=3,
            base_delay=5.0,
            backoff="fixed",
            retry_predicate=retry_any_error,
            delay_overrides=((KeyError, 2.0),),
        )
        assert await with_retry(operation, policy, sleep=sleep) == "done"
        assert sleep.delays == [2.0, 5.0]

    @pytest.mark.asyncio
    async def test_linear_backoff(self) -> None:
        sleep = SleepRecorder()

        async def operation() -> None:
            raise GenerationError("no image")

        policy = RetryPolicy(
            max_attempts=3,
            base_delay=2.0,
            backoff="linear",
            retry_predicate=retry_any_error,
        )
        with pytest.raises(GenerationError):
            await with_retry(operation, policy, sleep=sleep)

        assert sleep.delays == [2.0, 4.0]
