"""Shared utilities."""

from media_engine.utils.async_utils import run_async
from media_engine.utils.http import ResilientDownloader, ResilientHttpClient
from media_engine.utils.retry import RetryPolicy, is_retryable_error, with_retry

__all__ = [
    "ResilientDownloader",
    "ResilientHttpClient",
    "RetryPolicy",
    "is_retryable_error",
    "run_async",
    "with_retry",
]
