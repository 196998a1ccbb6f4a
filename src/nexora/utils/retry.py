"""Retry utilities with tenacity."""

import logging
from typing import Callable, List, Type

from tenacity import (
    after_log,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from ..config import settings

logger = logging.getLogger(__name__)


def create_retry_decorator(
    max_attempts: int = None,
    backoff_seconds: float = None,
    retry_exceptions: List[Type[Exception]] = None,
    sleep: Callable[[float], None] = None,
) -> Callable:
    """
    Create a retry decorator with linearly increasing backoff.

    The wait before attempt ``n + 1`` is ``backoff_seconds * n``.

    Args:
        max_attempts: Total attempts including the first (default from settings)
        backoff_seconds: Backoff unit in seconds (default from settings)
        retry_exceptions: Exception types to retry on
        sleep: Sleep function, injectable for tests

    Returns:
        Retry decorator that re-raises the last exception
    """
    if max_attempts is None:
        max_attempts = settings.llm_max_retries

    if backoff_seconds is None:
        backoff_seconds = settings.llm_backoff_seconds

    if retry_exceptions is None:
        retry_exceptions = [Exception]

    kwargs = {}
    if sleep is not None:
        kwargs["sleep"] = sleep

    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_incrementing(start=backoff_seconds, increment=backoff_seconds),
        retry=retry_if_exception_type(tuple(retry_exceptions)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        after=after_log(logger, logging.DEBUG),
        reraise=True,
        **kwargs,
    )


def log_retry_success(func_name: str, attempt: int, total_attempts: int) -> None:
    """Log successful retry."""
    if attempt > 1:
        logger.info(f"Function {func_name} succeeded on attempt {attempt}/{total_attempts}")
