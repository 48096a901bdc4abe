"""Retry utility with fixed or exponential backoff for transient errors."""

import asyncio
import functools
import logging
import random
from typing import Any, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


def calculate_exponential_backoff_delay(
    initial_delay: float,
    attempt: int,
    exponential_base: int,
    max_delay: float,
    jitter: bool = True,
) -> float:
    """
    Calculate delay with exponential backoff and optional jitter.

    An exponential base of 1 gives a fixed delay.

    Args:
        initial_delay: Initial delay in seconds
        attempt: Current attempt number (0-indexed)
        exponential_base: Base for exponential calculation (e.g., 2)
        max_delay: Maximum delay in seconds
        jitter: Whether to add 0-50% random jitter

    Returns:
        Delay in seconds
    """
    delay = initial_delay * (exponential_base**attempt)
    delay = min(delay, max_delay)

    if jitter:
        # Add jitter (0-50% of delay) to prevent thundering herd
        delay += random.uniform(0, delay * 0.5)

    return delay


def is_transient_error(error: Exception) -> bool:
    """
    Determine if an error is transient (should retry) or permanent (should not retry).

    Checks both the error itself and its __cause__ chain for transient indicators.

    Args:
        error: Exception to check

    Returns:
        True if error is transient and should be retried, False otherwise
    """
    # Import here to avoid circular dependencies
    from downloader.opensubtitles_client import (
        OpenSubtitlesAPIError,
        OpenSubtitlesAuthenticationError,
        OpenSubtitlesRateLimitError,
    )

    if isinstance(error, OpenSubtitlesAuthenticationError):
        return False

    if isinstance(error, OpenSubtitlesRateLimitError):
        return True

    if isinstance(error, OpenSubtitlesAPIError):
        if error.status_code is not None:
            return error.status_code in TRANSIENT_STATUS_CODES
        if error.__cause__:
            return is_transient_error(error.__cause__)
        return False

    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in TRANSIENT_STATUS_CODES

    # Network-related errors - transient
    if isinstance(
        error,
        (httpx.TransportError, ConnectionError, TimeoutError, asyncio.TimeoutError),
    ):
        return True

    if isinstance(error, OSError):
        return True

    # Default: treat unknown errors as permanent to avoid infinite retries
    return False


def retry_with_exponential_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    exponential_base: int = 2,
    max_delay: float = 60.0,
    jitter: bool = True,
    should_retry: Optional[Callable[[Exception], bool]] = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator that adds retry logic with backoff to async functions.

    Args:
        max_retries: Maximum number of retry attempts (after initial try)
        initial_delay: Initial delay in seconds before first retry
        exponential_base: Base for exponential backoff calculation (1 = fixed delay)
        max_delay: Maximum delay in seconds between retries
        jitter: Whether to randomize delays
        should_retry: Predicate deciding whether an error is retried;
            defaults to is_transient_error

    Returns:
        Decorated function with retry logic

    Example:
        @retry_with_exponential_backoff(max_retries=3, initial_delay=1)
        async def fetch_data():
            return await api_call()
    """
    classify = should_retry or is_transient_error

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)

                except Exception as e:
                    if not classify(e):
                        logger.error(
                            f"❌ Permanent error in {func.__name__}: {e}. Not retrying."
                        )
                        raise

                    if attempt >= max_retries:
                        logger.error(
                            f"❌ Max retries ({max_retries}) exceeded for {func.__name__}. Last error: {e}"
                        )
                        raise

                    delay = calculate_exponential_backoff_delay(
                        initial_delay=initial_delay,
                        attempt=attempt,
                        exponential_base=exponential_base,
                        max_delay=max_delay,
                        jitter=jitter,
                    )

                    logger.warning(
                        f"⚠️  Transient error in {func.__name__}: {e}. "
                        f"Retry {attempt + 1}/{max_retries} in {delay:.2f}s..."
                    )

                    await asyncio.sleep(delay)

        return wrapper

    return decorator


def retry_any_error(error: Exception) -> bool:
    """Retry predicate that treats every error as retryable."""
    return True
