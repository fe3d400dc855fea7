"""
Retry Decorator with Exponential Backoff

Provides a decorator for retrying async functions with exponential backoff
and jitter. Used to re-run whole transactions that fail with errors the
backend labels as transient (write conflicts, serialization failures).

Key features:
- Exponential backoff with configurable base and max delay
- Jitter to prevent thundering herd
- Selective exception catching, refined by an optional predicate
- Maximum retry attempts
- Logging of retry attempts
"""

import asyncio
import functools
import random
from typing import Any, Callable, Optional, Tuple, Type

from repokit.core.logging_config import get_logger

logger = get_logger(__name__)


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 0.05,
    max_delay: float = 2.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    retry_if: Optional[Callable[[BaseException], bool]] = None,
):
    """
    Decorator for retrying async functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
            Total attempts = max_retries + 1. Zero disables retrying.
        base_delay: Initial delay in seconds (default: 0.05)
        max_delay: Maximum delay in seconds (default: 2.0)
        exponential_base: Base for exponential growth (default: 2.0)
            Delay formula: base_delay * (exponential_base ** attempt)
        jitter: Whether to add random jitter of ±20% (default: True)
        exceptions: Exception types eligible for retry
        retry_if: Optional predicate; an eligible exception is retried only
            when it returns True

    Returns:
        Decorated async function that retries on failure

    Example:
        @retry_with_backoff(max_retries=2, retry_if=is_transient)
        async def run_transaction():
            ...

    Note:
        - Non-matching exceptions propagate immediately and unchanged
        - The last failure is re-raised as-is after the final attempt
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)

                except exceptions as e:
                    if retry_if is not None and not retry_if(e):
                        raise

                    if attempt == max_retries:
                        if max_retries:
                            logger.error(
                                f"{func.__name__} failed after {max_retries + 1} attempts: {e}"
                            )
                        raise

                    delay = min(
                        base_delay * (exponential_base ** attempt),
                        max_delay
                    )

                    if jitter:
                        jitter_amount = delay * 0.2
                        delay = max(0.0, delay + random.uniform(-jitter_amount, jitter_amount))

                    logger.info(
                        f"{func.__name__} attempt {attempt + 1}/{max_retries + 1} "
                        f"failed with {type(e).__name__}: {e}. "
                        f"Retrying in {delay:.2f}s..."
                    )

                    await asyncio.sleep(delay)

        return wrapper
    return decorator
