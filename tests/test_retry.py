"""
Tests for retry_with_backoff.
"""

from unittest.mock import AsyncMock

import pytest

from repokit.core.retry import retry_with_backoff


@pytest.mark.anyio
class TestRetryWithBackoff:
    """Retry decorator behavior."""

    async def test_returns_first_success(self):
        func = AsyncMock(return_value="ok")
        func.__name__ = "func"

        assert await retry_with_backoff(max_retries=3, base_delay=0)(func)() == "ok"
        assert func.await_count == 1

    async def test_retries_until_success(self):
        func = AsyncMock(side_effect=[ConnectionError(), ConnectionError(), "ok"])
        func.__name__ = "func"

        result = await retry_with_backoff(max_retries=3, base_delay=0, jitter=False)(func)()

        assert result == "ok"
        assert func.await_count == 3

    async def test_reraises_last_error_when_exhausted(self):
        error = ConnectionError("still down")
        func = AsyncMock(side_effect=error)
        func.__name__ = "func"

        with pytest.raises(ConnectionError) as exc_info:
            await retry_with_backoff(max_retries=2, base_delay=0)(func)()

        assert exc_info.value is error
        assert func.await_count == 3

    async def test_other_exceptions_propagate_immediately(self):
        func = AsyncMock(side_effect=ValueError("bad input"))
        func.__name__ = "func"

        with pytest.raises(ValueError):
            await retry_with_backoff(max_retries=3, base_delay=0, exceptions=(ConnectionError,))(func)()

        assert func.await_count == 1

    async def test_retry_if_predicate_filters(self):
        func = AsyncMock(side_effect=[ConnectionError("transient"), ConnectionError("fatal")])
        func.__name__ = "func"

        with pytest.raises(ConnectionError, match="fatal"):
            await retry_with_backoff(
                max_retries=5, base_delay=0, retry_if=lambda e: str(e) == "transient"
            )(func)()

        assert func.await_count == 2

    async def test_zero_retries_means_single_attempt(self):
        func = AsyncMock(side_effect=ConnectionError())
        func.__name__ = "func"

        with pytest.raises(ConnectionError):
            await retry_with_backoff(max_retries=0)(func)()

        assert func.await_count == 1
