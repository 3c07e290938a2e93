"""Unit tests for backoff computation and async retries."""

from unittest.mock import AsyncMock, patch

import pytest

from lifesignal_relay.domain.errors import RevertedError, RpcError
from lifesignal_relay.utils.retry import compute_backoff, retry_async


@pytest.mark.unit
class TestComputeBackoff:
    """Test exponential backoff computation."""

    def test_backoff_without_jitter(self):
        """Test backoff calculation without jitter."""
        assert compute_backoff(0, 1.0, 60.0, 0.0) == 1.0
        assert compute_backoff(1, 1.0, 60.0, 0.0) == 2.0
        assert compute_backoff(2, 1.0, 60.0, 0.0) == 4.0
        assert compute_backoff(3, 1.0, 60.0, 0.0) == 8.0

    def test_backoff_max_delay(self):
        """Test that backoff respects maximum delay."""
        assert compute_backoff(10, 1.0, 5.0, 0.0) == 5.0

    def test_backoff_with_jitter(self):
        """Test backoff calculation with jitter stays within bounds."""
        for _ in range(50):
            delay = compute_backoff(2, 1.0, 60.0, 0.2)
            assert 3.2 <= delay <= 4.8

    def test_backoff_minimum(self):
        assert compute_backoff(0, 0.01, 1.0, 0.0) == 0.1
        assert compute_backoff(0, 0.01, 1.0, 0.0, minimum=0.0) == 0.01


@pytest.mark.unit
class TestRetryAsync:
    """Test retry_async."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        calls = []

        async def operation():
            calls.append(1)
            return "ok"

        result = await retry_async(operation, max_retries=3, base_delay=0.001, retry_on=(RpcError,))

        assert result == "ok"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_retries_listed_errors_until_success(self):
        attempts = {"count": 0}

        async def operation():
            attempts["count"] += 1
            if attempts["count"] < 3:
                raise RpcError("connection reset")
            return 42

        result = await retry_async(operation, max_retries=3, base_delay=0.001, retry_on=(RpcError,))

        assert result == 42
        assert attempts["count"] == 3

    @pytest.mark.asyncio
    async def test_raises_after_max_retries(self):
        attempts = {"count": 0}

        async def operation():
            attempts["count"] += 1
            raise RpcError("node down")

        with pytest.raises(RpcError, match="node down"):
            await retry_async(operation, max_retries=2, base_delay=0.001, retry_on=(RpcError,))

        assert attempts["count"] == 3

    @pytest.mark.asyncio
    async def test_unlisted_errors_are_not_retried(self):
        attempts = {"count": 0}

        async def operation():
            attempts["count"] += 1
            raise RevertedError("Only relay can call this function", "recordPing")

        with pytest.raises(RevertedError):
            await retry_async(operation, max_retries=5, base_delay=0.001, retry_on=(RpcError,))

        assert attempts["count"] == 1

    @pytest.mark.asyncio
    async def test_zero_retries(self):
        attempts = {"count": 0}

        async def operation():
            attempts["count"] += 1
            raise RpcError("timeout")

        with pytest.raises(RpcError):
            await retry_async(operation, max_retries=0, base_delay=0.001, retry_on=(RpcError,))

        assert attempts["count"] == 1

    @pytest.mark.asyncio
    async def test_sleeps_with_exponential_backoff(self):
        attempts = {"count": 0}

        async def operation():
            attempts["count"] += 1
            if attempts["count"] <= 3:
                raise RpcError("busy")
            return "done"

        with patch("lifesignal_relay.utils.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await retry_async(
                operation, max_retries=3, base_delay=1.0, retry_on=(RpcError,), jitter_ratio=0.0
            )

        delays = [call.args[0] for call in mock_sleep.call_args_list]
        assert delays == [1.0, 2.0, 4.0]
