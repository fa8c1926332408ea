"""Tests for connection management components."""

import asyncio

import pytest

from mcpfile.domain.types import ConnectionState
from mcpfile.infrastructure.mcp.connection import (
    ConnectionLifecycle,
    ExponentialBackoffStrategy,
    HealthChecker,
)


class TestExponentialBackoffStrategy:
    """Tests for ExponentialBackoffStrategy."""

    def test_default_delays(self):
        """Default delays double from 1s and cap at 30s."""
        strategy = ExponentialBackoffStrategy()

        delays = [strategy.calculate_delay(attempt) for attempt in range(1, 8)]

        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]

    def test_should_retry(self):
        """Test retry decision logic."""
        strategy = ExponentialBackoffStrategy(max_attempts=3)

        assert strategy.should_retry(1) is True
        assert strategy.should_retry(3) is True
        assert strategy.should_retry(4) is False

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            ExponentialBackoffStrategy(max_attempts=-1)

    @pytest.mark.asyncio
    async def test_wait_before_retry(self):
        """Test normal wait with progress reporting."""
        strategy = ExponentialBackoffStrategy(max_attempts=3, initial_delay=0.1, progress_update_interval=0.05)
        progress = []

        start = asyncio.get_running_loop().time()
        result = await strategy.wait_before_retry(
            1,
            on_progress=lambda attempt, max_attempts, remaining: progress.append((attempt, max_attempts, remaining)),
            stop_event=asyncio.Event(),
        )
        duration = asyncio.get_running_loop().time() - start

        assert result is True
        assert duration >= 0.09
        assert progress[0] == (1, 3, 0.1)
        assert all(remaining > 0 for _, _, remaining in progress)

    @pytest.mark.asyncio
    async def test_wait_before_retry_stop_event(self):
        """Test wait respects stop event."""
        strategy = ExponentialBackoffStrategy(max_attempts=3, initial_delay=5.0)
        stop_event = asyncio.Event()

        async def stop_soon():
            await asyncio.sleep(0.05)
            stop_event.set()

        task = asyncio.create_task(stop_soon())
        start = asyncio.get_running_loop().time()
        result = await strategy.wait_before_retry(1, stop_event=stop_event)
        duration = asyncio.get_running_loop().time() - start
        await task

        assert result is False
        assert duration < 1.0

    @pytest.mark.asyncio
    async def test_wait_beyond_max_attempts(self):
        strategy = ExponentialBackoffStrategy(max_attempts=2, initial_delay=5.0)

        assert await strategy.wait_before_retry(3) is False


class TestConnectionLifecycle:
    """Tests for ConnectionLifecycle."""

    def test_initial_state(self):
        lifecycle = ConnectionLifecycle()

        assert lifecycle.status == ConnectionState.DISCONNECTED
        assert not lifecycle.is_connected
        assert lifecycle.is_disconnected

    def test_status_change(self):
        """Callback runs once per actual transition."""
        statuses = []
        lifecycle = ConnectionLifecycle(on_status_change=statuses.append)

        assert lifecycle.set_status(ConnectionState.CONNECTING) is True
        assert lifecycle.set_status(ConnectionState.CONNECTING) is False
        lifecycle.set_status(ConnectionState.CONNECTED)

        assert lifecycle.is_connected
        assert statuses == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]

    def test_failed_state(self):
        """Error message is kept only while FAILED."""
        lifecycle = ConnectionLifecycle()

        lifecycle.set_status(ConnectionState.FAILED, "Connection failed")
        assert lifecycle.is_failed
        assert lifecycle.error_message == "Connection failed"

        lifecycle.set_status(ConnectionState.CONNECTING)
        assert lifecycle.error_message is None

    def test_callback_error_is_contained(self):
        def broken(_status):
            raise RuntimeError("boom")

        lifecycle = ConnectionLifecycle(on_status_change=broken)

        assert lifecycle.set_status(ConnectionState.CONNECTING) is True
        assert lifecycle.status == ConnectionState.CONNECTING


class TestHealthChecker:
    """Tests for HealthChecker."""

    class MockSession:
        """Mock session for testing."""

        def __init__(self, should_fail=False):
            self.should_fail = should_fail
            self.ping_count = 0

        async def send_ping(self):
            self.ping_count += 1
            if self.should_fail:
                raise RuntimeError("Connection lost")

    @pytest.mark.asyncio
    async def test_healthy_until_stopped(self):
        session = self.MockSession()
        checker = HealthChecker(check_interval=0.05, timeout=1.0)
        stop_event = asyncio.Event()

        async def stop_later():
            await asyncio.sleep(0.2)
            stop_event.set()

        task = asyncio.create_task(stop_later())
        unhealthy = await checker.watch(session.send_ping, stop_event)
        await task

        assert unhealthy is False
        assert session.ping_count > 0

    @pytest.mark.asyncio
    async def test_detects_failures(self):
        session = self.MockSession(should_fail=True)
        checker = HealthChecker(check_interval=0.02, timeout=1.0, failure_threshold=2)

        unhealthy = await asyncio.wait_for(checker.watch(session.send_ping, asyncio.Event()), timeout=2.0)

        assert unhealthy is True
        assert session.ping_count == 2

    @pytest.mark.asyncio
    async def test_ping_timeout_counts_as_failure(self):
        async def hang():
            await asyncio.sleep(10)

        checker = HealthChecker(check_interval=0.01, timeout=0.02, failure_threshold=1)

        assert await asyncio.wait_for(checker.watch(hang, asyncio.Event()), timeout=2.0) is True
