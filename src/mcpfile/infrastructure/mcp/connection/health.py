"""Liveness monitoring for an established MCP session."""

import asyncio
from typing import Any, Awaitable, Callable

from mcpfile.logger import get_logger

logger = get_logger("connection.health")

PingFn = Callable[[], Awaitable[Any]]


class HealthChecker:
    """Pings a session periodically and reports when it stops answering.

    A stdio subprocess that exits or an SSE stream that drops does not raise
    into the task holding the session open, so the transport watches the
    session with this checker and treats a dead session as an unexpected close.
    """

    def __init__(
        self,
        check_interval: float = 15.0,
        timeout: float = 5.0,
        failure_threshold: int = 2,
    ):
        """
        Args:
            check_interval: Seconds between pings
            timeout: Seconds to wait for a ping response
            failure_threshold: Consecutive failed pings before the session counts as dead
        """
        self._check_interval = check_interval
        self._timeout = timeout
        self._failure_threshold = max(1, failure_threshold)

    async def watch(self, ping: PingFn, stop_event: asyncio.Event) -> bool:
        """
        Ping until the session dies or a stop is requested.

        Args:
            ping: Coroutine function sending one ping
            stop_event: Event signalling a requested shutdown

        Returns:
            True if the session became unhealthy, False if stop was requested
        """
        consecutive_failures = 0
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._check_interval)
                break
            except asyncio.TimeoutError:
                pass

            if await self._check(ping):
                if consecutive_failures > 0:
                    logger.info(f"Session recovered after {consecutive_failures} failed ping(s)")
                consecutive_failures = 0
                continue

            consecutive_failures += 1
            logger.warning(f"Health check failed ({consecutive_failures}/{self._failure_threshold})")
            if consecutive_failures >= self._failure_threshold:
                logger.warning(f"Session unhealthy after {consecutive_failures} consecutive failures")
                return True

        return False

    async def _check(self, ping: PingFn) -> bool:
        try:
            await asyncio.wait_for(ping(), timeout=self._timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Health check timed out after {self._timeout}s")
            return False
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            return False
