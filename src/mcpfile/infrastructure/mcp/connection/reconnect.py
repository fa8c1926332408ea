"""Reconnection strategies for managed MCP connections."""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Optional

from mcpfile.logger import get_logger

logger = get_logger("connection.reconnect")

ProgressCallback = Callable[[int, int, float], None]


class ReconnectionStrategy(ABC):
    """Abstract base class for reconnection strategies."""

    @abstractmethod
    async def wait_before_retry(
        self,
        attempt: int,
        on_progress: Optional[ProgressCallback] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> bool:
        """
        Wait before the next reconnection attempt.

        Args:
            attempt: Current attempt number (1-indexed)
            on_progress: Optional callback (attempt, max_attempts, remaining_seconds)
            stop_event: Optional event that aborts the wait when set

        Returns:
            True if the attempt should go ahead, False if it should be abandoned
        """

    @abstractmethod
    def should_retry(self, attempt: int) -> bool:
        """Check if reconnection attempt number `attempt` is permitted."""

    @abstractmethod
    def calculate_delay(self, attempt: int) -> float:
        """Seconds to wait before attempt number `attempt`."""

    @property
    @abstractmethod
    def max_attempts(self) -> int:
        """Maximum number of reconnection attempts."""


class ExponentialBackoffStrategy(ReconnectionStrategy):
    """Exponential backoff: `min(initial_delay * multiplier**(attempt-1), max_delay)`."""

    def __init__(
        self,
        max_attempts: int = 5,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        backoff_multiplier: float = 2.0,
        progress_update_interval: float = 2.0,
    ):
        """
        Initialize exponential backoff strategy.

        Args:
            max_attempts: Maximum number of reconnection attempts
            initial_delay: Delay before the first attempt, in seconds
            max_delay: Upper bound for any delay, in seconds
            backoff_multiplier: Growth factor between attempts
            progress_update_interval: How often progress is reported during a wait (seconds)
        """
        if max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if initial_delay < 0 or max_delay < 0:
            raise ValueError("delays must be >= 0")
        self._max_attempts = max_attempts
        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._backoff_multiplier = backoff_multiplier
        self._progress_update_interval = progress_update_interval

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def initial_delay(self) -> float:
        return self._initial_delay

    @property
    def max_delay(self) -> float:
        return self._max_delay

    def calculate_delay(self, attempt: int) -> float:
        if attempt <= 0:
            return min(self._initial_delay, self._max_delay)

        delay = self._initial_delay * (self._backoff_multiplier ** (attempt - 1))
        return min(delay, self._max_delay)

    def should_retry(self, attempt: int) -> bool:
        return attempt <= self._max_attempts

    async def wait_before_retry(
        self,
        attempt: int,
        on_progress: Optional[ProgressCallback] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> bool:
        if not self.should_retry(attempt):
            return False

        delay = self.calculate_delay(attempt)
        logger.info(f"Waiting {delay:.1f}s before retry (attempt {attempt}/{self._max_attempts})")

        remaining = delay
        while remaining > 0:
            if stop_event is not None and stop_event.is_set():
                logger.info("Stop requested during reconnection delay")
                return False

            if on_progress:
                try:
                    on_progress(attempt, self._max_attempts, remaining)
                except Exception as e:
                    logger.error(f"Error in progress callback: {e}")

            sleep_duration = min(remaining, self._progress_update_interval)
            if stop_event is None:
                await asyncio.sleep(sleep_duration)
            else:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=sleep_duration)
                except asyncio.TimeoutError:
                    pass
            remaining -= sleep_duration

        if stop_event is not None and stop_event.is_set():
            logger.info("Stop requested after reconnection delay")
            return False

        return True
