"""Connection state holder for a managed MCP client."""

from typing import Callable, Optional

from mcpfile.domain.types import ConnectionState
from mcpfile.logger import get_logger

logger = get_logger("connection.lifecycle")


class ConnectionLifecycle:
    """Holds the current ConnectionState and reports transitions."""

    def __init__(
        self,
        on_status_change: Optional[Callable[[ConnectionState], None]] = None,
    ):
        """
        Args:
            on_status_change: Callback invoked after every status transition
        """
        self._status = ConnectionState.DISCONNECTED
        self._on_status_change = on_status_change
        self._error_message: Optional[str] = None

    @property
    def status(self) -> ConnectionState:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status == ConnectionState.CONNECTED

    @property
    def is_disconnected(self) -> bool:
        return self._status == ConnectionState.DISCONNECTED

    @property
    def is_failed(self) -> bool:
        return self._status == ConnectionState.FAILED

    @property
    def error_message(self) -> Optional[str]:
        """Error message recorded with the FAILED status."""
        return self._error_message

    def set_status(self, status: ConnectionState, error_message: Optional[str] = None) -> bool:
        """
        Update the status and notify the callback.

        Args:
            status: New connection status
            error_message: Optional error message for FAILED status

        Returns:
            True if the status changed (and the callback was invoked)
        """
        if self._status == status:
            if status == ConnectionState.FAILED and error_message:
                self._error_message = error_message
            return False

        old_status = self._status
        self._status = status
        self._error_message = error_message if status == ConnectionState.FAILED else None

        logger.debug(f"Status changed: {old_status.value} -> {status.value}")

        if self._on_status_change:
            try:
                self._on_status_change(status)
            except Exception as e:
                logger.opt(exception=e).error(f"Error in status change callback: {e}")
        return True
