"""Domain protocols - the contracts the connection layer depends on."""

from mcpfile.domain.protocols.transport import CloseListener, ErrorListener, McpTransport

__all__ = ["CloseListener", "ErrorListener", "McpTransport"]
