"""Infrastructure layer - concrete MCP transport and connection implementations."""
