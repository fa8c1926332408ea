"""
Entry point for running mcpfile as a module.

This allows the package to be executed with: python -m mcpfile
"""

from mcpfile.main import cli

if __name__ == "__main__":
    cli()
