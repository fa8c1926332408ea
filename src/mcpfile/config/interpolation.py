"""`${...}` variable interpolation for server entries.

Supported variables:

- ``${env:NAME}``: value of NAME in the supplied environment (process env by default)
- ``${userHome}``: the current user's home directory
- ``${workspaceFolder}``: the workspace folder (defaults to the config file's directory)
- ``${workspaceFolderBasename}``: last path component of the workspace folder
- ``${pathSeparator}`` / ``${/}``: the platform path separator

Each placeholder is replaced exactly once; substituted text is never rescanned.
"""

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from mcpfile.errors import InterpolationError

__all__ = [
    "PLACEHOLDER_PATTERN",
    "INTERPOLATED_FIELDS",
    "InterpolationContext",
    "interpolate_string",
    "interpolate",
    "interpolate_fields",
]

PLACEHOLDER_PATTERN = re.compile(r"\$\{([^}]+)\}")

# Server entry fields that may carry placeholders
INTERPOLATED_FIELDS: tuple[str, ...] = ("command", "args", "env", "url", "headers")


@dataclass(frozen=True)
class InterpolationContext:
    """Values available to placeholders."""

    env: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))
    workspace_folder: Optional[str] = None
    user_home: str = field(default_factory=lambda: str(Path.home()))

    def resolve(self, variable: str) -> str:
        if variable.startswith("env:"):
            name = variable[len("env:"):]
            value = self.env.get(name)
            if value is None:
                raise InterpolationError(name, f"Environment variable {name} is not defined")
            return value
        if variable == "userHome":
            return self.user_home
        if variable in ("workspaceFolder", "workspaceFolderBasename"):
            if not self.workspace_folder:
                raise InterpolationError(variable, "workspaceFolder is not defined in parse options")
            if variable == "workspaceFolder":
                return self.workspace_folder
            return os.path.basename(os.path.normpath(self.workspace_folder))
        if variable in ("pathSeparator", "/"):
            return os.sep
        raise InterpolationError(variable, f"Unknown interpolation variable: {variable}")


def interpolate_string(value: str, context: InterpolationContext) -> str:
    """Replace every placeholder in a string."""
    return PLACEHOLDER_PATTERN.sub(lambda match: context.resolve(match.group(1)), value)


def interpolate(value: Any, context: InterpolationContext) -> Any:
    """Recursively interpolate strings inside lists, tuples and mappings."""
    if isinstance(value, str):
        return interpolate_string(value, context)
    if isinstance(value, (list, tuple)):
        return type(value)(interpolate(item, context) for item in value)
    if isinstance(value, Mapping):
        return {key: interpolate(item, context) for key, item in value.items()}
    return value


def interpolate_fields(
    config: Mapping[str, Any],
    context: InterpolationContext,
    fields: tuple[str, ...] = INTERPOLATED_FIELDS,
) -> dict[str, Any]:
    """Return a copy of a server entry with placeholders resolved in `fields` only."""
    resolved = dict(config)
    for name in fields:
        if resolved.get(name) is not None:
            resolved[name] = interpolate(resolved[name], context)
    return resolved
