"""Tool interface and registry.

Every tool exposes a name, a description, a JSON schema for its
arguments, a permission flag and an async ``execute`` that returns
text or raises ToolError. The agent loop treats all tools alike and
never looks inside their argument payloads.
"""
from __future__ import annotations

import abc
import json
import logging
import os
from pathlib import Path
from typing import Any

from wright.engine.cancellation import CancelToken
from wright.engine.errors import ToolError

logger = logging.getLogger(__name__)


def schema(
    properties: dict[str, dict[str, Any]],
    required: list[str] | None = None,
) -> dict[str, Any]:
    """Build an object JSON schema for tool parameters."""
    result: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        result["required"] = required
    return result


def parse_arguments(tool_name: str, arguments: str) -> dict[str, Any]:
    """Decode a raw argument payload, treating empty input as ``{}``."""
    if not arguments or not arguments.strip():
        return {}
    try:
        value = json.loads(arguments)
    except json.JSONDecodeError as exc:
        raise ToolError(f"parsing {tool_name} parameters: {exc}") from exc
    if not isinstance(value, dict):
        raise ToolError(f"parsing {tool_name} parameters: expected a JSON object")
    return value


def int_argument(params: dict[str, Any], key: str, default: int) -> int:
    """Read a numeric argument; missing or non-positive values use the default."""
    raw = params.get(key)
    if raw is None or isinstance(raw, bool):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


class Tool(abc.ABC):
    """A capability the model can invoke."""

    requires_permission: bool = False

    def __init__(self, work_dir: Path | str) -> None:
        self.work_dir = Path(work_dir)

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Unique tool name as declared to the model."""

    @property
    @abc.abstractmethod
    def description(self) -> str:
        """Human-readable description shown to the model."""

    @property
    @abc.abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON schema for the argument object."""

    @abc.abstractmethod
    async def execute(self, arguments: str, cancel: CancelToken | None = None) -> str:
        """Run the tool. Raises ToolError on failure."""

    def resolve(self, path: str) -> Path:
        """Resolve a user path against the working directory."""
        candidate = Path(os.path.expanduser(path)) if path else self.work_dir
        if not candidate.is_absolute():
            candidate = self.work_dir / candidate
        return candidate

    def relative(self, path: Path | str) -> str:
        """Render a path relative to the working directory when possible."""
        try:
            return os.path.relpath(path, self.work_dir)
        except ValueError:
            return str(path)


class ToolRegistry:
    """Name to tool lookup that preserves registration order."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        # Re-registering a name replaces the tool but keeps its position.
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def all(self) -> list[Tool]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
