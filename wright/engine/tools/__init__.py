"""Built-in tools available to the model."""
from __future__ import annotations

from pathlib import Path

from .base import Tool, ToolRegistry
from .bash import BashTool
from .edit import EditTool
from .fetch import FetchTool
from .glob import GlobTool
from .grep import GrepTool
from .ls import LsTool
from .view import ViewTool
from .write import WriteTool

__all__ = [
    "Tool",
    "ToolRegistry",
    "BashTool",
    "EditTool",
    "FetchTool",
    "GlobTool",
    "GrepTool",
    "LsTool",
    "ViewTool",
    "WriteTool",
    "default_registry",
]


def default_registry(work_dir: Path | str, shell: str = "/bin/bash") -> ToolRegistry:
    """Registry with every built-in tool, read-only tools first."""
    registry = ToolRegistry()
    registry.register(GlobTool(work_dir))
    registry.register(GrepTool(work_dir))
    registry.register(LsTool(work_dir))
    registry.register(ViewTool(work_dir))
    registry.register(BashTool(work_dir, shell=shell))
    registry.register(WriteTool(work_dir))
    registry.register(EditTool(work_dir))
    registry.register(FetchTool(work_dir))
    return registry
