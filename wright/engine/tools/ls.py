"""ls — list a directory."""
from __future__ import annotations

from typing import Any

from wright.engine.cancellation import CancelToken
from wright.engine.errors import ToolError
from .base import Tool, parse_arguments, schema


class LsTool(Tool):

    @property
    def name(self) -> str:
        return "ls"

    @property
    def description(self) -> str:
        return (
            "List directory contents. Returns entries one per line with a "
            "trailing / for subdirectories."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return schema({
            "path": {
                "type": "string",
                "description": "The directory to list. Defaults to the working directory.",
            },
        })

    async def execute(self, arguments: str, cancel: CancelToken | None = None) -> str:
        params = parse_arguments(self.name, arguments)
        directory = self.resolve(params.get("path") or "")
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            raise ToolError(f"reading directory: {exc}") from exc

        names = [entry.name + "/" if entry.is_dir() else entry.name for entry in entries]
        if not names:
            return "(empty directory)"
        return "\n".join(names)
