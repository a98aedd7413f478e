"""view — read a file with line numbers."""
from __future__ import annotations

from typing import Any

from wright.engine.cancellation import CancelToken
from wright.engine.errors import ToolError
from .base import Tool, int_argument, parse_arguments, schema

DEFAULT_LIMIT = 2000
MAX_LINE_CHARS = 2000


class ViewTool(Tool):

    @property
    def name(self) -> str:
        return "view"

    @property
    def description(self) -> str:
        return (
            "Read a file's contents. Returns lines prefixed with line numbers. "
            "Use offset and limit to read specific sections of large files."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return schema(
            {
                "file_path": {
                    "type": "string",
                    "description": "The path to the file to read (absolute or relative to working directory).",
                },
                "offset": {
                    "type": "number",
                    "description": "The line number to start reading from (1-indexed). Defaults to 1.",
                },
                "limit": {
                    "type": "number",
                    "description": "The maximum number of lines to read. Defaults to 2000.",
                },
            },
            required=["file_path"],
        )

    async def execute(self, arguments: str, cancel: CancelToken | None = None) -> str:
        params = parse_arguments(self.name, arguments)
        file_path = params.get("file_path") or ""
        if not file_path:
            raise ToolError("file_path is required")
        offset = int_argument(params, "offset", 1)
        limit = int_argument(params, "limit", DEFAULT_LIMIT)

        path = self.resolve(file_path)
        lines: list[str] = []
        try:
            with open(path, encoding="utf-8", errors="replace") as handle:
                for number, line in enumerate(handle, start=1):
                    if number < offset:
                        continue
                    if number >= offset + limit:
                        break
                    line = line.rstrip("\r\n")
                    if len(line) > MAX_LINE_CHARS:
                        line = line[:MAX_LINE_CHARS] + "... (truncated)"
                    lines.append(f"{number}: {line}")
        except OSError as exc:
            raise ToolError(f"opening file: {exc}") from exc

        if not lines:
            return "(empty file or offset beyond end of file)"
        return "\n".join(lines)
