"""write — create or overwrite a file."""
from __future__ import annotations

import logging
from typing import Any

from wright.engine.cancellation import CancelToken
from wright.engine.errors import ToolError
from .base import Tool, parse_arguments, schema

logger = logging.getLogger(__name__)


class WriteTool(Tool):
    requires_permission = True

    @property
    def name(self) -> str:
        return "write"

    @property
    def description(self) -> str:
        return (
            "Write content to a file, creating it if it doesn't exist or "
            "overwriting if it does. Parent directories are created automatically."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return schema(
            {
                "file_path": {
                    "type": "string",
                    "description": "The path to the file to write (absolute or relative to working directory).",
                },
                "content": {
                    "type": "string",
                    "description": "The content to write to the file.",
                },
            },
            required=["file_path", "content"],
        )

    async def execute(self, arguments: str, cancel: CancelToken | None = None) -> str:
        params = parse_arguments(self.name, arguments)
        file_path = params.get("file_path") or ""
        content = params.get("content", "")
        if not file_path:
            raise ToolError("file_path is required")
        if not isinstance(content, str):
            raise ToolError("content must be a string")

        path = self.resolve(file_path)
        data = content.encode("utf-8")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise ToolError(f"writing file: {exc}") from exc
        logger.info("write %s (%d bytes)", path, len(data))
        return f"Successfully wrote {len(data)} bytes to {self.relative(path)}"
