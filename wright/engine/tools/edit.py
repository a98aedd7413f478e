"""edit — exact string replacement inside a file."""
from __future__ import annotations

import logging
from typing import Any

from wright.engine.cancellation import CancelToken
from wright.engine.errors import ToolError
from .base import Tool, parse_arguments, schema

logger = logging.getLogger(__name__)


class EditTool(Tool):
    requires_permission = True

    @property
    def name(self) -> str:
        return "edit"

    @property
    def description(self) -> str:
        return (
            "Perform exact string replacements in files. The old_string must "
            "match exactly (including whitespace and indentation). Use "
            "replace_all to replace all occurrences."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return schema(
            {
                "file_path": {
                    "type": "string",
                    "description": "The path to the file to edit (absolute or relative to working directory).",
                },
                "old_string": {
                    "type": "string",
                    "description": "The exact text to find and replace.",
                },
                "new_string": {
                    "type": "string",
                    "description": "The text to replace it with.",
                },
                "replace_all": {
                    "type": "boolean",
                    "description": "If true, replace all occurrences. Default is false.",
                },
            },
            required=["file_path", "old_string", "new_string"],
        )

    async def execute(self, arguments: str, cancel: CancelToken | None = None) -> str:
        params = parse_arguments(self.name, arguments)
        file_path = params.get("file_path") or ""
        old = params.get("old_string")
        new = params.get("new_string")
        if not file_path:
            raise ToolError("file_path is required")
        if not isinstance(old, str) or not old:
            raise ToolError("old_string is required")
        if not isinstance(new, str):
            raise ToolError("new_string is required")

        path = self.resolve(file_path)
        try:
            original = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ToolError(f"reading file: {exc}") from exc

        count = original.count(old)
        if count == 0:
            raise ToolError(f"old_string not found in {file_path}")
        if params.get("replace_all"):
            updated = original.replace(old, new)
        else:
            if count > 1:
                raise ToolError(
                    f"found {count} matches for old_string in {file_path}. "
                    "Use replace_all=true to replace all, or provide more "
                    "context to make the match unique"
                )
            updated = original.replace(old, new, 1)

        if updated == original:
            return "No changes made (old_string equals new_string)."

        try:
            path.write_text(updated, encoding="utf-8")
        except OSError as exc:
            raise ToolError(f"writing file: {exc}") from exc
        logger.info("edit %s (%d replacement(s))", path, count if params.get("replace_all") else 1)
        return f"Successfully edited {self.relative(path)}"
